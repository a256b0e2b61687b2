# typerace/services/word_source.py
import logging
import pathlib
import random
from typing import List, Sequence, Tuple

from typerace.core.exceptions import WordSourceError

logger = logging.getLogger("typerace.services.word_source")  # Logger for this module

def load_words(path: pathlib.Path | str, minimum: int = 1) -> List[str]:
    """Reads a newline-delimited dictionary, skipping blank lines and duplicates.

    Raises WordSourceError if the file can't be read or holds fewer than
    ``minimum`` distinct words.
    """
    path = pathlib.Path(path)
    try:
        raw = path.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError) as e:
        raise WordSourceError("Could not read word list", details=str(e), path=str(path)) from e

    # dict.fromkeys keeps the first occurrence and the file's order
    words = list(dict.fromkeys(w.strip() for w in raw.split("\n") if w.strip()))
    if len(words) < minimum:
        raise WordSourceError(
            "Word list is too small",
            details=f"{len(words)} distinct words, need at least {minimum}",
            path=str(path),
        )
    logger.info(f"Loaded {len(words)} words from {path}")
    return words

def choose_race_words(words: Sequence[str], count: int, rng: random.Random) -> Tuple[str, ...]:
    """Draws ``count`` words without replacement for a new lobby."""
    if len(words) < count:
        raise WordSourceError("Not enough words for a race", details=f"have {len(words)}, need {count}")
    return tuple(rng.sample(list(words), count))
