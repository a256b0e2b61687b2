# typerace/services/matchmaking_service.py
import logging
import random
import string
from typing import Callable, Mapping, TypeVar

from typerace.models.game import Lobby
from typerace.services.protocol import LOBBY_CODE_LENGTH

logger = logging.getLogger("typerace.services.matchmaking_service")  # Logger for this module

T = TypeVar("T")

def generate_unique(generate: Callable[[], T], is_taken: Callable[[T], bool]) -> T:
    """Draws candidates from ``generate`` until one is not taken.

    There is no retry limit. Callers must make sure the candidate space is
    much larger than the number of taken values.
    """
    attempts = 0
    while True:
        attempts += 1
        candidate = generate()
        if not is_taken(candidate):
            if attempts > 1:
                logger.debug(f"Found a free candidate after {attempts} draws")
            return candidate

def generate_lobby_code(rng: random.Random, length: int = LOBBY_CODE_LENGTH) -> str:
    """``length`` random bytes, each folded into A-Z."""
    alphabet = string.ascii_uppercase
    return "".join(alphabet[b % len(alphabet)] for b in rng.randbytes(length))

def new_lobby_code(lobbies: Mapping[str, Lobby], rng: random.Random) -> str:
    """A lobby code not used by any live lobby."""
    return generate_unique(lambda: generate_lobby_code(rng), lambda code: code in lobbies)

def choose_random_lobby(lobbies: Mapping[str, Lobby], rng: random.Random) -> str | None:
    """Uniformly picks an existing lobby code, or None when there are no lobbies."""
    if not lobbies:
        logger.info("Random join requested but there are no lobbies")
        return None
    # Sorted so a seeded rng gives the same pick regardless of insertion order
    return rng.choice(sorted(lobbies))
