# typerace/core/config.py
import pathlib
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

logger = logging.getLogger("typerace.core.config")  # Logger for this module

PACKAGE_DIR = pathlib.Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    PROJECT_NAME: str = "Typerace Server"
    HOST: str = "0.0.0.0"
    PORT: int = 1234
    LISTEN_BACKLOG: int = 128

    COUNTDOWN_SECONDS: int = 5
    WORD_COUNT: int = 20

    # The loop is a busy-poll: sleep this long between ticks
    TICK_INTERVAL_SECONDS: float = 0.01
    READ_CHUNK_SIZE: int = 4096
    # Upper bound on queued commands handled in one tick, the rest carry over
    MAX_COMMANDS_PER_TICK: int = 10_000
    # A client whose unterminated line grows past this is dropped
    MAX_PENDING_LINE_BYTES: int = 64 * 1024
    # 0 disables idle eviction
    IDLE_TIMEOUT_SECONDS: float = 0

    # Newline-delimited dictionary the race words are drawn from
    WORDS_FILE: pathlib.Path = PACKAGE_DIR / "data" / "words.txt"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="TYPERACE_", extra="ignore")

@lru_cache()
def get_settings():
    settings_instance = Settings()
    logger.debug(f"Words file set to: {settings_instance.WORDS_FILE}")
    return settings_instance

settings = get_settings()
