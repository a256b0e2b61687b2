# typerace/main.py
# Start the server with: typerace-server --address 0.0.0.0 --port 1234
import argparse
import json
import logging
import logging.config
import pathlib
from typing import List, Optional

from typerace.core.config import settings
from typerace.core.exceptions import ListenerError, WordSourceError
from typerace.services.race_server import RaceServer, create_listener
from typerace.services.server_context import ServerContext
from typerace.services.word_source import load_words


def configure_logging_from_file():
    """Loads logging configuration from the JSON file next to this module."""
    config_file = pathlib.Path(__file__).parent / "logging_config.json"
    try:
        with open(config_file) as f_in:
            config = json.load(f_in)

        log_dir = pathlib.Path("logs")
        log_dir.mkdir(exist_ok=True)

        logging.config.dictConfig(config)
    except FileNotFoundError:
        print(f"ERROR: Logging configuration file not found at {config_file}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("typerace.main.logging_setup_fallback").error("Logging configuration file missing.", exc_info=True)
    except json.JSONDecodeError as e:
        print(f"ERROR: Failed to parse logging configuration file {config_file}: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("typerace.main.logging_setup_fallback").error("Logging configuration JSON error.", exc_info=True)
    except (ValueError, TypeError, AttributeError, ImportError, OSError) as e:
        # dictConfig wraps most of its failures in ValueError
        print(f"ERROR: Failed to configure logging from file: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("typerace.main.logging_setup_fallback").error("General logging configuration failed.", exc_info=True)


logger = logging.getLogger("typerace.main") # Logger for this module


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Multiplayer typing race server.")
    parser.add_argument(
        "-a", "--address", default=settings.HOST,
        help=f"Address to bind (default: {settings.HOST})."
    )
    parser.add_argument(
        "-p", "--port", type=int, default=settings.PORT,
        help=f"TCP port to listen on (default: {settings.PORT})."
    )
    parser.add_argument(
        "--words-file", type=pathlib.Path, default=settings.WORDS_FILE,
        help="Newline-delimited dictionary the race words are drawn from."
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging_from_file()
    args = parse_args(argv)

    try:
        words = load_words(args.words_file, minimum=settings.WORD_COUNT)
        listener = create_listener(args.address, args.port, settings.LISTEN_BACKLOG)
    except (WordSourceError, ListenerError) as e:
        logger.critical(f"Startup failed: {e}")
        return 1

    logger.info(f"{settings.PROJECT_NAME} listening on {args.address}:{args.port}")
    server = RaceServer(listener, ServerContext(words=words, settings=settings))
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")
    finally:
        server.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
