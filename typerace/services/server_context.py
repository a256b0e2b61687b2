# typerace/services/server_context.py
import logging
import random
import time
from collections import deque
from typing import Callable, Deque, Dict, Sequence, Tuple

from typerace.core.config import Settings, settings as default_settings
from typerace.models.commands import Command
from typerace.models.game import ClientState, Lobby
from typerace.services.client_registry import ClientRegistry

logger = logging.getLogger("typerace.services.server_context")  # Logger for this module


class ServerContext:
    """Everything the tick loop owns, passed explicitly to every step.

    Only one thread ever touches it, so nothing here is locked.
    """

    def __init__(
        self,
        words: Sequence[str],
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ):
        self.settings = settings or default_settings
        self.words: Tuple[str, ...] = tuple(words)
        self.clock = clock
        self.rng = rng or random.Random()
        self.clients = ClientRegistry()
        self.lobbies: Dict[str, Lobby] = {}
        # Network reads and the dispatcher both append here
        self.pending: Deque[Tuple[int, Command]] = deque()

    def enqueue(self, client_id: int, command: Command) -> None:
        self.pending.append((client_id, command))

    def lobby_of(self, client: ClientState) -> Lobby | None:
        if client.lobby_code is None:
            return None
        return self.lobbies.get(client.lobby_code)
