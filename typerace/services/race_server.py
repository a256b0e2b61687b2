# typerace/services/race_server.py
import logging
import socket
import time
from typing import Any

from typerace.core.exceptions import IllegalCommandError, ListenerError, LobbyInvariantError, ProtocolParseError
from typerace.models.commands import DisconnectAction, DisconnectCommand
from typerace.services import lobby_service, protocol
from typerace.services.command_pipeline import transition_client
from typerace.services.dispatcher import Dispatcher
from typerace.services.server_context import ServerContext

logger = logging.getLogger("typerace.services.race_server")  # Logger for this module


def create_listener(host: str, port: int, backlog: int = 128) -> socket.socket:
    """Binds a non-blocking listening socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
        sock.setblocking(False)
    except OSError as e:
        sock.close()
        raise ListenerError("Could not open listening socket", details=str(e), host=host, port=port) from e
    return sock


class RaceServer:
    """The polling loop. Each tick:

    1. accept every pending connection,
    2. read every client and queue the commands from complete lines,
    3. drain the command queue through the pipeline and dispatcher,
    4. sweep countdowns (and idle clients, when enabled).
    """

    def __init__(self, listener: Any, context: ServerContext):
        self.listener = listener
        self.context = context
        self.dispatcher = Dispatcher(context)
        self._running = False

    def serve_forever(self) -> None:
        self._running = True
        logger.info("Race server loop started.")
        while self._running:
            self.tick()
            time.sleep(self.context.settings.TICK_INTERVAL_SECONDS)
        logger.info("Race server loop stopped.")

    def stop(self) -> None:
        self._running = False

    def close(self) -> None:
        for client_id in self.context.clients.ids():
            self.context.clients.remove(client_id)
        self.context.lobbies.clear()
        self.context.pending.clear()
        try:
            self.listener.close()
        except OSError as e:
            logger.warning(f"Error closing listener: {e}")

    def tick(self) -> None:
        self.accept_new_clients()
        self.read_clients()
        self.process_pending()
        self.sweep()

    def accept_new_clients(self) -> None:
        while True:
            try:
                connection, address = self.listener.accept()
            except BlockingIOError:
                return
            except OSError as e:
                # Transient accept failures (e.g. the peer reset before we got to it)
                logger.error(f"Accept failed: {e}")
                return
            client = self.context.clients.register(connection, self.context.clock())
            if client is not None:
                logger.debug(f"C:{client.id} - Accepted from {address}.")

    def read_clients(self) -> None:
        settings = self.context.settings
        now = self.context.clock()
        for client in self.context.clients:
            healthy = self.context.clients.read_available(client, settings.READ_CHUNK_SIZE, now)
            for line in protocol.extract_lines(client.read_buffer):
                try:
                    command = protocol.parse_command(line)
                except ProtocolParseError as e:
                    logger.error(f"C:{client.id} - Input line: {line!r} Parse error: {e}. Pressing on...")
                    continue
                self.context.enqueue(client.id, command)
            if len(client.read_buffer) > settings.MAX_PENDING_LINE_BYTES:
                logger.warning(f"C:{client.id} - {len(client.read_buffer)} bytes without a line terminator.")
                client.read_buffer.clear()
                healthy = False
            if not healthy:
                self.context.enqueue(client.id, DisconnectCommand())

    def process_pending(self) -> int:
        """Runs queued commands until the queue is empty or the per-tick cap is hit.

        Returns how many commands were handled.
        """
        limit = self.context.settings.MAX_COMMANDS_PER_TICK
        processed = 0
        while self.context.pending and processed < limit:
            client_id, command = self.context.pending.popleft()
            processed += 1
            self.process_command(client_id, command)
        if self.context.pending:
            logger.warning(f"Command cap of {limit} reached, {len(self.context.pending)} carried over to next tick.")
        return processed

    def process_command(self, client_id: int, command) -> None:
        client = self.context.clients.get(client_id)
        if client is None:
            logger.debug(f"C:{client_id} - Not found, dropping {command.type}.")
            return
        logger.debug(f"C:{client_id} - Command: {command!r}")
        lobby = self.context.lobby_of(client)
        snapshot = lobby.model_copy(deep=True) if lobby is not None else None
        try:
            action = transition_client(client, snapshot, command)
        except IllegalCommandError as e:
            logger.error(f"C:{client_id} - Invalid transition! {e}")
            action = DisconnectAction(client_id=client_id)
        try:
            self.dispatcher.dispatch(client_id, action)
        except LobbyInvariantError:
            logger.exception(f"C:{client_id} - Internal error while dispatching {action.type}, command abandoned.")

    def sweep(self) -> None:
        now = self.context.clock()
        for lobby in list(self.context.lobbies.values()):
            events = lobby_service.advance_countdown(lobby, now)
            if events:
                self.dispatcher.send_events(lobby, events)

        idle_timeout = self.context.settings.IDLE_TIMEOUT_SECONDS
        if idle_timeout > 0:
            for client in self.context.clients:
                if now - client.last_activity >= idle_timeout:
                    logger.info(f"C:{client.id} - Idle for {now - client.last_activity:.1f}s, disconnecting.")
                    self.context.enqueue(client.id, DisconnectCommand())
