# typerace/services/client_registry.py
import logging
import socket
from typing import Any, Dict, Iterator, List

from typerace.models.game import ClientState
from typerace.models.messages import ConnectedMessage
from typerace.services import protocol

logger = logging.getLogger("typerace.services.client_registry")  # Logger for this module


class ClientRegistry:
    """Owns one ClientState per live connection, keyed by client id.

    Ids start at 1 and are never handed out twice, even for a connection
    that was dropped before it could be registered.
    """

    def __init__(self):
        self._clients: Dict[int, ClientState] = {}
        self._last_id = 0

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_id: int) -> bool:
        return client_id in self._clients

    def __iter__(self) -> Iterator[ClientState]:
        # Snapshot, so callers may remove clients while iterating
        return iter(list(self._clients.values()))

    def ids(self) -> List[int]:
        return list(self._clients)

    def get(self, client_id: int) -> ClientState | None:
        return self._clients.get(client_id)

    def register(self, connection: Any, now: float) -> ClientState | None:
        """Sets up a freshly accepted connection and greets it with CONNECTED <id>.

        If the greeting can't be written the connection is closed and None is
        returned; the id is used up either way.
        """
        self._last_id += 1
        client = ClientState(id=self._last_id, connection=connection, last_activity=now)
        try:
            connection.setblocking(False)
            connection.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            logger.error(f"C:{client.id} - Failed to configure socket: {e}")
            _close_quietly(connection)
            return None
        if not self.send(client, protocol.encode_message(ConnectedMessage(client_id=client.id))):
            logger.error(f"C:{client.id} - Failed to initialize client.")
            _close_quietly(connection)
            return None
        self._clients[client.id] = client
        logger.info(f"C:{client.id} - Client connected.")
        return client

    def remove(self, client_id: int) -> ClientState | None:
        client = self._clients.pop(client_id, None)
        if client is None:
            return None
        _close_quietly(client.connection)
        logger.info(f"C:{client_id} - Client removed. {len(self._clients)} clients remain.")
        return client

    def send(self, client: ClientState, payload: bytes) -> bool:
        """Writes a whole payload. Returns False on any socket error.

        Nothing is buffered: a full send buffer counts as a failure.
        """
        try:
            client.connection.sendall(payload)
        except OSError as e:
            logger.warning(f"C:{client.id} - Write failed: {e}")
            return False
        return True

    def read_available(self, client: ClientState, chunk_size: int, now: float) -> bool:
        """Appends everything readable right now to the client's buffer.

        Returns False when the client should be dropped: read error, pending
        socket error, or the peer closed the connection.
        """
        while True:
            try:
                chunk = client.connection.recv(chunk_size)
            except BlockingIOError:
                break
            except OSError as e:
                logger.error(f"C:{client.id} - Client read error: {e}")
                return False
            if not chunk:
                logger.info(f"C:{client.id} - Peer closed the connection.")
                return False
            client.read_buffer.extend(chunk)
            client.last_activity = now
            logger.debug(f"C:{client.id} - Received {len(chunk)} bytes. Buflen: {len(client.read_buffer)}")

        try:
            pending_error = client.connection.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as e:
            logger.error(f"C:{client.id} - Failed to check socket error: {e}")
            return False
        if pending_error:
            logger.error(f"C:{client.id} - Socket reported error {pending_error}.")
            return False
        return True


def _close_quietly(connection: Any) -> None:
    try:
        connection.close()
    except OSError as e:
        logger.debug(f"Ignoring error while closing socket: {e}")
