# tests/conftest.py
import logging
import random
from collections import deque
from typing import List

import pytest

from typerace.core.config import Settings
from typerace.services.race_server import RaceServer
from typerace.services.server_context import ServerContext

TEST_WORDS = [f"word{i:02d}" for i in range(50)]


class FakeConnection:
    """Stands in for a non-blocking client socket."""

    def __init__(self):
        self.sent = bytearray()
        self.inbound = deque()
        self.blocking = True
        self.closed = False
        self.fail_writes = False
        self.peer_closed = False
        self.socket_error = 0
        self._read_pos = 0

    def setblocking(self, flag):
        self.blocking = flag

    def setsockopt(self, *args):
        pass

    def getsockopt(self, level, option):
        return self.socket_error

    def sendall(self, data):
        if self.fail_writes or self.closed:
            raise BrokenPipeError("fake broken pipe")
        self.sent.extend(data)

    def recv(self, size):
        if self.inbound:
            chunk = self.inbound.popleft()
            if len(chunk) > size:
                self.inbound.appendleft(chunk[size:])
                chunk = chunk[:size]
            return chunk
        if self.peer_closed:
            return b""
        raise BlockingIOError("no data")

    def close(self):
        self.closed = True

    def feed(self, data: bytes):
        self.inbound.append(data)

    def take_lines(self) -> List[str]:
        """Lines written since the last call."""
        text = bytes(self.sent[self._read_pos:]).decode("ascii")
        self._read_pos = len(self.sent)
        lines = text.split("\n")
        assert lines[-1] == "", f"unterminated output: {text!r}"
        return lines[:-1]


class FakeListener:
    def __init__(self):
        self.pending = deque()
        self.closed = False

    def accept(self):
        if self.pending:
            return self.pending.popleft(), ("127.0.0.1", 40000 + len(self.pending))
        raise BlockingIOError("nothing to accept")

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, COUNTDOWN_SECONDS=5, WORD_COUNT=20, IDLE_TIMEOUT_SECONDS=0)

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)

@pytest.fixture
def context(test_settings, clock, rng) -> ServerContext:
    return ServerContext(words=TEST_WORDS, settings=test_settings, clock=clock, rng=rng)

@pytest.fixture
def listener() -> FakeListener:
    return FakeListener()

@pytest.fixture
def server(listener, context) -> RaceServer:
    return RaceServer(listener, context)

@pytest.fixture
def make_connection():
    return FakeConnection

@pytest.fixture
def connect(server, listener):
    """Accepts a new fake connection and returns it with the greeting already consumed."""
    def _connect() -> FakeConnection:
        connection = FakeConnection()
        listener.pending.append(connection)
        server.accept_new_clients()
        connection.take_lines()
        return connection
    return _connect

def pytest_configure(config):
    logging.getLogger("typerace").setLevel(logging.DEBUG)
