# typerace/core/exceptions.py
"""Exception hierarchy for the race server.

Socket failures are plain ``OSError``s and never leave the client registry;
everything raised here is about what a client asked for or about the server's
own state.
"""


class TyperaceError(Exception):
    """Base class for every error raised by the race server."""

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self):
        if self.details:
            return f"{self.message} | details: {self.details}"
        return self.message


class ProtocolParseError(TyperaceError):
    """A line could not be decoded. The line is dropped, the client stays."""

    def __init__(self, message: str, details: str = "", line: bytes = b""):
        super().__init__(message, details)
        self.line = line


class IllegalCommandError(TyperaceError):
    """A well-formed command that is not allowed in the client's current state."""

    def __init__(self, message: str, details: str = "", client_id: int | None = None):
        super().__init__(message, details)
        self.client_id = client_id


class LobbyInvariantError(TyperaceError):
    """Internal bookkeeping is inconsistent, e.g. an action names a lobby that is gone."""

    def __init__(self, message: str, details: str = "", lobby_code: str | None = None):
        super().__init__(message, details)
        self.lobby_code = lobby_code


class WordSourceError(TyperaceError):
    """The dictionary is missing or too small to fill a race."""

    def __init__(self, message: str, details: str = "", path: str = ""):
        super().__init__(message, details)
        self.path = path


class ListenerError(TyperaceError):
    """The listening socket could not be created."""

    def __init__(self, message: str, details: str = "", host: str = "", port: int = 0):
        super().__init__(message, details)
        self.host = host
        self.port = port
