# typerace/services/protocol.py
"""Line protocol spoken over each TCP connection.

Every line is ASCII terminated by a bare ``\\n`` (no ``\\r`` trimming, no
length prefix). Client lines become :data:`Command` values, server messages
are rendered from (and decoded back into) :data:`ServerMessage` values.
"""
import logging
from typing import List

from typerace.core.exceptions import ProtocolParseError
from typerace.models.commands import (
    Command,
    CreateCommand,
    JoinCommand,
    JoinRandomCommand,
    RestartCommand,
    StartCommand,
    StateUpdateCommand,
)
from typerace.models.game import PlayerState
from typerace.models.messages import (
    ConnectedMessage,
    CountdownMessage,
    CreatedMessage,
    FinishedMessage,
    JoinedMessage,
    JoinFailedMessage,
    ServerMessage,
    StartingMessage,
    StateMessage,
    WordsMessage,
)

logger = logging.getLogger("typerace.services.protocol")  # Logger for this module

LINE_TERMINATOR = b"\n"
LOBBY_CODE_LENGTH = 5

_STATE_PREFIX = b"STATE "
_JOIN_PREFIX = b"JOIN "


def extract_lines(buffer: bytearray) -> List[bytes]:
    """Removes every complete line from ``buffer`` and returns them without terminators.

    Whatever follows the last terminator stays in the buffer for the next read.
    """
    last_terminator = buffer.rfind(LINE_TERMINATOR)
    if last_terminator == -1:
        return []
    complete = bytes(buffer[:last_terminator])
    del buffer[:last_terminator + 1]
    return complete.split(LINE_TERMINATOR)


def _parse_unsigned(tokens: List[bytes], position: int, line: bytes, field_name: str) -> int:
    if position >= len(tokens):
        raise ProtocolParseError("Reached end of input while parsing STATE", details=f"missing {field_name}", line=line)
    token = tokens[position]
    # bytes.isdigit() is ASCII-only, so signs and underscores are rejected here
    if not token.isdigit():
        raise ProtocolParseError("Invalid integer in STATE", details=f"{field_name}={token!r}", line=line)
    return int(token)


def parse_command(line: bytes) -> Command:
    """Decodes one line (terminator already removed) into a command."""
    if line == b"START":
        return StartCommand()
    if line == b"CREATE":
        return CreateCommand()
    if line.startswith(_STATE_PREFIX):
        tokens = line[len(_STATE_PREFIX):].split()
        word = _parse_unsigned(tokens, 0, line, "word")
        char = _parse_unsigned(tokens, 1, line, "char")
        mistake = _parse_unsigned(tokens, 2, line, "mistake")
        return StateUpdateCommand(state=PlayerState(
            current_word_index=word,
            current_completed_character_count=char,
            made_mistake=mistake == 1,
        ))
    if line == b"JOIN RANDOM":
        return JoinRandomCommand()
    if line.startswith(_JOIN_PREFIX):
        raw_code = line[len(_JOIN_PREFIX):]
        if len(raw_code) != LOBBY_CODE_LENGTH:
            raise ProtocolParseError("Invalid lobby code length", details=str(len(raw_code)), line=line)
        try:
            code = raw_code.decode("ascii")
        except UnicodeDecodeError as e:
            raise ProtocolParseError("Lobby code is not ASCII", details=str(e), line=line) from e
        return JoinCommand(code=code)
    if line == b"RESTART":
        return RestartCommand()
    raise ProtocolParseError("Invalid command found", line=line)


def encode_command(command: Command) -> bytes:
    """Renders a client command as a wire line. Internal-only commands have no wire form."""
    if isinstance(command, StartCommand):
        text = "START"
    elif isinstance(command, CreateCommand):
        text = "CREATE"
    elif isinstance(command, StateUpdateCommand):
        state = command.state
        text = f"STATE {state.current_word_index} {state.current_completed_character_count} {int(state.made_mistake)}"
    elif isinstance(command, JoinRandomCommand):
        text = "JOIN RANDOM"
    elif isinstance(command, JoinCommand):
        text = f"JOIN {command.code}"
    elif isinstance(command, RestartCommand):
        text = "RESTART"
    else:
        raise ValueError(f"Command {command.type!r} has no wire representation")
    return text.encode("ascii") + LINE_TERMINATOR


def encode_message(message: ServerMessage) -> bytes:
    if isinstance(message, ConnectedMessage):
        text = f"CONNECTED {message.client_id}"
    elif isinstance(message, CreatedMessage):
        text = f"CREATED {message.code}"
    elif isinstance(message, JoinedMessage):
        text = f"JOINED {message.code}"
    elif isinstance(message, JoinFailedMessage):
        text = "JOIN_FAILED"
    elif isinstance(message, WordsMessage):
        text = "WORDS " + " ".join(message.words)
    elif isinstance(message, CountdownMessage):
        text = f"COUNTDOWN {message.seconds}"
    elif isinstance(message, StartingMessage):
        text = "STARTING"
    elif isinstance(message, StateMessage):
        state = message.state
        text = (
            f"STATE {message.client_id} {state.current_word_index} "
            f"{state.current_completed_character_count} {int(state.made_mistake)}"
        )
    elif isinstance(message, FinishedMessage):
        text = f"FINISHED {message.client_id}"
    else:
        raise ValueError(f"Unknown server message: {message!r}")
    return text.encode("ascii") + LINE_TERMINATOR


def decode_message(line: bytes) -> ServerMessage:
    """Inverse of :func:`encode_message`, used by clients and tests."""
    try:
        text = line.decode("ascii")
    except UnicodeDecodeError as e:
        raise ProtocolParseError("Server line is not ASCII", details=str(e), line=line) from e
    keyword, _, rest = text.partition(" ")
    args = rest.split(" ") if rest else []
    try:
        if keyword == "CONNECTED" and len(args) == 1:
            return ConnectedMessage(client_id=int(args[0]))
        if keyword == "CREATED" and len(args) == 1:
            return CreatedMessage(code=args[0])
        if keyword == "JOINED" and len(args) == 1:
            return JoinedMessage(code=args[0])
        if keyword == "JOIN_FAILED" and not args:
            return JoinFailedMessage()
        if keyword == "WORDS":
            return WordsMessage(words=tuple(args))
        if keyword == "COUNTDOWN" and len(args) == 1:
            return CountdownMessage(seconds=int(args[0]))
        if keyword == "STARTING" and not args:
            return StartingMessage()
        if keyword == "STATE" and len(args) == 4:
            return StateMessage(client_id=int(args[0]), state=PlayerState(
                current_word_index=int(args[1]),
                current_completed_character_count=int(args[2]),
                made_mistake=args[3] == "1",
            ))
        if keyword == "FINISHED" and len(args) == 1:
            return FinishedMessage(client_id=int(args[0]))
    except ValueError as e:
        raise ProtocolParseError("Invalid integer in server line", details=str(e), line=line) from e
    raise ProtocolParseError("Unknown server line", line=line)
