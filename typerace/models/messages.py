# typerace/models/messages.py
from typing import Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict

from typerace.models.game import PlayerState

class _Message(BaseModel):
    model_config = ConfigDict(frozen=True)

class ConnectedMessage(_Message):
    type: Literal["connected"] = "connected"
    client_id: int

class CreatedMessage(_Message):
    type: Literal["created"] = "created"
    code: str

class JoinedMessage(_Message):
    type: Literal["joined"] = "joined"
    code: str

class JoinFailedMessage(_Message):
    type: Literal["join_failed"] = "join_failed"

class WordsMessage(_Message):
    type: Literal["words"] = "words"
    words: Tuple[str, ...]

class CountdownMessage(_Message):
    type: Literal["countdown"] = "countdown"
    seconds: int

class StartingMessage(_Message):
    type: Literal["starting"] = "starting"

class StateMessage(_Message):
    type: Literal["state"] = "state"
    client_id: int
    state: PlayerState

class FinishedMessage(_Message):
    type: Literal["finished"] = "finished"
    client_id: int

ServerMessage = Union[
    ConnectedMessage, CreatedMessage, JoinedMessage, JoinFailedMessage, WordsMessage,
    CountdownMessage, StartingMessage, StateMessage, FinishedMessage,
]

class LobbyEvent:
    """An outbound message and who should get it: one client, or every lobby member."""
    def __init__(self, message: ServerMessage, target_client_id: int | None = None, broadcast: bool = False):
        self.message = message
        self.target_client_id = target_client_id
        self.broadcast = broadcast

    def __repr__(self):
        target = "broadcast" if self.broadcast else f"client={self.target_client_id}"
        return f"LobbyEvent({self.message.type}, {target})"
