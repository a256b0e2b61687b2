# typerace/models/commands.py
"""Commands are what a client asked for, Actions are what the server will do.

Commands come straight off the wire (plus two internal ones) and are not
trusted. Actions are produced only by ``command_pipeline.transition_client``
after validation, and are the only input the dispatcher accepts.
"""
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from typerace.models.game import PlayerState

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)

# --- Commands ---
class StartCommand(_Frozen):
    type: Literal["start"] = "start"

class CreateCommand(_Frozen):
    type: Literal["create"] = "create"

class StateUpdateCommand(_Frozen):
    type: Literal["state_update"] = "state_update"
    state: PlayerState

class JoinCommand(_Frozen):
    type: Literal["join"] = "join"
    code: str

class JoinRandomCommand(_Frozen):
    type: Literal["join_random"] = "join_random"

class RestartCommand(_Frozen):
    type: Literal["restart"] = "restart"

class DisconnectCommand(_Frozen):
    """Internal: read/write failure, illegal command or idle eviction."""
    type: Literal["disconnect"] = "disconnect"

class RequestWordsCommand(_Frozen):
    """Internal: queued after a create or join so the client gets its word list."""
    type: Literal["request_words"] = "request_words"

Command = Union[
    StartCommand, CreateCommand, StateUpdateCommand, JoinCommand,
    JoinRandomCommand, RestartCommand, DisconnectCommand, RequestWordsCommand,
]

# --- Actions ---
class CreateLobbyAction(_Frozen):
    type: Literal["create_lobby"] = "create_lobby"
    leader_id: int

class StartLobbyAction(_Frozen):
    type: Literal["start_lobby"] = "start_lobby"
    lobby_code: str

class SendWordsAction(_Frozen):
    type: Literal["send_words"] = "send_words"
    lobby_code: str
    client_id: int

class StateBroadcastAction(_Frozen):
    type: Literal["state_broadcast"] = "state_broadcast"
    lobby_code: str
    client_id: int
    new_state: PlayerState

class JoinLobbyAction(_Frozen):
    type: Literal["join_lobby"] = "join_lobby"
    lobby_code: str | None # None: no preference, matchmaking picks one
    client_id: int

class RestartLobbyAction(_Frozen):
    type: Literal["restart_lobby"] = "restart_lobby"
    lobby_code: str
    leader_id: int

class DisconnectAction(_Frozen):
    type: Literal["disconnect"] = "disconnect"
    client_id: int

class NoopAction(_Frozen):
    type: Literal["noop"] = "noop"
    reason: str = ""

Action = Union[
    CreateLobbyAction, StartLobbyAction, SendWordsAction, StateBroadcastAction,
    JoinLobbyAction, RestartLobbyAction, DisconnectAction, NoopAction,
]
