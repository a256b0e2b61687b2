# typerace/models/game.py
from dataclasses import dataclass, field
from typing import Any, Literal, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

class PlayerState(BaseModel):
    """Race progress of one client. Immutable, compared by value."""
    model_config = ConfigDict(frozen=True)

    current_word_index: int = 0
    current_completed_character_count: int = 0
    made_mistake: bool = False

# --- Lobby states. Only Countdown carries data. ---
class WaitingForStart(BaseModel):
    kind: Literal["waiting_for_start"] = "waiting_for_start"

class Countdown(BaseModel):
    kind: Literal["countdown"] = "countdown"
    deadline: float # Clock value at which the race begins

class RaceRunning(BaseModel):
    kind: Literal["race_running"] = "race_running"

class RaceFinished(BaseModel):
    kind: Literal["race_finished"] = "race_finished"

class Dead(BaseModel):
    kind: Literal["dead"] = "dead"

LobbyState = Union[WaitingForStart, Countdown, RaceRunning, RaceFinished, Dead]

class Lobby(BaseModel):
    code: str
    leader_id: int
    state: LobbyState = Field(default_factory=WaitingForStart, discriminator="kind")
    winner: int | None = None # Set once, by the first member to reach the end of the words
    members: Set[int] = Field(default_factory=set)
    words: Tuple[str, ...] # Chosen at creation, never changes

@dataclass(eq=False)
class ClientState:
    """Per-connection bookkeeping owned by the client registry."""
    id: int
    connection: Any # socket.socket in production, a fake in tests
    read_buffer: bytearray = field(default_factory=bytearray)
    player_state: PlayerState = field(default_factory=PlayerState)
    lobby_code: str | None = None
    last_activity: float = 0.0
