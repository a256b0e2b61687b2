# typerace/services/lobby_service.py
"""Lobby state machine.

    WaitingForStart --leader START--> Countdown(deadline) --sweep--> RaceRunning
    RaceRunning --first finisher--> RaceFinished --leader RESTART--> (new lobby)

Every transition returns the LobbyEvents the dispatcher has to write. Nothing
in here touches sockets or the registries.
"""
import logging
from typing import List, Sequence

from typerace.models.game import (
    Countdown,
    Dead,
    Lobby,
    PlayerState,
    RaceFinished,
    RaceRunning,
    WaitingForStart,
)
from typerace.models.messages import (
    CountdownMessage,
    FinishedMessage,
    LobbyEvent,
    StartingMessage,
    StateMessage,
)

logger = logging.getLogger("typerace.services.lobby_service")  # Logger for this module


def create_lobby(code: str, leader_id: int, words: Sequence[str]) -> Lobby:
    lobby = Lobby(code=code, leader_id=leader_id, members={leader_id}, words=tuple(words))
    logger.info(f"L:{code} - Created by C:{leader_id} with {len(lobby.words)} words.")
    return lobby


def start_countdown(lobby: Lobby, now: float, countdown_seconds: int) -> List[LobbyEvent]:
    lobby.state = Countdown(deadline=now + countdown_seconds)
    logger.info(f"L:{lobby.code} - Countdown started ({countdown_seconds}s).")
    return [LobbyEvent(CountdownMessage(seconds=countdown_seconds), broadcast=True)]


def advance_countdown(lobby: Lobby, now: float) -> List[LobbyEvent]:
    """Moves a lobby whose countdown has elapsed into the running race."""
    if not isinstance(lobby.state, Countdown) or lobby.state.deadline > now:
        return []
    lobby.state = RaceRunning()
    logger.info(f"L:{lobby.code} - Race started.")
    return [LobbyEvent(StartingMessage(), broadcast=True)]


def record_progress(lobby: Lobby, client_id: int, state: PlayerState) -> List[LobbyEvent]:
    """Broadcasts a member's progress, or declares them the winner.

    Only the first member to reach the end of the word list wins. Later
    finishers are broadcast like any other progress line.
    """
    if lobby.winner is None and state.current_word_index >= len(lobby.words):
        lobby.winner = client_id
        lobby.state = RaceFinished()
        logger.info(f"L:{lobby.code} - Finished with winner C:{client_id}.")
        return [LobbyEvent(FinishedMessage(client_id=client_id), broadcast=True)]
    return [LobbyEvent(StateMessage(client_id=client_id, state=state), broadcast=True)]


def add_member(lobby: Lobby, client_id: int) -> None:
    if client_id in lobby.members:
        logger.warning(f"L:{lobby.code} - C:{client_id} is already a member.")
    lobby.members.add(client_id)


def remove_member(lobby: Lobby, client_id: int) -> bool:
    """Drops a member. Returns True when the lobby has nobody left.

    A departing leader is replaced by the remaining member with the lowest id.
    An emptied lobby is marked Dead so stale references can tell.
    """
    lobby.members.discard(client_id)
    if not lobby.members:
        lobby.state = Dead()
        logger.info(f"L:{lobby.code} - Last member C:{client_id} left.")
        return True
    if lobby.leader_id == client_id:
        lobby.leader_id = min(lobby.members)
        logger.info(f"L:{lobby.code} - Leader C:{client_id} left, C:{lobby.leader_id} now leads.")
    return False


def restart_lobby(lobby: Lobby, new_code: str, words: Sequence[str]) -> Lobby:
    """Builds the follow-up lobby for the same group after a finished race."""
    new_lobby = Lobby(
        code=new_code,
        leader_id=lobby.leader_id,
        state=WaitingForStart(),
        members=set(lobby.members),
        words=tuple(words),
    )
    lobby.state = Dead()
    logger.info(f"L:{lobby.code} - Restarted as L:{new_code} with members {sorted(new_lobby.members)}.")
    return new_lobby
