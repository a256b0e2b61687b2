# typerace/services/command_pipeline.py
import logging

from typerace.core.exceptions import IllegalCommandError
from typerace.models.commands import (
    Action,
    Command,
    CreateCommand,
    CreateLobbyAction,
    DisconnectAction,
    DisconnectCommand,
    JoinCommand,
    JoinLobbyAction,
    JoinRandomCommand,
    NoopAction,
    RequestWordsCommand,
    RestartCommand,
    RestartLobbyAction,
    SendWordsAction,
    StartCommand,
    StartLobbyAction,
    StateBroadcastAction,
    StateUpdateCommand,
)
from typerace.models.game import (
    ClientState,
    Countdown,
    Lobby,
    PlayerState,
    RaceFinished,
    RaceRunning,
    WaitingForStart,
)

logger = logging.getLogger("typerace.services.command_pipeline")  # Logger for this module


def transition_client(client: ClientState, lobby: Lobby | None, command: Command) -> Action:
    """
    Validates an untrusted command against the client's current lobby and
    returns the action to carry out. Raises IllegalCommandError when the
    command is not allowed in this state (the caller disconnects the client).

    ``lobby`` is a snapshot and is never modified. The only mutations made
    here are to the client's own ``lobby_code`` and ``player_state``.
    """
    if isinstance(command, DisconnectCommand):
        return DisconnectAction(client_id=client.id)

    if lobby is None:
        if isinstance(command, CreateCommand):
            return CreateLobbyAction(leader_id=client.id)
        if isinstance(command, JoinCommand):
            client.lobby_code = command.code
            client.player_state = PlayerState()
            return JoinLobbyAction(lobby_code=command.code, client_id=client.id)
        if isinstance(command, JoinRandomCommand):
            client.player_state = PlayerState()
            return JoinLobbyAction(lobby_code=None, client_id=client.id)
        raise IllegalCommandError(
            "Invalid command when we don't have a lobby", details=command.type, client_id=client.id
        )

    if isinstance(command, CreateCommand):
        logger.warning(f"C:{client.id} sent CREATE while already in L:{lobby.code}.")
        return NoopAction(reason="already in a lobby")

    if isinstance(command, StartCommand):
        if not isinstance(lobby.state, (WaitingForStart, RaceRunning)):
            raise IllegalCommandError(
                "Got START on a lobby in a state we didn't expect",
                details=f"L:{lobby.code} is {lobby.state.kind}",
                client_id=client.id,
            )
        if client.id == lobby.leader_id:
            return StartLobbyAction(lobby_code=lobby.code)
        logger.warning(f"C:{client.id} is misbehaving: START from a non-leader in L:{lobby.code}.")
        return NoopAction(reason="start from non-leader")

    if isinstance(command, StateUpdateCommand):
        new_state = command.state
        if isinstance(lobby.state, (WaitingForStart, Countdown)):
            # Progress before the race starts doesn't count
            new_state = PlayerState()
        elif not isinstance(lobby.state, (RaceRunning, RaceFinished)):
            return NoopAction(reason=f"state update in {lobby.state.kind} lobby")
        client.player_state = new_state
        return StateBroadcastAction(lobby_code=lobby.code, client_id=client.id, new_state=new_state)

    if isinstance(command, JoinCommand):
        raise IllegalCommandError(
            "Tried to join while already in a lobby", details=command.code, client_id=client.id
        )

    if isinstance(command, JoinRandomCommand):
        raise IllegalCommandError(
            "Tried to join a random lobby while already in a lobby", details=lobby.code, client_id=client.id
        )

    if isinstance(command, RestartCommand):
        if client.id != lobby.leader_id:
            logger.warning(f"C:{client.id} is misbehaving: RESTART from a non-leader in L:{lobby.code}.")
            return NoopAction(reason="restart from non-leader")
        if not isinstance(lobby.state, RaceFinished):
            logger.warning(f"C:{client.id} sent RESTART while L:{lobby.code} is {lobby.state.kind}.")
            return NoopAction(reason="restart before the race finished")
        return RestartLobbyAction(lobby_code=lobby.code, leader_id=client.id)

    if isinstance(command, RequestWordsCommand):
        return SendWordsAction(lobby_code=lobby.code, client_id=client.id)

    raise IllegalCommandError("Unknown command", details=repr(command), client_id=client.id)
