# typerace/services/dispatcher.py
import logging
from typing import List

from typerace.core.exceptions import LobbyInvariantError
from typerace.models.commands import (
    Action,
    CreateLobbyAction,
    DisconnectAction,
    DisconnectCommand,
    JoinLobbyAction,
    NoopAction,
    RequestWordsCommand,
    RestartLobbyAction,
    SendWordsAction,
    StartLobbyAction,
    StateBroadcastAction,
    StateUpdateCommand,
)
from typerace.models.game import Lobby, PlayerState
from typerace.models.messages import (
    CreatedMessage,
    JoinedMessage,
    JoinFailedMessage,
    LobbyEvent,
    ServerMessage,
    WordsMessage,
)
from typerace.services import lobby_service, matchmaking_service, protocol
from typerace.services.server_context import ServerContext
from typerace.services.word_source import choose_race_words

logger = logging.getLogger("typerace.services.dispatcher")  # Logger for this module


class Dispatcher:
    """Carries out validated actions against a ServerContext.

    Writes that fail never raise: they queue a Disconnect for the client,
    which is handled later in the same tick.
    """

    def __init__(self, context: ServerContext):
        self.context = context

    def dispatch(self, client_id: int, action: Action) -> None:
        if isinstance(action, CreateLobbyAction):
            self._create_lobby(action)
        elif isinstance(action, JoinLobbyAction):
            self._join_lobby(action)
        elif isinstance(action, StartLobbyAction):
            self._start_lobby(action)
        elif isinstance(action, StateBroadcastAction):
            self._state_broadcast(action)
        elif isinstance(action, SendWordsAction):
            self._send_words(action)
        elif isinstance(action, RestartLobbyAction):
            self._restart_lobby(action)
        elif isinstance(action, DisconnectAction):
            self._disconnect(action)
        elif isinstance(action, NoopAction):
            logger.debug(f"C:{client_id} - Noop ({action.reason}).")
        else:
            raise LobbyInvariantError("Unknown action", details=repr(action))

    # --- Writing ---

    def send_to_client(self, client_id: int, message: ServerMessage) -> None:
        client = self.context.clients.get(client_id)
        if client is None:
            logger.debug(f"C:{client_id} - Dropping {message.type}, client is gone.")
            return
        if not self.context.clients.send(client, protocol.encode_message(message)):
            self.context.enqueue(client_id, DisconnectCommand())

    def broadcast_to_lobby(self, lobby: Lobby, message: ServerMessage) -> None:
        logger.debug(f"L:{lobby.code} - Broadcasting {message.type} to {sorted(lobby.members)}.")
        for member_id in sorted(lobby.members):
            self.send_to_client(member_id, message)

    def send_events(self, lobby: Lobby, events: List[LobbyEvent]) -> None:
        for event in events:
            if event.broadcast:
                self.broadcast_to_lobby(lobby, event.message)
            elif event.target_client_id is not None:
                self.send_to_client(event.target_client_id, event.message)

    # --- Actions ---

    def _require_lobby(self, lobby_code: str) -> Lobby:
        lobby = self.context.lobbies.get(lobby_code)
        if lobby is None:
            raise LobbyInvariantError("Action refers to a lobby that doesn't exist", lobby_code=lobby_code)
        return lobby

    def _require_client(self, client_id: int):
        client = self.context.clients.get(client_id)
        if client is None:
            raise LobbyInvariantError("Action refers to a client that doesn't exist", details=f"C:{client_id}")
        return client

    def _new_lobby_words(self):
        return choose_race_words(self.context.words, self.context.settings.WORD_COUNT, self.context.rng)

    def _create_lobby(self, action: CreateLobbyAction) -> None:
        client = self._require_client(action.leader_id)
        code = matchmaking_service.new_lobby_code(self.context.lobbies, self.context.rng)
        lobby = lobby_service.create_lobby(code, client.id, self._new_lobby_words())
        self.context.lobbies[code] = lobby
        client.lobby_code = code
        client.player_state = PlayerState()
        self.send_to_client(client.id, CreatedMessage(code=code))
        self.context.enqueue(client.id, RequestWordsCommand())
        self.context.enqueue(client.id, StateUpdateCommand(state=client.player_state))

    def _join_lobby(self, action: JoinLobbyAction) -> None:
        client = self._require_client(action.client_id)
        lobby_code = action.lobby_code
        if lobby_code is None:
            lobby_code = matchmaking_service.choose_random_lobby(self.context.lobbies, self.context.rng)
        lobby = self.context.lobbies.get(lobby_code) if lobby_code is not None else None
        if lobby is None:
            logger.info(f"C:{client.id} - Join failed, no lobby {lobby_code!r}.")
            client.lobby_code = None
            self.send_to_client(client.id, JoinFailedMessage())
            return

        lobby_service.add_member(lobby, client.id)
        client.lobby_code = lobby.code
        logger.info(f"L:{lobby.code} - C:{client.id} joined. Members: {sorted(lobby.members)}")
        self.send_to_client(client.id, JoinedMessage(code=lobby.code))
        self.context.enqueue(client.id, RequestWordsCommand())
        # Every member re-announces its progress so the joiner sees the whole field
        for member_id in sorted(lobby.members):
            member = self._require_client(member_id)
            self.context.enqueue(member_id, StateUpdateCommand(state=member.player_state))

    def _start_lobby(self, action: StartLobbyAction) -> None:
        lobby = self._require_lobby(action.lobby_code)
        events = lobby_service.start_countdown(
            lobby, self.context.clock(), self.context.settings.COUNTDOWN_SECONDS
        )
        self.send_events(lobby, events)

    def _state_broadcast(self, action: StateBroadcastAction) -> None:
        lobby = self._require_lobby(action.lobby_code)
        events = lobby_service.record_progress(lobby, action.client_id, action.new_state)
        self.send_events(lobby, events)

    def _send_words(self, action: SendWordsAction) -> None:
        client = self._require_client(action.client_id)
        if client.lobby_code != action.lobby_code:
            raise LobbyInvariantError(
                "Words requested for a lobby the client isn't in",
                details=f"C:{client.id} is in {client.lobby_code!r}",
                lobby_code=action.lobby_code,
            )
        lobby = self._require_lobby(action.lobby_code)
        self.send_to_client(client.id, WordsMessage(words=lobby.words))

    def _restart_lobby(self, action: RestartLobbyAction) -> None:
        old_lobby = self._require_lobby(action.lobby_code)
        new_code = matchmaking_service.new_lobby_code(self.context.lobbies, self.context.rng)
        new_lobby = lobby_service.restart_lobby(old_lobby, new_code, self._new_lobby_words())
        del self.context.lobbies[old_lobby.code]
        self.context.lobbies[new_code] = new_lobby

        member_ids = sorted(new_lobby.members)
        for member_id in member_ids:
            member = self._require_client(member_id)
            member.lobby_code = new_code
            member.player_state = PlayerState()
            if member_id == new_lobby.leader_id:
                self.send_to_client(member_id, CreatedMessage(code=new_code))
            else:
                self.send_to_client(member_id, JoinedMessage(code=new_code))
            self.context.enqueue(member_id, RequestWordsCommand())
        for member_id in member_ids:
            self.context.enqueue(member_id, StateUpdateCommand(state=PlayerState()))

    def _disconnect(self, action: DisconnectAction) -> None:
        client = self.context.clients.get(action.client_id)
        if client is None:
            logger.debug(f"C:{action.client_id} - Already disconnected.")
            return
        lobby = self.context.lobby_of(client)
        if lobby is not None:
            if lobby_service.remove_member(lobby, client.id):
                del self.context.lobbies[lobby.code]
                logger.info(f"L:{lobby.code} - Removed, no members left. {len(self.context.lobbies)} lobbies remain.")
        self.context.clients.remove(client.id)
