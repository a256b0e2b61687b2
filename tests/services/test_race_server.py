# tests/services/test_race_server.py
import logging

import pytest

from typerace.core.config import Settings
from typerace.core.exceptions import LobbyInvariantError
from typerace.models.commands import DisconnectCommand
from typerace.models.game import RaceRunning
from typerace.services.race_server import RaceServer
from typerace.services.server_context import ServerContext


@pytest.fixture
def make_server(context, clock, rng, listener):
    """Builds a server on the shared listener with some settings overridden."""
    def _make(**overrides) -> RaceServer:
        values = dict(COUNTDOWN_SECONDS=5, WORD_COUNT=20, IDLE_TIMEOUT_SECONDS=0)
        values.update(overrides)
        custom = Settings(_env_file=None, **values)
        return RaceServer(listener, ServerContext(words=context.words, settings=custom, clock=clock, rng=rng))
    return _make

def send(server, connection, data: bytes):
    connection.feed(data)
    server.tick()

def create_lobby(server, connection) -> str:
    send(server, connection, b"CREATE\n")
    lines = connection.take_lines()
    assert lines[0].startswith("CREATED ")
    return lines[0].split()[1]

def join_lobby(server, connection, code: str):
    send(server, connection, f"JOIN {code}\n".encode("ascii"))

@pytest.fixture
def race_pair(server, connect):
    """Two clients in one lobby, client 1 leading, all setup output consumed."""
    leader, member = connect(), connect()
    code = create_lobby(server, leader)
    join_lobby(server, member, code)
    leader.take_lines()
    member.take_lines()
    return leader, member, code

def start_race(server, clock, leader, member):
    send(server, leader, b"START\n")
    clock.advance(5)
    server.tick()
    assert leader.take_lines() == ["COUNTDOWN 5", "STARTING"]
    assert member.take_lines() == ["COUNTDOWN 5", "STARTING"]


# --- Full race walkthrough ---

def test_connected_ids_are_sequential(server, listener, make_connection):
    first, second = make_connection(), make_connection()
    listener.pending.extend([first, second])
    server.tick()
    assert first.take_lines() == ["CONNECTED 1"]
    assert second.take_lines() == ["CONNECTED 2"]

def test_create_sends_code_words_and_own_state(server, connect):
    leader = connect()
    send(server, leader, b"CREATE\n")

    created, words, state = leader.take_lines()
    code = created.split()[1]
    assert created == f"CREATED {code}"
    assert len(code) == 5 and code.isalpha() and code.isupper()
    word_list = words.split()[1:]
    assert words.startswith("WORDS ")
    assert len(word_list) == 20
    assert set(word_list) <= set(server.context.words)
    assert state == "STATE 1 0 0 0"

def test_join_sees_whole_field(server, connect):
    leader, member = connect(), connect()
    send(server, leader, b"CREATE\n")
    code = leader.take_lines()[0].split()[1]
    leader_words = server.context.lobbies[code].words

    join_lobby(server, member, code)

    assert member.take_lines() == [
        f"JOINED {code}",
        "WORDS " + " ".join(leader_words),
        "STATE 1 0 0 0",
        "STATE 2 0 0 0",
    ]
    assert leader.take_lines() == ["STATE 1 0 0 0", "STATE 2 0 0 0"]

def test_only_leader_can_start(server, clock, race_pair):
    leader, member, _ = race_pair
    send(server, member, b"START\n")
    assert leader.take_lines() == []
    assert member.take_lines() == []
    assert not member.closed

    send(server, leader, b"START\n")
    assert leader.take_lines() == ["COUNTDOWN 5"]
    assert member.take_lines() == ["COUNTDOWN 5"]

def test_countdown_fires_at_deadline(server, clock, race_pair):
    leader, member, code = race_pair
    send(server, leader, b"START\n")
    leader.take_lines()
    member.take_lines()

    clock.advance(4.9)
    server.tick()
    assert leader.take_lines() == []

    clock.advance(0.2)
    server.tick()
    assert leader.take_lines() == ["STARTING"]
    assert member.take_lines() == ["STARTING"]
    assert isinstance(server.context.lobbies[code].state, RaceRunning)

def test_progress_before_start_is_reset(server, race_pair):
    leader, member, _ = race_pair
    send(server, member, b"STATE 5 3 1\n")
    assert leader.take_lines() == ["STATE 2 0 0 0"]
    assert member.take_lines() == ["STATE 2 0 0 0"]

def test_progress_during_race_is_relayed(server, clock, race_pair):
    leader, member, _ = race_pair
    start_race(server, clock, leader, member)

    send(server, member, b"STATE 5 3 1\n")
    assert leader.take_lines() == ["STATE 2 5 3 1"]
    assert member.take_lines() == ["STATE 2 5 3 1"]

def test_first_finisher_wins_second_is_plain_state(server, clock, race_pair):
    leader, member, code = race_pair
    start_race(server, clock, leader, member)

    send(server, leader, b"STATE 20 0 0\n")
    assert leader.take_lines() == ["FINISHED 1"]
    assert member.take_lines() == ["FINISHED 1"]

    send(server, member, b"STATE 20 0 0\n")
    assert leader.take_lines() == ["STATE 2 20 0 0"]
    assert member.take_lines() == ["STATE 2 20 0 0"]
    assert server.context.lobbies[code].winner == 1

def test_restart_after_finish(server, clock, race_pair):
    leader, member, old_code = race_pair
    start_race(server, clock, leader, member)
    send(server, leader, b"STATE 20 0 0\n")
    leader.take_lines()
    member.take_lines()

    send(server, leader, b"RESTART\n")

    created, leader_words, *leader_states = leader.take_lines()
    new_code = created.split()[1]
    assert created == f"CREATED {new_code}"
    assert new_code != old_code
    assert list(server.context.lobbies) == [new_code]
    assert leader_states == ["STATE 1 0 0 0", "STATE 2 0 0 0"]
    assert member.take_lines() == [f"JOINED {new_code}", leader_words, "STATE 1 0 0 0", "STATE 2 0 0 0"]

    # A fresh race can be started in the new lobby
    start_race(server, clock, leader, member)

def test_restart_by_member_is_ignored(server, clock, race_pair):
    leader, member, code = race_pair
    start_race(server, clock, leader, member)
    send(server, leader, b"STATE 20 0 0\n")
    leader.take_lines()

    send(server, member, b"RESTART\n")
    assert leader.take_lines() == []
    assert list(server.context.lobbies) == [code]
    assert not member.closed

def test_join_random_lands_in_only_lobby(server, connect):
    leader, member = connect(), connect()
    code = create_lobby(server, leader)
    send(server, member, b"JOIN RANDOM\n")
    assert member.take_lines()[0] == f"JOINED {code}"

def test_join_failures_keep_client_connected(server, connect):
    client = connect()
    send(server, client, b"JOIN RANDOM\n")
    send(server, client, b"JOIN ZZZZZ\n")
    assert client.take_lines() == ["JOIN_FAILED", "JOIN_FAILED"]
    assert not client.closed

    # Still free to create a lobby afterwards
    create_lobby(server, client)

# --- Robustness ---

def test_lines_split_across_reads(server, connect):
    client = connect()
    send(server, client, b"CRE")
    assert client.take_lines() == []
    send(server, client, b"ATE\n")
    assert client.take_lines()[0].startswith("CREATED ")

def test_parse_error_keeps_connection(server, connect):
    client = connect()
    send(server, client, b"HELLO\nSTATE 1 two 0\nCREATE\n")
    assert client.take_lines()[0].startswith("CREATED ")
    assert not client.closed

def test_illegal_command_disconnects(server, connect):
    client = connect()
    send(server, client, b"START\n")
    assert client.closed
    assert len(server.context.clients) == 0

def test_joining_twice_disconnects(server, race_pair):
    leader, member, code = race_pair
    send(server, member, f"JOIN {code}\n".encode("ascii"))
    assert member.closed
    assert server.context.lobbies[code].members == {1}

def test_peer_close_removes_client_and_reaps_lobby(server, connect):
    client = connect()
    code = create_lobby(server, client)
    client.peer_closed = True
    server.tick()
    assert client.closed
    assert code not in server.context.lobbies

def test_leader_disconnect_hands_over_start(server, race_pair):
    leader, member, code = race_pair
    leader.peer_closed = True
    server.tick()
    assert server.context.lobbies[code].leader_id == 2

    send(server, member, b"START\n")
    assert member.take_lines() == ["COUNTDOWN 5"]

def test_failed_write_disconnects_only_that_client(server, race_pair):
    leader, member, code = race_pair
    member.fail_writes = True
    send(server, leader, b"START\n")

    assert member.closed
    assert leader.take_lines() == ["COUNTDOWN 5"]
    assert server.context.lobbies[code].members == {1}

def test_overlong_line_disconnects(make_server, listener, make_connection):
    server = make_server(MAX_PENDING_LINE_BYTES=1024)
    client = make_connection()
    listener.pending.append(client)
    server.tick()
    send(server, client, b"A" * 2000)
    assert client.closed

def test_command_cap_carries_over(make_server):
    server = make_server(MAX_COMMANDS_PER_TICK=2)
    for _ in range(5):
        server.context.enqueue(99, DisconnectCommand())

    assert server.process_pending() == 2
    assert len(server.context.pending) == 3
    assert server.process_pending() == 2
    assert server.process_pending() == 1
    assert server.process_pending() == 0

def test_idle_clients_are_evicted(make_server, listener, make_connection, clock):
    server = make_server(IDLE_TIMEOUT_SECONDS=30)
    client = make_connection()
    listener.pending.append(client)
    server.tick()

    clock.advance(20)
    send(server, client, b"CREATE\n")
    clock.advance(29)
    server.tick()
    assert not client.closed

    clock.advance(1)
    server.tick()  # sweep queues the disconnect
    server.tick()
    assert client.closed
    assert len(server.context.lobbies) == 0

def test_idle_eviction_disabled_by_default(server, connect, clock):
    client = connect()
    clock.advance(10_000)
    server.tick()
    server.tick()
    assert not client.closed

def test_internal_error_is_logged_and_loop_continues(server, connect, mocker, caplog):
    client = connect()
    code = create_lobby(server, client)
    client.take_lines()
    mocker.patch(
        "typerace.services.lobby_service.start_countdown",
        side_effect=LobbyInvariantError("Lobby went missing", lobby_code=code),
    )

    with caplog.at_level(logging.ERROR, logger="typerace"):
        send(server, client, b"START\n")

    assert "command abandoned" in caplog.text
    assert not client.closed
    send(server, client, b"RESTART\n")  # still served on later ticks
    assert client.take_lines() == []

# --- Lifecycle ---

def test_close_drops_everything(server, listener, connect):
    first, second = connect(), connect()
    create_lobby(server, first)
    server.close()
    assert first.closed and second.closed
    assert listener.closed
    assert len(server.context.clients) == 0
    assert not server.context.lobbies

def test_serve_forever_until_stopped(server, mocker):
    tick = mocker.spy(server, "tick")
    mocker.patch("typerace.services.race_server.time.sleep", side_effect=lambda _: server.stop())
    server.serve_forever()
    assert tick.call_count == 1
