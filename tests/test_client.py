import functools
import queue

import pytest

from client import GameClient
from models import PlayerSymbol

CALLBACKS = (
    "on_registered",
    "on_waiting",
    "on_matched",
    "on_move",
    "on_your_turn",
    "on_opponent_turn",
    "on_game_over",
    "on_opponent_disconnected",
    "on_error",
)


def record(events, name, *args):
    events.put((name, args))


def wait_event(events, name, timeout=3.0):
    while True:
        got, args = events.get(timeout=timeout)
        if got == name:
            return args


@pytest.fixture()
def make_client(game_server):
    clients = []

    def _make():
        events = queue.Queue()
        client = GameClient(*game_server.address)
        for name in CALLBACKS:
            setattr(client, name, functools.partial(record, events, name))
        assert client.connect()
        clients.append(client)
        return client, events

    yield _make
    for client in clients:
        client.client.disconnect()


def test_two_clients_play_to_a_win(make_client):
    alice, alice_events = make_client()
    bob, bob_events = make_client()

    alice.register("alice", 3)
    assert wait_event(alice_events, "on_waiting") == ("Looking for an opponent...",)
    bob.register("bob", 3)

    game_id, symbol, text = wait_event(alice_events, "on_matched")
    assert symbol == PlayerSymbol.X
    assert text == "Playing against bob"
    wait_event(alice_events, "on_your_turn")
    assert bob.make_move(0, 0) is False

    for mover, mover_events, other_events, (row, col) in [
        (alice, alice_events, bob_events, (0, 0)),
        (bob, bob_events, alice_events, (1, 0)),
        (alice, alice_events, bob_events, (0, 1)),
        (bob, bob_events, alice_events, (1, 1)),
    ]:
        assert mover.make_move(row, col)
        wait_event(other_events, "on_your_turn")

    assert alice.make_move(0, 2)
    assert wait_event(alice_events, "on_game_over") == ("WIN", "alice")
    assert wait_event(bob_events, "on_game_over") == ("WIN", "alice")

    assert alice.game_over and bob.game_over
    assert alice.winner == "alice"
    assert bob.game_id == game_id
    assert bob.player_symbol == PlayerSymbol.O
    assert bob.board == [["X", "X", "X"], ["O", "O", "-"], ["-", "-", "-"]]
    assert alice.make_move(2, 2) is False


def test_server_errors_reach_the_view(make_client):
    alice, alice_events = make_client()
    alice.register("alice", 2)
    (text,) = wait_event(alice_events, "on_error")
    assert text.startswith("Board size must be between")


def test_opponent_leaving_is_reported(make_client):
    alice, alice_events = make_client()
    bob, bob_events = make_client()
    alice.register("alice", 4)
    wait_event(alice_events, "on_waiting")
    bob.register("bob", 4)
    wait_event(bob_events, "on_opponent_turn")
    assert len(bob.board) == 4

    alice.disconnect()
    wait_event(bob_events, "on_opponent_disconnected")
    assert bob.game_over
    assert not bob.is_my_turn


def test_connect_failure_returns_false():
    client = GameClient('127.0.0.1', 1)
    assert client.connect() is False
