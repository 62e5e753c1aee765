import threading

import pytest

from matchmaking import Matchmaker
from models import GameState, Player, PlayerSymbol
from registry import SessionRegistry


class FakeConnection:
    def __init__(self, conn_id):
        self.id = conn_id


@pytest.fixture()
def registry():
    return SessionRegistry()


@pytest.fixture()
def matchmaker(registry):
    return Matchmaker(registry)


def new_player(registry, name, size=3):
    conn = FakeConnection(f"conn-{name}")
    registry.add_connection(conn)
    player = Player(name, size, conn.id)
    registry.register_player(player)
    return player


def test_first_player_waits(registry, matchmaker):
    alice = new_player(registry, "alice")
    assert matchmaker.add_player(alice) is None
    assert matchmaker.is_waiting(alice)
    assert matchmaker.waiting_players() == {3: ["alice"]}


def test_second_player_is_matched_with_waiting_one(registry, matchmaker):
    alice = new_player(registry, "alice")
    bob = new_player(registry, "bob")
    matchmaker.add_player(alice)
    game = matchmaker.add_player(bob)

    assert game is not None
    assert game.state == GameState.WAITING_TO_START
    assert game.player_a is alice and game.player_b is bob
    assert alice.symbol == PlayerSymbol.X
    assert bob.symbol == PlayerSymbol.O
    assert not matchmaker.is_waiting(alice)
    assert matchmaker.waiting_players() == {}

    session = registry.get_game(game.id)
    assert session.game is game
    assert registry.game_for_connection("conn-alice") is session
    assert registry.game_for_connection("conn-bob") is session


def test_matching_is_fifo_per_board_size(registry, matchmaker):
    w1 = new_player(registry, "w1")
    w2 = new_player(registry, "w2")
    r = new_player(registry, "r")
    matchmaker.add_player(w1)
    matchmaker.add_player(w2)

    game = matchmaker.add_player(r)
    assert game.player_a is w1
    assert matchmaker.waiting_players() == {3: ["w2"]}


def test_board_sizes_are_kept_apart(registry, matchmaker):
    small = new_player(registry, "small", 3)
    big = new_player(registry, "big", 5)
    assert matchmaker.add_player(small) is None
    assert matchmaker.add_player(big) is None
    assert matchmaker.waiting_players() == {3: ["small"], 5: ["big"]}

    other_big = new_player(registry, "other_big", 5)
    game = matchmaker.add_player(other_big)
    assert game.player_a is big
    assert game.board.size == 5


def test_player_cannot_queue_twice(registry, matchmaker):
    alice = new_player(registry, "alice")
    matchmaker.add_player(alice)
    with pytest.raises(ValueError):
        matchmaker.add_player(alice)
    assert matchmaker.waiting_players() == {3: ["alice"]}


def test_removed_player_is_not_matched(registry, matchmaker):
    alice = new_player(registry, "alice")
    bob = new_player(registry, "bob")
    matchmaker.add_player(alice)
    assert matchmaker.remove_player(alice)
    assert not matchmaker.remove_player(alice)
    assert matchmaker.add_player(bob) is None
    assert matchmaker.waiting_players() == {3: ["bob"]}


def test_waiting_player_without_connection_is_skipped(registry, matchmaker):
    ghost = new_player(registry, "ghost")
    alice = new_player(registry, "alice")
    bob = new_player(registry, "bob")
    matchmaker.add_player(ghost)
    matchmaker.add_player(alice)
    registry.remove_connection(ghost.connection_id)

    game = matchmaker.add_player(bob)
    assert game.player_a is alice


def test_game_ids_increase(registry, matchmaker):
    ids = []
    for i in range(3):
        matchmaker.add_player(new_player(registry, f"a{i}"))
        ids.append(matchmaker.add_player(new_player(registry, f"b{i}")).id)
    assert ids == sorted(ids)
    assert len(set(ids)) == 3


def test_concurrent_registrations_never_share_an_opponent(registry, matchmaker):
    players = [new_player(registry, f"p{i}") for i in range(40)]
    games = []
    games_lock = threading.Lock()
    barrier = threading.Barrier(len(players))

    def register(player):
        barrier.wait()
        game = matchmaker.add_player(player)
        if game is not None:
            with games_lock:
                games.append(game)

    threads = [threading.Thread(target=register, args=(p,)) for p in players]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert len(games) == 20
    seated = [p.connection_id for g in games for p in g.players]
    assert len(seated) == len(set(seated)) == 40
    for game in games:
        assert game.player_a.connection_id != game.player_b.connection_id
    assert matchmaker.waiting_players() == {}
