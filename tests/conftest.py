import os
import socket
import sys
import time

import pytest

# Ensure the repository root (holding the top-level modules) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from config import ServerConfig
from server import GameServer


class LineClient:
    """Bare socket speaking the line protocol, for driving the server in tests."""

    def __init__(self, address, timeout=3.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.reader = self.sock.makefile("rb")

    def send(self, line):
        self.sock.sendall((line + "\n").encode("utf-8"))

    def recv(self):
        raw = self.reader.readline()
        if not raw:
            raise EOFError("server closed the connection")
        return raw.decode("utf-8").rstrip("\r\n")

    def recv_many(self, count):
        return [self.recv() for _ in range(count)]

    def at_eof(self):
        try:
            return self.reader.readline() == b""
        except socket.timeout:
            return False
        except ConnectionResetError:
            return True

    def close(self):
        self.reader.close()
        self.sock.close()


def wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture()
def game_server():
    server = GameServer(ServerConfig(host='127.0.0.1', port=0, accept_poll_interval=0.05))
    server.start()
    yield server
    server.stop()


@pytest.fixture()
def connect(game_server):
    clients = []

    def _connect():
        client = LineClient(game_server.address)
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        try:
            client.close()
        except OSError:
            pass


@pytest.fixture()
def matched_pair(connect):
    """Two players, alice (X) and bob (O), seated in a 3x3 game."""
    alice = connect()
    alice.send("REGISTER:alice:3")
    assert alice.recv_many(2) == ["REGISTERED:alice", "WAITING:Looking for an opponent..."]

    bob = connect()
    bob.send("REGISTER:bob:3")
    assert bob.recv() == "REGISTERED:bob"
    matched = bob.recv()
    assert matched.startswith("MATCHED:")
    game_id = int(matched.split(":")[1])
    assert matched == f"MATCHED:{game_id}:O:Playing against alice"
    assert bob.recv() == "OPPONENT_TURN"

    assert alice.recv_many(2) == [f"MATCHED:{game_id}:X:Playing against bob", "YOUR_TURN"]
    return alice, bob, game_id
