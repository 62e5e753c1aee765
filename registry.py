"""Process-wide bookkeeping of who is connected and who is playing what.

Every handler thread reads and writes through one ``SessionRegistry``. Its
own lock only protects the maps; game state is protected by the per-game
lock on each ``GameSession``. When both are needed, take the game lock
first.
"""
import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from game_logic import Game, GameError
from models import Player

if TYPE_CHECKING:
    from connection import ClientConnection

logger = logging.getLogger(__name__)


class UnknownGameError(GameError):
    pass


class UnknownPlayerError(GameError):
    pass


@dataclass
class GameSession:
    game: Game
    connection_a: "ClientConnection"
    connection_b: "ClientConnection"
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def connections(self):
        return self.connection_a, self.connection_b

    def connection_for(self, connection_id: str) -> Optional["ClientConnection"]:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def other_connection(self, connection_id: str) -> Optional["ClientConnection"]:
        if self.connection_a.id == connection_id:
            return self.connection_b
        if self.connection_b.id == connection_id:
            return self.connection_a
        return None


class SessionRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, "ClientConnection"] = {}
        self._players: Dict[str, Player] = {}
        self._games: Dict[int, GameSession] = {}
        self._game_by_connection: Dict[str, int] = {}
        self._game_ids = itertools.count(1)

    # connections

    def add_connection(self, connection: "ClientConnection"):
        with self._lock:
            self._connections[connection.id] = connection

    def get_connection(self, connection_id: str) -> Optional["ClientConnection"]:
        with self._lock:
            return self._connections.get(connection_id)

    def connections(self) -> List["ClientConnection"]:
        with self._lock:
            return list(self._connections.values())

    def remove_connection(self, connection_id: str) -> Optional[Player]:
        """Forget a connection and its player. Safe to call more than once."""
        with self._lock:
            self._connections.pop(connection_id, None)
            return self._players.pop(connection_id, None)

    # players

    def register_player(self, player: Player) -> Optional[Player]:
        """Bind ``player`` to its connection, replacing a previous identity.

        Refused while the connection is still seated in an active game.
        """
        with self._lock:
            if player.connection_id not in self._connections:
                raise UnknownPlayerError("Connection is not open")
            if player.connection_id in self._game_by_connection:
                raise GameError("Already playing a game")
            previous = self._players.get(player.connection_id)
            self._players[player.connection_id] = player
            return previous

    def get_player(self, connection_id: str) -> Optional[Player]:
        with self._lock:
            return self._players.get(connection_id)

    # games

    def next_game_id(self) -> int:
        with self._lock:
            return next(self._game_ids)

    def add_game(self, game: Game, connection_a: "ClientConnection",
                 connection_b: "ClientConnection") -> GameSession:
        session = GameSession(game, connection_a, connection_b)
        with self._lock:
            self._games[game.id] = session
            self._game_by_connection[connection_a.id] = game.id
            self._game_by_connection[connection_b.id] = game.id
        logger.info(f"Registered game {game.id} ({connection_a.id} vs {connection_b.id})")
        return session

    def get_game(self, game_id: int) -> Optional[GameSession]:
        with self._lock:
            return self._games.get(game_id)

    def is_active(self, game_id: int) -> bool:
        with self._lock:
            return game_id in self._games

    def game_for_connection(self, connection_id: str) -> Optional[GameSession]:
        with self._lock:
            game_id = self._game_by_connection.get(connection_id)
            if game_id is None:
                return None
            return self._games.get(game_id)

    def retire_game(self, game_id: int) -> Optional[GameSession]:
        """Remove a game. Only the first caller gets the session back."""
        with self._lock:
            session = self._games.pop(game_id, None)
            if session is None:
                return None
            for conn in session.connections:
                if self._game_by_connection.get(conn.id) == game_id:
                    del self._game_by_connection[conn.id]
        logger.info(f"Retired game {game_id} ({session.game.state.value})")
        return session

    def active_games(self) -> List[GameSession]:
        with self._lock:
            return list(self._games.values())

    def clear(self):
        with self._lock:
            self._connections.clear()
            self._players.clear()
            self._games.clear()
            self._game_by_connection.clear()
