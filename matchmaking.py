import logging
import threading
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from game_logic import Game
from models import Player, PlayerSymbol
from registry import SessionRegistry

logger = logging.getLogger(__name__)


class Matchmaker:
    """Pairs players who asked for the same board size, oldest waiter first."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self._lock = threading.Lock()
        self._waiting: Dict[int, Deque[Player]] = defaultdict(deque)

    def add_player(self, player: Player) -> Optional[Game]:
        """Queue ``player`` or pair it with the longest-waiting compatible player.

        Popping the opponent, creating the game and registering it happen in
        one critical section, so two registrations racing for the same size
        can never both claim the same waiting player.
        """
        with self._lock:
            if self._is_queued(player):
                raise ValueError(f"Player {player.name} is already waiting")

            queue = self._waiting[player.board_size]
            while queue:
                opponent = queue.popleft()
                opponent_conn = self.registry.get_connection(opponent.connection_id)
                if opponent_conn is None:
                    logger.warning(f"Dropping stale waiting player {opponent.name}")
                    continue
                player_conn = self.registry.get_connection(player.connection_id)
                if player_conn is None:
                    queue.appendleft(opponent)
                    return None
                return self._create_game(opponent, player, opponent_conn, player_conn)

            queue.append(player)
            logger.info(f"Player {player.name} is waiting for a {player.board_size}x{player.board_size} match")
            return None

    def _create_game(self, waiting, newcomer, waiting_conn, newcomer_conn) -> Game:
        waiting.symbol = PlayerSymbol.X
        newcomer.symbol = PlayerSymbol.O

        game = Game(self.registry.next_game_id(), waiting, newcomer, waiting.board_size)
        self.registry.add_game(game, waiting_conn, newcomer_conn)
        logger.info(f"Matched {waiting.name} and {newcomer.name} in game {game.id}")
        return game

    def _is_queued(self, player: Player) -> bool:
        return any(p.connection_id == player.connection_id
                   for p in self._waiting.get(player.board_size, ()))

    def remove_player(self, player: Player) -> bool:
        with self._lock:
            queue = self._waiting.get(player.board_size)
            if not queue:
                return False
            for waiting in queue:
                if waiting.connection_id == player.connection_id:
                    queue.remove(waiting)
                    logger.info(f"Player {player.name} left the matchmaking queue")
                    return True
            return False

    def is_waiting(self, player: Player) -> bool:
        with self._lock:
            return self._is_queued(player)

    def waiting_players(self) -> Dict[int, List[str]]:
        with self._lock:
            return {size: [p.name for p in queue] for size, queue in self._waiting.items() if queue}

    def clear(self):
        with self._lock:
            self._waiting.clear()
