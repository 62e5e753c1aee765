from dataclasses import replace
from typing import List, Optional, Tuple
import logging

from models import EMPTY, GameState, Move, MoveResult, Player, PlayerSymbol

logger = logging.getLogger(__name__)

MIN_BOARD_SIZE = 3


class GameError(Exception):
    pass


class InvalidMoveError(GameError):
    pass


class GameStateError(GameError):
    pass


class Board:
    """Square grid of cells that are either EMPTY or hold a player symbol.

    Win detection only looks at the lines running through the cell that was
    just filled, so each placement costs O(size) rather than O(size**2).
    """

    def __init__(self, size: int):
        if size < MIN_BOARD_SIZE:
            raise ValueError(f"Board size must be at least {MIN_BOARD_SIZE}, got {size}")
        self.size = size
        self.cells: List[List[str]] = []
        self.initialize()

    def initialize(self):
        self.cells = [[EMPTY for _ in range(self.size)] for _ in range(self.size)]

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def is_cell_empty(self, row: int, col: int) -> bool:
        return self.cells[row][col] == EMPTY

    def place(self, row: int, col: int, symbol: PlayerSymbol) -> MoveResult:
        """Fill a cell the caller has already checked is empty."""
        self.cells[row][col] = symbol.value

        if self.check_winner(row, col, symbol):
            return MoveResult.WIN
        if self.is_full():
            return MoveResult.TIE
        return MoveResult.CONTINUE

    def check_winner(self, row: int, col: int, symbol: PlayerSymbol) -> bool:
        mark = symbol.value
        n = self.size

        if all(self.cells[row][j] == mark for j in range(n)):
            return True

        if all(self.cells[i][col] == mark for i in range(n)):
            return True

        # diagonals only count when the move sits on them
        if row == col and all(self.cells[i][i] == mark for i in range(n)):
            return True

        if row + col == n - 1 and all(self.cells[i][n - 1 - i] == mark for i in range(n)):
            return True

        return False

    def is_full(self) -> bool:
        for row in self.cells:
            for cell in row:
                if cell == EMPTY:
                    return False
        return True

    def snapshot(self) -> Tuple[Tuple[str, ...], ...]:
        return tuple(tuple(row) for row in self.cells)


class Game:
    def __init__(self, game_id: int, player_a: Player, player_b: Player, board_size: int):
        self.id = game_id
        self.board = Board(board_size)
        self.player_a = player_a
        self.player_b = player_b
        self.current_turn_index = 0
        self.state = GameState.WAITING_TO_START
        self.winner: Optional[Player] = None
        self.last_move: Optional[Move] = None

    @property
    def players(self) -> Tuple[Player, Player]:
        return self.player_a, self.player_b

    @property
    def current_player(self) -> Player:
        return self.players[self.current_turn_index]

    @property
    def is_over(self) -> bool:
        return self.state in (GameState.PLAYER_WON, GameState.TIE)

    def player_for(self, connection_id: str) -> Optional[Player]:
        for player in self.players:
            if player.connection_id == connection_id:
                return player
        return None

    def opponent_of(self, connection_id: str) -> Optional[Player]:
        if self.player_a.connection_id == connection_id:
            return self.player_b
        if self.player_b.connection_id == connection_id:
            return self.player_a
        return None

    def is_turn_of(self, connection_id: str) -> bool:
        return self.current_player.connection_id == connection_id

    def start(self):
        if self.state != GameState.WAITING_TO_START:
            raise GameStateError(f"Game {self.id} has already been started")
        self.board.initialize()
        self.state = GameState.IN_PROGRESS
        logger.info(f"Game {self.id} started: {self.player_a} vs {self.player_b}")

    def make_move(self, move: Move) -> MoveResult:
        """Apply a move for whoever holds the turn.

        The symbol carried by ``move`` is ignored; the placed symbol always
        comes from the current player. Raises before touching any state if
        the move is rejected.
        """
        if self.state == GameState.WAITING_TO_START:
            raise GameStateError("Game has not started")
        if self.state != GameState.IN_PROGRESS:
            raise GameStateError("Game is over")

        if not self.board.in_bounds(move.row, move.col):
            raise InvalidMoveError("Position out of bounds")

        if not self.board.is_cell_empty(move.row, move.col):
            raise InvalidMoveError("Position already taken")

        player = self.current_player
        stamped = replace(move, symbol=player.symbol)

        result = self.board.place(stamped.row, stamped.col, stamped.symbol)
        self.last_move = stamped

        if result == MoveResult.WIN:
            self.state = GameState.PLAYER_WON
            self.winner = player
            logger.info(f"Game {self.id} won by {player.name}")
        elif result == MoveResult.TIE:
            self.state = GameState.TIE
            logger.info(f"Game {self.id} ended in a tie")
        else:
            self.current_turn_index = (self.current_turn_index + 1) % 2

        return result

    def board_snapshot(self) -> Tuple[Tuple[str, ...], ...]:
        return self.board.snapshot()
