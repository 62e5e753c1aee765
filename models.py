from dataclasses import dataclass
from typing import Optional
from enum import Enum

EMPTY = "-"


class PlayerSymbol(str, Enum):
    X = "X"
    O = "O"


class GameState(str, Enum):
    WAITING_TO_START = "WAITING_TO_START"
    IN_PROGRESS = "IN_PROGRESS"
    PLAYER_WON = "PLAYER_WON"
    TIE = "TIE"


class MoveResult(Enum):
    WIN = "win"
    TIE = "tie"
    CONTINUE = "continue"


@dataclass(frozen=True)
class Move:
    row: int
    col: int
    symbol: Optional[PlayerSymbol] = None

    def __str__(self):
        return f"({self.row},{self.col}):{self.symbol.value if self.symbol else '?'}"


@dataclass
class Player:
    name: str
    board_size: int
    connection_id: str
    symbol: Optional[PlayerSymbol] = None

    def __str__(self):
        return f"{self.name} ({self.symbol.value if self.symbol else '-'})"
