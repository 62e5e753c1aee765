import logging
from typing import List, Optional

import network
from models import EMPTY, PlayerSymbol
from network import Message, NetworkError, TCPClient

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class GameClient:
    """Client-side mirror of one player's session.

    Views talk to the server only through ``register``, ``make_move`` and
    ``disconnect``, and are told about server messages through optional
    ``on_*`` callbacks set on the instance. All state here is derived from
    what the server pushes; nothing is decided locally.
    """

    def __init__(self, host: str = 'localhost', port: int = network.DEFAULT_PORT):
        self.client = TCPClient(host, port)
        self.setup_message_handlers()
        self.player_name: Optional[str] = None
        self.board_size: Optional[int] = None
        self.game_id: Optional[int] = None
        self.player_symbol: Optional[PlayerSymbol] = None
        self.opponent_text: Optional[str] = None
        self.is_my_turn = False
        self.game_over = False
        self.winner: Optional[str] = None
        self.board: List[List[str]] = []

    def setup_message_handlers(self):
        """Set up message handlers for different message types"""
        self.client.message_handlers = {
            network.REGISTERED: self._handle_registered,
            network.WAITING: self._handle_waiting,
            network.MATCHED: self._handle_matched,
            network.MOVE: self._handle_move,
            network.YOUR_TURN: self._handle_your_turn,
            network.OPPONENT_TURN: self._handle_opponent_turn,
            network.GAME_OVER: self._handle_game_over,
            network.OPPONENT_DISCONNECTED: self._handle_opponent_disconnected,
            network.ERROR: self._handle_error,
        }
        self.client.on_connection_lost = self._handle_connection_lost

    def connect(self) -> bool:
        """Connect to the server"""
        try:
            self.client.connect()
            return True
        except NetworkError as e:
            logger.error(f"Failed to connect: {e}")
            return False

    def disconnect(self):
        """Tell the server we are leaving, then close the socket"""
        try:
            self.client.send_message(Message(network.DISCONNECT))
        except NetworkError:
            pass
        self.client.disconnect()

    def register(self, player_name: str, board_size: int):
        logger.info(f"Registering {player_name} for a {board_size}x{board_size} board")
        self.player_name = player_name
        self.board_size = board_size
        self.client.send_message(Message(network.REGISTER, [player_name, str(board_size)]))

    def make_move(self, row: int, col: int) -> bool:
        """Send a move intent; the server decides whether it counts"""
        if self.game_id is None:
            logger.info("Cannot make move: not in a game")
            return False
        if self.game_over:
            logger.info("Cannot make move: game is over")
            return False
        if not self.is_my_turn:
            logger.info("Cannot make move: not my turn")
            return False

        self.client.send_message(Message(network.MOVE, [str(self.game_id), str(row), str(col)]))
        return True

    def _notify(self, callback_name: str, *args):
        callback = getattr(self, callback_name, None)
        if callback:
            callback(*args)

    def _handle_registered(self, message: Message):
        self._notify('on_registered', message.text())

    def _handle_waiting(self, message: Message):
        self._notify('on_waiting', message.text())

    def _handle_matched(self, message: Message):
        self.game_id = int(message.fields[0])
        self.player_symbol = PlayerSymbol(message.fields[1])
        self.opponent_text = message.text(2)
        self.game_over = False
        self.winner = None
        self.is_my_turn = False
        self.board = [[EMPTY] * self.board_size for _ in range(self.board_size)] if self.board_size else []
        logger.info(f"Matched in game {self.game_id} as {self.player_symbol.value}: {self.opponent_text}")
        self._notify('on_matched', self.game_id, self.player_symbol, self.opponent_text)

    def _handle_move(self, message: Message):
        row, col, symbol = int(message.fields[0]), int(message.fields[1]), message.fields[2]
        if self.board:
            self.board[row][col] = symbol
        self.is_my_turn = False
        self._notify('on_move', row, col, symbol)

    def _handle_your_turn(self, message: Message):
        self.is_my_turn = True
        self._notify('on_your_turn')

    def _handle_opponent_turn(self, message: Message):
        self.is_my_turn = False
        self._notify('on_opponent_turn')

    def _handle_game_over(self, message: Message):
        self.game_over = True
        self.is_my_turn = False
        result = message.fields[0] if message.fields else ""
        self.winner = message.text(1) if result == network.WIN else None
        logger.info(f"Game over: {result} {self.winner or ''}".rstrip())
        self._notify('on_game_over', result, self.winner)

    def _handle_opponent_disconnected(self, message: Message):
        self.game_over = True
        self.is_my_turn = False
        self._notify('on_opponent_disconnected')

    def _handle_error(self, message: Message):
        logger.error(f"Received error: {message.text()}")
        self._notify('on_error', message.text())

    def _handle_connection_lost(self):
        logger.info("Connection to server lost")
        self._notify('on_connection_lost')
