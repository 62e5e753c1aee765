import socket
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8888
ENCODING = "utf-8"
SEPARATOR = ":"

# client -> server
REGISTER = "REGISTER"
MOVE = "MOVE"
DISCONNECT = "DISCONNECT"

# server -> client
REGISTERED = "REGISTERED"
WAITING = "WAITING"
MATCHED = "MATCHED"
YOUR_TURN = "YOUR_TURN"
OPPONENT_TURN = "OPPONENT_TURN"
GAME_OVER = "GAME_OVER"
OPPONENT_DISCONNECTED = "OPPONENT_DISCONNECTED"
ERROR = "ERROR"

WIN = "WIN"
TIE = "TIE"


@dataclass
class Message:
    type: str
    fields: List[str] = field(default_factory=list)

    def text(self, start: int = 0) -> str:
        """Rejoin trailing free-text fields that may themselves contain ':'."""
        return SEPARATOR.join(self.fields[start:])

    def __str__(self):
        return SEPARATOR.join([self.type, *self.fields])


@dataclass(frozen=True)
class RegisterRequest:
    name: str
    board_size: int


@dataclass(frozen=True)
class MoveRequest:
    game_id: int
    row: int
    col: int


@dataclass(frozen=True)
class DisconnectRequest:
    pass


ClientRequest = Union[RegisterRequest, MoveRequest, DisconnectRequest]


class NetworkError(Exception):
    pass


class ProtocolError(Exception):
    pass


class MessageProtocol:
    @staticmethod
    def pack_message(message: Message) -> bytes:
        """Pack a message into one newline-terminated line"""
        line = str(message)
        if "\n" in line or "\r" in line:
            raise ProtocolError("Message fields may not contain line breaks")
        return (line + "\n").encode(ENCODING)

    @staticmethod
    def unpack_message(data: Union[bytes, str]) -> Message:
        """Unpack one received line into a Message"""
        if isinstance(data, bytes):
            try:
                data = data.decode(ENCODING)
            except UnicodeDecodeError as e:
                raise ProtocolError(f"Invalid encoding: {e}")
        line = data.rstrip("\r\n")
        if not line.strip():
            raise ProtocolError("Empty message")
        kind, *fields = line.split(SEPARATOR)
        return Message(type=kind, fields=fields)


def _parse_int(value: str, what: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ProtocolError(f"Invalid {what}: {value!r}")


def parse_client_message(data: Union[bytes, str]) -> ClientRequest:
    message = MessageProtocol.unpack_message(data)

    if message.type == REGISTER:
        if len(message.fields) != 2:
            raise ProtocolError("Expected REGISTER:name:size")
        name, size = message.fields
        return RegisterRequest(name=name, board_size=_parse_int(size, "board size"))

    if message.type == MOVE:
        if len(message.fields) != 3:
            raise ProtocolError("Expected MOVE:gameId:row:col")
        game_id, row, col = message.fields
        return MoveRequest(
            game_id=_parse_int(game_id, "game id"),
            row=_parse_int(row, "row"),
            col=_parse_int(col, "column"),
        )

    if message.type == DISCONNECT:
        if message.fields:
            raise ProtocolError("DISCONNECT takes no arguments")
        return DisconnectRequest()

    raise ProtocolError(f"Unknown command: {message.type}")


# Builders for everything the server sends.

def registered(name: str) -> Message:
    return Message(REGISTERED, [name])


def waiting(text: str = "Looking for an opponent...") -> Message:
    return Message(WAITING, [text])


def matched(game_id: int, symbol: str, text: str) -> Message:
    return Message(MATCHED, [str(game_id), symbol, text])


def move_made(row: int, col: int, symbol: str) -> Message:
    return Message(MOVE, [str(row), str(col), symbol])


def your_turn() -> Message:
    return Message(YOUR_TURN)


def opponent_turn() -> Message:
    return Message(OPPONENT_TURN)


def game_over_win(winner_name: str) -> Message:
    return Message(GAME_OVER, [WIN, winner_name])


def game_over_tie() -> Message:
    return Message(GAME_OVER, [TIE])


def opponent_disconnected() -> Message:
    return Message(OPPONENT_DISCONNECTED)


def error(text: str) -> Message:
    return Message(ERROR, [" ".join(str(text).split())])


class TCPClient:
    def __init__(self, host: str = 'localhost', port: int = DEFAULT_PORT):
        self.host = host
        self.port = port
        self.socket: Optional[socket.socket] = None
        self.running = False
        self.message_handlers: Dict[str, Callable[[Message], None]] = {}
        self.on_connection_lost: Optional[Callable[[], None]] = None
        self._send_lock = threading.Lock()
        self.receive_thread: Optional[threading.Thread] = None

    def connect(self, timeout: Optional[float] = 5.0):
        """Connect to the server"""
        try:
            self.socket = socket.create_connection((self.host, self.port), timeout=timeout)
            self.socket.settimeout(None)
        except OSError as e:
            raise NetworkError(f"Failed to connect: {e}")
        self.running = True
        self.receive_thread = threading.Thread(target=self._receive_messages, daemon=True)
        self.receive_thread.start()
        logger.info(f"Connected to server at {self.host}:{self.port}")

    def disconnect(self):
        """Disconnect from the server"""
        was_running = self.running
        self.running = False
        if self.socket is None:
            return
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.socket.close()
        if was_running:
            logger.info("Disconnected from server")

    def send_message(self, message: Message):
        """Send a message to the server"""
        if self.socket is None or not self.running:
            raise NetworkError("Not connected")
        data = MessageProtocol.pack_message(message)
        try:
            with self._send_lock:
                self.socket.sendall(data)
        except OSError as e:
            raise NetworkError(f"Failed to send message: {e}")

    def _receive_messages(self):
        """Receive lines from the server and dispatch them by message type"""
        reader = self.socket.makefile("rb")
        try:
            for raw in reader:
                if not self.running:
                    break
                try:
                    message = MessageProtocol.unpack_message(raw)
                except ProtocolError as e:
                    logger.warning(f"Ignoring malformed server message: {e}")
                    continue
                handler = self.message_handlers.get(message.type)
                if handler:
                    handler(message)
                else:
                    logger.warning(f"Unknown message type: {message.type}")
        except OSError as e:
            if self.running:
                logger.error(f"Error receiving message: {e}")
        finally:
            reader.close()
            lost = self.running
            self.disconnect()
            if lost and self.on_connection_lost:
                self.on_connection_lost()
