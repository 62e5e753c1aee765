import socket
import logging
import threading
from typing import TYPE_CHECKING, Tuple

import network
from game_logic import GameError
from network import (
    DisconnectRequest,
    Message,
    MessageProtocol,
    MoveRequest,
    ProtocolError,
    RegisterRequest,
)

if TYPE_CHECKING:
    from server import GameServer

logger = logging.getLogger(__name__)


class ClientConnection:
    """One client socket and the thread that reads from it.

    The reader blocks on this socket only. Anything that needs to reach this
    client, from any thread, goes through ``send``.
    """

    def __init__(self, sock: socket.socket, address: Tuple[str, int], server: "GameServer"):
        self.sock = sock
        self.address = address
        self.id = f"{address[0]}:{address[1]}"
        self.server = server
        self.thread = None
        self._send_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False

    def __repr__(self):
        return f"<ClientConnection {self.id}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> threading.Thread:
        self.thread = threading.Thread(target=self.run, name=f"client-{self.id}", daemon=True)
        self.thread.start()
        return self.thread

    def run(self):
        reader = self.sock.makefile("rb")
        try:
            for raw in reader:
                if self._closed:
                    break
                if not self.handle_line(raw):
                    break
        except OSError as e:
            if not self._closed:
                logger.info(f"Connection {self.id} dropped: {e}")
        except Exception:
            logger.exception(f"Unexpected error handling client {self.id}")
        finally:
            reader.close()
            self.close()
            self.server.disconnect_client(self)

    def handle_line(self, raw: bytes) -> bool:
        """Dispatch one received line. Returns False once the client has left."""
        if not raw.strip():
            return True
        logger.debug(f"[{self.id}] <- {raw.rstrip()!r}")
        try:
            request = network.parse_client_message(raw)
            if isinstance(request, RegisterRequest):
                self.server.register_player(self, request.name, request.board_size)
            elif isinstance(request, MoveRequest):
                self.server.process_move(self, request.game_id, request.row, request.col)
            elif isinstance(request, DisconnectRequest):
                logger.info(f"Client {self.id} asked to disconnect")
                return False
        except ProtocolError as e:
            logger.warning(f"Malformed message from {self.id}: {e}")
            self.send(network.error(str(e)))
        except GameError as e:
            logger.warning(f"Rejected request from {self.id}: {e}")
            self.send(network.error(str(e)))
        return True

    def send(self, message: Message) -> bool:
        """Write one message; a failed write closes the connection."""
        if self._closed:
            return False
        data = MessageProtocol.pack_message(message)
        try:
            with self._send_lock:
                self.sock.sendall(data)
        except OSError as e:
            logger.info(f"Error sending to {self.id}: {e}")
            self.close()
            return False
        logger.debug(f"[{self.id}] -> {message}")
        return True

    def close(self):
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
