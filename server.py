import argparse
import socket
import logging
import threading
from typing import List, Optional, Sequence, Tuple

import network
from config import ServerConfig
from connection import ClientConnection
from game_logic import GameError, InvalidMoveError
from matchmaking import Matchmaker
from models import GameState, Move, MoveResult, Player
from registry import GameSession, SessionRegistry, UnknownGameError, UnknownPlayerError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ServerStartError(network.NetworkError):
    pass


class GameServer:
    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.registry = SessionRegistry()
        self.matchmaker = Matchmaker(self.registry)
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.stopping = False
        self._accept_thread: Optional[threading.Thread] = None
        self._client_threads: List[threading.Thread] = []
        self._threads_lock = threading.Lock()

    @property
    def address(self) -> Tuple[str, int]:
        if self.server_socket is None:
            return self.config.host, self.config.port
        return self.server_socket.getsockname()[:2]

    def start(self):
        """Bind the listening socket and start accepting in the background.

        Raises ServerStartError if the socket cannot be bound; nothing is
        left running in that case.
        """
        if self.running:
            raise ServerStartError("Server is already running")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            raise ServerStartError(f"Could not listen on {self.config.host}:{self.config.port}: {e}") from e
        sock.settimeout(self.config.accept_poll_interval)

        self.server_socket = sock
        self.running = True
        self.stopping = False
        self._accept_thread = threading.Thread(target=self._accept_connections, name="accept", daemon=True)
        self._accept_thread.start()
        host, port = self.address
        logger.info(f"Server started on {host}:{port}")

    def serve_forever(self):
        self.start()
        try:
            while self._accept_thread.is_alive():
                self._accept_thread.join(timeout=1.0)
        finally:
            self.stop()

    def _accept_connections(self):
        while self.running:
            try:
                conn, addr = self.server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:
                    logger.error(f"Error accepting connection: {e}")
                break

            conn.settimeout(None)
            connection = ClientConnection(conn, addr, self)
            self.registry.add_connection(connection)
            logger.info(f"New client connected: {connection.id}")
            thread = connection.start()
            with self._threads_lock:
                self._client_threads = [t for t in self._client_threads if t.is_alive()]
                self._client_threads.append(thread)

    # REGISTER

    def register_player(self, connection: ClientConnection, name: str, board_size: int):
        self._validate_registration(name, board_size)

        previous = self.registry.get_player(connection.id)
        if previous is not None and self.matchmaker.is_waiting(previous):
            raise GameError("Already waiting for an opponent")

        player = Player(name=name, board_size=board_size, connection_id=connection.id)
        self.registry.register_player(player)
        connection.send(network.registered(name))
        logger.info(f"Player registered: {name} (board size: {board_size}) on {connection.id}")

        self._find_match(connection, player)

    def _validate_registration(self, name: str, board_size: int):
        cfg = self.config
        if not name.strip():
            raise network.ProtocolError("Player name may not be empty")
        if len(name) > cfg.max_name_length:
            raise network.ProtocolError(f"Player name longer than {cfg.max_name_length} characters")
        if not cfg.min_board_size <= board_size <= cfg.max_board_size:
            raise network.ProtocolError(
                f"Board size must be between {cfg.min_board_size} and {cfg.max_board_size}")

    def _find_match(self, connection: ClientConnection, player: Player):
        while True:
            game = self.matchmaker.add_player(player)
            if game is None:
                connection.send(network.waiting())
                return

            session = self.registry.get_game(game.id)
            if session is not None:
                with session.lock:
                    if self.registry.is_active(game.id):
                        self._announce_game(session)
                        return

            # the waiting opponent left before the match could be announced
            logger.info(f"Game {game.id} vanished before it started, re-queueing {player.name}")
            player.symbol = None
            if self.registry.get_player(connection.id) is None:
                return

    def _announce_game(self, session: GameSession):
        game = session.game
        for player in game.players:
            opponent = game.opponent_of(player.connection_id)
            text = f"Playing against {opponent.name}"
            session.connection_for(player.connection_id).send(
                network.matched(game.id, player.symbol.value, text))
        game.start()
        self._notify_turn(session)

    def _notify_turn(self, session: GameSession):
        game = session.game
        for conn in session.connections:
            if game.is_turn_of(conn.id):
                conn.send(network.your_turn())
            else:
                conn.send(network.opponent_turn())

    # MOVE

    def process_move(self, connection: ClientConnection, game_id: int, row: int, col: int):
        session = self.registry.get_game(game_id)
        if session is None:
            raise UnknownGameError("Game not found")

        player = self.registry.get_player(connection.id)
        if player is None:
            raise UnknownPlayerError("Player not found")

        with session.lock:
            if not self.registry.is_active(game_id):
                raise UnknownGameError("Game not found")

            game = session.game
            if game.player_for(connection.id) is None:
                raise UnknownPlayerError("Not a participant in this game")
            if game.state == GameState.IN_PROGRESS and not game.is_turn_of(connection.id):
                raise InvalidMoveError("Not your turn")

            result = game.make_move(Move(row, col))
            move = game.last_move
            logger.info(f"Game {game.id}: {player.name} played {move}")

            self._broadcast(session, network.move_made(move.row, move.col, move.symbol.value))

            if result == MoveResult.WIN:
                self._broadcast(session, network.game_over_win(game.winner.name))
                self.registry.retire_game(game.id)
            elif result == MoveResult.TIE:
                self._broadcast(session, network.game_over_tie())
                self.registry.retire_game(game.id)
            else:
                self._notify_turn(session)

    def _broadcast(self, session: GameSession, message: network.Message):
        for conn in session.connections:
            conn.send(message)

    # DISCONNECT

    def disconnect_client(self, connection: ClientConnection):
        """Tear down everything tied to a connection. Safe to call repeatedly."""
        connection.close()

        player = self.registry.get_player(connection.id)
        if player is not None:
            self.matchmaker.remove_player(player)
        player = self.registry.remove_connection(connection.id)
        if player is not None:
            logger.info(f"Player disconnected: {player.name} ({connection.id})")
        else:
            logger.info(f"Client disconnected: {connection.id}")

        session = self.registry.game_for_connection(connection.id)
        if session is None:
            return

        with session.lock:
            retired = self.registry.retire_game(session.game.id)
            if retired is None:
                return
            logger.info(f"Game {retired.game.id} ended due to player disconnect")
            if retired.game.state == GameState.WAITING_TO_START or self.stopping:
                return
            other = retired.other_connection(connection.id)
            if other is not None:
                other.send(network.opponent_disconnected())

    # introspection / shutdown

    def active_game_count(self) -> int:
        return len(self.registry.active_games())

    def stop(self, timeout: float = 2.0):
        if not self.running:
            return
        self.stopping = True
        self.running = False

        if self.server_socket is not None:
            self.server_socket.close()
        if self._accept_thread is not None and self._accept_thread is not threading.current_thread():
            self._accept_thread.join(timeout)

        for connection in self.registry.connections():
            connection.close()

        with self._threads_lock:
            threads, self._client_threads = self._client_threads, []
        for thread in threads:
            if thread is not threading.current_thread():
                thread.join(timeout)

        self.matchmaker.clear()
        self.registry.clear()
        logger.info("Game server stopped")


def parse_args(argv: Optional[Sequence[str]] = None, base: Optional[ServerConfig] = None) -> ServerConfig:
    config = base or ServerConfig.from_env()
    parser = argparse.ArgumentParser(description="NxN tic-tac-toe matchmaking server")
    parser.add_argument("--host", default=config.host)
    parser.add_argument("--port", type=int, default=config.port)
    parser.add_argument("--max-board-size", type=int, default=config.max_board_size)
    parser.add_argument("--log-level", default=config.log_level,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    args = parser.parse_args(argv)

    config.host = args.host
    config.port = args.port
    config.max_board_size = args.max_board_size
    config.log_level = args.log_level
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = parse_args(argv)
    logging.getLogger().setLevel(config.log_level)

    server = GameServer(config)
    try:
        print("Starting Tic-Tac-Toe server...")
        server.serve_forever()
    except ServerStartError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\n[SERVER] Shutting down...")
        server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
