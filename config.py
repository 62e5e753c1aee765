import os
from dataclasses import dataclass

from network import DEFAULT_PORT


@dataclass
class ServerConfig:
    host: str = '0.0.0.0'
    port: int = DEFAULT_PORT
    backlog: int = 5
    min_board_size: int = 3
    max_board_size: int = 15
    max_name_length: int = 20
    # how often the accept loop wakes up to check for shutdown (seconds)
    accept_poll_interval: float = 0.5
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls):
        return cls(
            host=os.environ.get('TTT_HOST', cls.host),
            port=int(os.environ.get('TTT_PORT', cls.port)),
            backlog=int(os.environ.get('TTT_BACKLOG', cls.backlog)),
            max_board_size=int(os.environ.get('TTT_MAX_BOARD_SIZE', cls.max_board_size)),
            max_name_length=int(os.environ.get('TTT_MAX_NAME_LENGTH', cls.max_name_length)),
            log_level=os.environ.get('TTT_LOG_LEVEL', cls.log_level).upper(),
        )
