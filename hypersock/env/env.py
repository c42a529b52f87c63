from __future__ import annotations

from pydantic import BaseModel, StrictInt, StrictStr
from typing import Callable, Dict, Literal, Union

from .time_parser import TimeParser

PrimaryType = Union[str, int, float, bytes, bool]


class Env(BaseModel):
    HYPERSOCK_DEMULTIPLEXER_THREADS: StrictInt = 1
    HYPERSOCK_CONNECT_TIMEOUT: StrictStr = "10s"
    HYPERSOCK_CONNECT_RETRIES: StrictInt = 3
    HYPERSOCK_CONNECT_RETRY_BASE_DELAY: StrictStr = "0.1s"
    HYPERSOCK_CONNECT_RETRY_MAX_DELAY: StrictStr = "2s"
    HYPERSOCK_TLS_HANDSHAKE_TIMEOUT: StrictStr = "10s"
    HYPERSOCK_CLOSE_TIMEOUT: StrictStr = "30s"
    HYPERSOCK_READ_BUFFER_HIGH_WATER: StrictInt = 1048576
    HYPERSOCK_LISTEN_BACKLOG: StrictInt = 100
    HYPERSOCK_MAX_DATAGRAM_SIZE: StrictInt = 65507
    HYPERSOCK_VERIFY_SSL_CERT: Literal["REQUIRED", "OPTIONAL", "NONE"] = "REQUIRED"
    HYPERSOCK_LOG_LEVEL: StrictStr = "info"
    HYPERSOCK_LOGS_DIRECTORY: StrictStr | None = None

    @classmethod
    def types_map(cls) -> Dict[str, Callable[[str], PrimaryType]]:
        return {
            "HYPERSOCK_DEMULTIPLEXER_THREADS": int,
            "HYPERSOCK_CONNECT_TIMEOUT": str,
            "HYPERSOCK_CONNECT_RETRIES": int,
            "HYPERSOCK_CONNECT_RETRY_BASE_DELAY": str,
            "HYPERSOCK_CONNECT_RETRY_MAX_DELAY": str,
            "HYPERSOCK_TLS_HANDSHAKE_TIMEOUT": str,
            "HYPERSOCK_CLOSE_TIMEOUT": str,
            "HYPERSOCK_READ_BUFFER_HIGH_WATER": int,
            "HYPERSOCK_LISTEN_BACKLOG": int,
            "HYPERSOCK_MAX_DATAGRAM_SIZE": int,
            "HYPERSOCK_VERIFY_SSL_CERT": str,
            "HYPERSOCK_LOG_LEVEL": str,
            "HYPERSOCK_LOGS_DIRECTORY": str,
        }

    @property
    def connect_timeout(self) -> float:
        return TimeParser(self.HYPERSOCK_CONNECT_TIMEOUT).time

    @property
    def tls_handshake_timeout(self) -> float:
        return TimeParser(self.HYPERSOCK_TLS_HANDSHAKE_TIMEOUT).time

    @property
    def close_timeout(self) -> float:
        return TimeParser(self.HYPERSOCK_CLOSE_TIMEOUT).time

    def get_connect_retry_config(self) -> dict:
        """Get connect retry policy settings from environment settings."""
        return {
            'max_attempts': max(self.HYPERSOCK_CONNECT_RETRIES, 1),
            'base_delay': TimeParser(self.HYPERSOCK_CONNECT_RETRY_BASE_DELAY).time,
            'max_delay': TimeParser(self.HYPERSOCK_CONNECT_RETRY_MAX_DELAY).time,
        }
