"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Command-line arguments    python -m restshell --addr :9000     │
    │   2. Environment variables     REST_ADDR=:9000 python -m restshell  │
    │   3. Defaults in ServerConfig                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The listening address is a single "host:port" string. An empty host
(":8082") binds every interface; an IPv6 host goes in brackets ("[::1]:8082")
and gets an AF_INET6 listener.

=============================================================================
"""

import logging
import os
import socket
from dataclasses import dataclass
from typing import Optional


DEFAULT_ADDRESS = ":8082"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class ServerConfig:
    """
    Configuration for the serving shell.

    NETWORK
    - address, backlog, buffer_size, timeout
    HTTP
    - keep_alive, keep_alive_timeout, max_request_size
    SHUTDOWN
    - shutdown_timeout
    LOGGING
    - log_level
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    address: str = DEFAULT_ADDRESS
    """
    "host:port" to listen on.
    - ":8082"           all interfaces
    - "127.0.0.1:8082"  localhost only
    - "127.0.0.1:0"     any free port (tests)
    - "[::1]:8082"      IPv6 localhost
    """

    backlog: int = 128
    """Maximum number of queued connections."""

    buffer_size: int = 8192
    """Receive buffer size in bytes."""

    timeout: Optional[float] = 30.0
    """Per-connection socket timeout in seconds. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True

    keep_alive_timeout: float = 5.0
    """Idle seconds before a keep-alive connection is closed."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    shutdown_timeout: float = 30.0
    """
    Seconds the drain may take after an interrupt. When it elapses with
    requests still running, the process exits with status 1.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    access_log: bool = True
    """Install LoggingMiddleware on the root router."""

    server_name: str = "restshell/1.0"

    @property
    def host(self) -> str:
        """Host part of address; "" means all interfaces."""
        return self._split_address()[0]

    @property
    def port(self) -> int:
        return self._split_address()[1]

    @property
    def family(self) -> socket.AddressFamily:
        """AF_INET6 for an IPv6 host such as "[::1]:8082", else AF_INET."""
        return socket.AF_INET6 if ":" in self.host else socket.AF_INET

    def _split_address(self) -> tuple[str, int]:
        host, sep, port = self.address.rpartition(":")
        if not sep:
            raise ValueError(f"Invalid address: {self.address!r}. Expected host:port.")
        host = host.strip("[]")
        try:
            return host, int(port)
        except ValueError:
            raise ValueError(f"Invalid port in address: {self.address!r}") from None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

            REST_ADDR              Listen address (default: :8082)
            REST_SHUTDOWN_TIMEOUT  Drain deadline in seconds (default: 30)
            REST_TIMEOUT           Socket timeout in seconds (default: 30)
            REST_LOG_LEVEL         Logging level (default: INFO)
        """
        return cls(
            address=os.getenv("REST_ADDR", DEFAULT_ADDRESS),
            shutdown_timeout=float(os.getenv("REST_SHUTDOWN_TIMEOUT", "30")),
            timeout=float(os.getenv("REST_TIMEOUT", "30")),
            log_level=os.getenv("REST_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Fail fast on bad values, before anything is bound.

        Raises:
            ValueError: On the first invalid setting.
        """
        port = self.port
        if not 0 <= port < 65536:
            raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.shutdown_timeout <= 0:
            raise ValueError("shutdown_timeout must be > 0")

        if self.max_request_size < 1:
            raise ValueError("max_request_size must be >= 1")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once for the process.

    A no-op for handlers if logging was already configured (basicConfig
    semantics); the restshell logger level is always applied.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )

    logging.getLogger("restshell").setLevel(numeric)
