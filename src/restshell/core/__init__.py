"""
Core networking and lifecycle components.

- connection: one client socket with buffered reads and drain-aware state
- socket_server: the TCP listener and accept loop
- shutdown: interrupt handling and the drain coordinator
"""

from .connection import Connection, ConnectionState, RequestTooLargeError
from .socket_server import SocketServer
from .shutdown import (
    CompletionSignal,
    CoordinatorState,
    InterruptSignal,
    ManualSignal,
    ShutdownCoordinator,
    SignalSource,
    default_fatal,
)

__all__ = [
    "Connection",
    "ConnectionState",
    "RequestTooLargeError",
    "SocketServer",
    "CompletionSignal",
    "CoordinatorState",
    "InterruptSignal",
    "ManualSignal",
    "ShutdownCoordinator",
    "SignalSource",
    "default_fatal",
]
