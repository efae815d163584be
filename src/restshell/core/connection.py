"""
=============================================================================
CONNECTION
=============================================================================

One accepted client socket, owned by one worker thread. Reads accumulate
in a buffer, so a request split over several segments and two pipelined
requests in one segment both come out as whole requests.

    ┌─────┐ readable  ┌─────────┐ handler ┌────────────┐ send ┌─────────┐
    │ NEW │ ────────► │ READING │ ──────► │ PROCESSING │ ───► │ WRITING │
    └──┬──┘           └─────────┘         └────────────┘      └────┬────┘
       │                   ▲ readable                              │
       │                   └──────────── ┌────────────┐ ◄──────────┘
       │                                 │ KEEP_ALIVE │
       │ close_if_idle()                 └─────┬──────┘
       └───────────────────► CLOSED ◄──────────┘ close_if_idle()

Drain only ever closes NEW and KEEP_ALIVE connections. The worker waits
for the socket to become readable without consuming anything, then leaves
the idle state under the same lock close_if_idle() takes, and only then
calls recv(). close_if_idle() also leaves a connection alone while input
is pending on it. Together this means a request whose bytes reached the
server is never discarded by a drain.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
import logging
import select
import socket
import threading
import time
import uuid


logger = logging.getLogger(__name__)

HEADER_END = b"\r\n\r\n"


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


IDLE_STATES = frozenset({ConnectionState.NEW, ConnectionState.KEEP_ALIVE})


class RequestTooLargeError(ValueError):
    """Buffered request grew past max_request_size."""


@dataclass(eq=False)
class Connection:
    """
    Attributes:
        socket: The accepted socket.
        address: Peer address as returned by accept().
        id: Short id used in log lines.
        accepted_at: time.monotonic() at accept; drain measures the grace
            period of NEW connections from here.
    """

    socket: socket.socket
    address: Tuple

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    accepted_at: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    _buffer: bytes = field(default=b"", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        # recv/sendall timeout once a request is underway
        self.socket.settimeout(self.timeout)

    @property
    def is_idle(self) -> bool:
        return self.state in IDLE_STATES

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    @property
    def age(self) -> float:
        return time.monotonic() - self.accepted_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Wait for and read one complete request.

        A new connection waits up to ``timeout`` for its first byte, a
        kept-alive one up to ``keep_alive_timeout``.

        Returns:
            The request bytes (head plus Content-Length body), or None when
            the peer went away, the keep-alive wait ran out, or the drain
            closed the connection while it was idle.

        Raises:
            TimeoutError: A first request never arrived, or a started
                request stalled for longer than ``timeout``.
            RequestTooLargeError: More than ``max_request_size`` bytes.
        """
        if not self._buffer:
            wait = self.keep_alive_timeout if self.requests_handled else self.timeout
            if not self._wait_readable(wait):
                if self.requests_handled:
                    logger.debug(f"[{self.id}] Keep-alive timeout")
                    return None
                raise TimeoutError("No request received")

        if not self._leave_idle():
            return None

        try:
            while HEADER_END not in self._buffer:
                if not self._fill():
                    return None

            head_len = self._buffer.index(HEADER_END) + len(HEADER_END)
            total = head_len + _content_length(self._buffer[:head_len])
            while len(self._buffer) < total:
                if not self._fill():
                    return None
        except socket.timeout:
            raise TimeoutError("Request read timeout") from None

        request, self._buffer = self._buffer[:total], self._buffer[total:]
        self.requests_handled += 1
        return request

    def _wait_readable(self, timeout: Optional[float]) -> bool:
        try:
            readable, _, _ = select.select([self.socket], [], [], timeout)
        except (OSError, ValueError):
            # closed under us; _leave_idle() reports it
            return True
        return bool(readable)

    def _leave_idle(self) -> bool:
        with self._lock:
            if self.is_closed:
                return False
            self.state = ConnectionState.READING
            return True

    def _fill(self) -> bool:
        """recv() once into the buffer. False on EOF."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        except socket.timeout:
            raise
        except OSError:
            if self.is_closed:
                return False
            raise
        if not chunk:
            return False
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLargeError(f"Request too large: {len(self._buffer)} bytes")
        return True

    def _input_pending(self) -> bool:
        try:
            readable, _, _ = select.select([self.socket], [], [], 0)
        except (OSError, ValueError):
            return False
        return bool(readable)

    # =========================================================================
    # WRITING
    # =========================================================================

    def mark_processing(self):
        self.state = ConnectionState.PROCESSING

    def send_response(self, data: bytes) -> bool:
        """sendall() ``data``. False if the peer went away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        return True

    def set_keep_alive(self):
        with self._lock:
            if not self.is_closed:
                self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close_if_idle(self, new_grace: float = 0.0) -> bool:
        """
        Close the connection if it holds no request.

        KEEP_ALIVE connections qualify at once. NEW connections qualify once
        they are ``new_grace`` seconds old, so a client that connected just
        before the drain still gets to send its request. Either way a
        connection with unread input is in flight, not idle.

        Returns:
            True if this call closed the connection.
        """
        with self._lock:
            if self.state is ConnectionState.KEEP_ALIVE:
                pass
            elif self.state is ConnectionState.NEW and self.age >= new_grace:
                pass
            else:
                return False
            if self._input_pending():
                return False
            self._force_close()
            return True

    def abort(self):
        """Close now, whatever the state; the worker sees EOF or an error."""
        with self._lock:
            if not self.is_closed:
                logger.warning(f"[{self.id}] Aborting connection in state {self.state.value}")
                self._force_close()

    def _force_close(self):
        # SHUT_RDWR wakes a worker blocked in select() or recv()
        self.state = ConnectionState.CLOSED
        for step in (lambda: self.socket.shutdown(socket.SHUT_RDWR), self.socket.close):
            try:
                step()
            except OSError:
                pass

    def close(self):
        """Half-close, drain what the peer still sends briefly, release."""
        with self._lock:
            if self.is_closed:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        with self._lock:
            self.socket.close()
            self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} request(s)")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _content_length(head: bytes) -> int:
    # malformed values are left for RequestParser to reject
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            value = value.strip()
            return int(value) if value.isdigit() else 0
    return 0
