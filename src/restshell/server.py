"""
=============================================================================
HTTP SERVER
=============================================================================

Accept loop plus graceful drain.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      REQUEST LIFECYCLE                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer.accept()                                              │
    │        │                                                             │
    │        ▼                                                             │
    │   Connection ──► daemon thread per connection                        │
    │                      │                                               │
    │                      ├─► read_request()   bytes                      │
    │                      ├─► RequestParser    HTTPRequest                │
    │                      ├─► handler          router.handle              │
    │                      └─► send_response()  keep-alive or close        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

shutdown(timeout) runs on the coordinator's thread while serve() is still
blocked on the main thread:

    1. Stop accepting: listener closed, late accepts closed unserved
    2. Close KEEP_ALIVE connections; NEW ones once keep_alive_timeout old
    3. Wait until every active connection finished its request
    4. Deadline hit: close idle ones, abort the rest, raise DrainTimeoutError

A keep-alive connection mid-request during drain finishes that request,
answers with "Connection: close" and is closed. serve() returns
NormalClosure as soon as the listener is closed; it does not wait for the
drain, which is why the main thread then blocks on the completion signal.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Optional, Set, Tuple, Union
import logging
import threading
import time

from .config import ServerConfig
from .core.connection import Connection, RequestTooLargeError
from .core.socket_server import SocketServer
from .http.request import HTTPRequest, HTTPParseError, RequestParser
from .http.response import HTTPResponse
from .http.envelope import error_response
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], HTTPResponse]


# =============================================================================
# SERVE RESULT
# =============================================================================

@dataclass(frozen=True)
class NormalClosure:
    """serve() ended because shutdown() closed the listener. Not an error."""


@dataclass(frozen=True)
class TransportFailure:
    """serve() ended because the listener failed (bind or accept)."""

    error: BaseException


ServeResult = Union[NormalClosure, TransportFailure]


class DrainTimeoutError(Exception):
    """Active requests did not finish before the shutdown deadline."""

    def __init__(self, remaining: int, timeout: float):
        super().__init__(
            f"{remaining} connection(s) still active after {timeout:g}s drain deadline"
        )
        self.remaining = remaining
        self.timeout = timeout


class HTTPServer:
    """
    HTTP/1.1 server with a graceful drain.

        server = HTTPServer(ServerConfig(address="127.0.0.1:8082"), router.handle)

        # main thread
        result = server.serve()

        # another thread
        server.shutdown(timeout=30.0)
    """

    DRAIN_POLL = 0.05

    def __init__(self, config: Optional[ServerConfig] = None, handler: Optional[Handler] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        if handler is None:
            raise ValueError("HTTPServer needs a request handler")
        self._handler = handler

        self._socket_server = SocketServer(self.config)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._connections: Set[Connection] = set()
        self._cond = threading.Condition()
        self._closing = False
        self._shutdown_called = False
        self._listening = threading.Event()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def address(self) -> str:
        """Configured "host:port"."""
        return self.config.address

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        return self._socket_server.bound_address

    @property
    def is_closing(self) -> bool:
        return self._closing

    @property
    def active_connections(self) -> int:
        with self._cond:
            return len(self._connections)

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until serve() has bound the port. False on timeout."""
        return self._listening.wait(timeout)

    # =========================================================================
    # SERVE
    # =========================================================================

    def serve(self) -> ServeResult:
        """
        Bind, listen and accept until shut down or the listener fails.

        Never raises for transport problems; they come back as
        TransportFailure so the caller decides what to log.
        """
        if self._closing:
            return NormalClosure()

        try:
            self._socket_server.bind()
        except OSError as e:
            return TransportFailure(e)

        self._listening.set()

        try:
            self._socket_server.serve_forever(self._handle_connection)
        except OSError as e:
            if self._closing:
                return NormalClosure()
            logger.debug(f"Accept loop failed: {e}")
            return TransportFailure(e)
        finally:
            self._socket_server.close()

        return NormalClosure()

    def _handle_connection(self, conn: Connection):
        with self._cond:
            if self._closing:
                conn.abort()
                return
            self._connections.add(conn)

        worker = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        worker.start()

    def _process_connection(self, conn: Connection):
        """
        Keep-alive loop for one connection (runs in its own thread).
        """
        try:
            with conn:
                while True:
                    try:
                        raw_request = conn.read_request()
                    except TimeoutError:
                        self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                        break
                    except RequestTooLargeError as e:
                        self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                        break

                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.debug(f"[{conn.id}] Bad request: {e}")
                        self._send_error(conn, e.status_code, str(e))
                        break

                    conn.mark_processing()
                    response = self._dispatch(conn, request)

                    keep_alive = (
                        request.is_keep_alive
                        and self.config.keep_alive
                        and not self._closing
                    )
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive",
                            f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()
                    if self._closing:
                        break
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            with self._cond:
                self._connections.discard(conn)
                self._cond.notify_all()

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        # handler failures never take the connection down with them
        try:
            return self._handler(request)
        except Exception as e:
            logger.exception(
                f"[{conn.id}] Handler error on {request.method} {request.path}: {e}"
            )
            return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

    def _send_error(self, conn: Connection, status: int, message: str):
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, timeout: float):
        """
        Stop accepting and drain in-flight requests.

        Args:
            timeout: Seconds to wait for active requests.

        Raises:
            DrainTimeoutError: Requests still running at the deadline; they
                have been aborted.
            RuntimeError: shutdown() was already called.
            ValueError: timeout is not positive.
        """
        if timeout <= 0:
            raise ValueError("shutdown timeout must be > 0")

        with self._cond:
            if self._shutdown_called:
                raise RuntimeError("HTTPServer.shutdown() called twice")
            self._shutdown_called = True
            self._closing = True

        deadline = time.monotonic() + timeout

        self._socket_server.close()
        logger.debug("Listener stopped, draining connections")

        with self._cond:
            while True:
                remaining = deadline - time.monotonic()
                # fresh connections get until keep_alive_timeout to send a request
                grace = self.config.keep_alive_timeout if remaining > 0 else 0.0
                self._close_idle_locked(grace)
                if not self._connections or remaining <= 0:
                    break
                self._cond.wait(min(remaining, self.DRAIN_POLL))
            # closed but not yet reaped by their worker threads
            leftover = [conn for conn in self._connections if not conn.is_closed]

        if leftover:
            for conn in leftover:
                conn.abort()
            raise DrainTimeoutError(len(leftover), timeout)

        logger.debug("All connections drained")

    def _close_idle_locked(self, new_grace: float):
        for conn in list(self._connections):
            if conn.close_if_idle(new_grace):
                logger.debug(f"[{conn.id}] Closed idle connection")
