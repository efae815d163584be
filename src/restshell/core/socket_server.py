"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket and the accept loop. Knows nothing about HTTP;
every accepted socket is wrapped in a Connection and handed to a callback.

    bind()            socket() → setsockopt() → bind() → listen()
    serve_forever()   accept loop, blocks until close()
    close()           stop accepting, release the port

Signals are not handled here. The shutdown coordinator owns SIGINT and
calls close() through HTTPServer.shutdown().

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP listener.

        listener = SocketServer(config)
        listener.bind()
        listener.serve_forever(handle_connection)   # blocks
        ...
        listener.close()                            # from another thread
    """

    ACCEPT_POLL = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._closing = False
        self._lock = threading.Lock()

    @property
    def is_closing(self) -> bool:
        return self._closing

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """Actual (host, port) after bind(); resolves port 0."""
        with self._lock:
            if self._socket is None:
                return None
            try:
                return self._socket.getsockname()[:2]
            except OSError:
                return None

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(self.config.family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        # accept() wakes at least this often to notice close()
        sock.settimeout(self.ACCEPT_POLL)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Bind and listen.

        Returns:
            The bound (host, port).

        Raises:
            OSError: Address in use, permission denied, bad host.
        """
        host, port = self.config.host, self.config.port
        sock = self._create_socket()
        try:
            sock.bind((host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise

        address = sock.getsockname()[:2]
        with self._lock:
            if self._closing:
                sock.close()
                return address
            self._socket = sock
        logger.debug(f"Listening on {address[0]}:{address[1]}")
        return address

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until close() is called.

        Returns normally after close(). Any other accept failure is raised
        to the caller; nothing is retried.

        Raises:
            OSError: The listener failed while not closing.
        """
        sock = self._socket
        if sock is None:
            if self._closing:
                return
            raise RuntimeError("serve_forever() called before bind()")

        while not self._closing:
            try:
                client_socket, client_address = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._closing:
                    break
                raise

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}")

            if self._closing:
                # raced with close(); never serve it
                conn.abort()
                break

            connection_handler(conn)

    def close(self):
        """
        Stop accepting. Safe to call more than once and from any thread.
        """
        self._closing = True
        with self._lock:
            sock, self._socket = self._socket, None
        if sock is None:
            return

        # shutdown() wakes a thread blocked in accept() on Linux
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass
        logger.debug("Listener closed")
