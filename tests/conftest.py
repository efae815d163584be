"""
pytest configuration and fixtures.
"""

import http.client
import json
import socket
import threading
import time
from typing import Any, Callable, Generator, List, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restshell import ServerConfig
from restshell.app import Server
from restshell.core.shutdown import ManualSignal


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8082\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "Ada", "email": "ada@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8082\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: %d\r\n"
        b"Connection: close\r\n"
        b"\r\n"
    ) % len(body) + body


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config(free_port: int) -> ServerConfig:
    """Test configuration on a free localhost port."""
    return ServerConfig(
        address=f"127.0.0.1:{free_port}",
        timeout=5.0,
        shutdown_timeout=5.0,
        log_level="WARNING",
    )


class BackgroundServer:
    """
    Runs Server.run() in a background thread.

    Shutdown comes from a ManualSignal instead of SIGINT, and the fatal hook
    records its message instead of exiting the test process.
    """

    def __init__(self, manager: Any, config: ServerConfig):
        self.signals = ManualSignal()
        self.fatal_messages: List[str] = []
        self.fatal_called = threading.Event()
        self.server = Server(manager, config, self.signals, fatal=self._fatal)
        self.result = None
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def _fatal(self, message: str):
        self.fatal_messages.append(message)
        self.fatal_called.set()

    def _run(self):
        try:
            self.result = self.server.run()
        except Exception as e:
            self.error = e

    def start(self) -> "BackgroundServer":
        self._thread = threading.Thread(target=self._run, name="test-server", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline:
            httpserver = self.server.httpserver
            if httpserver is not None and httpserver.wait_until_listening(0.05):
                return self
            if not self._thread.is_alive():
                break
            time.sleep(0.01)
        raise RuntimeError(f"Server failed to start: {self.error!r}")

    @property
    def port(self) -> int:
        return self.server.config.port

    def stop(self):
        """Trigger shutdown, as Ctrl+C would."""
        self.signals.trigger()

    def join(self, timeout: float = 10.0) -> bool:
        """Wait for run() to return. True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


@pytest.fixture
def start_server(config: ServerConfig) -> Generator[Callable[..., BackgroundServer], None, None]:
    """
    Factory: start_server(manager, **config_overrides) -> BackgroundServer.

    Servers still running at teardown are stopped.
    """
    started: List[BackgroundServer] = []

    def factory(manager: Any, **overrides: Any) -> BackgroundServer:
        for name, value in overrides.items():
            setattr(config, name, value)
        srv = BackgroundServer(manager, config).start()
        started.append(srv)
        return srv

    yield factory

    for srv in started:
        if srv.running and not srv.signals.fired:
            srv.stop()
            srv.join(10.0)


def fetch(
    port: int,
    method: str,
    path: str,
    body: Optional[bytes] = None,
    headers: Optional[dict] = None,
    timeout: float = 10.0,
) -> Tuple[int, dict, Any]:
    """One request on a fresh connection; returns (status, headers, decoded JSON)."""
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=timeout)
    try:
        conn.request(method, path, body=body, headers=headers or {})
        response = conn.getresponse()
        raw = response.read()
        response_headers = {k.lower(): v for k, v in response.getheaders()}
        return response.status, response_headers, json.loads(raw) if raw else None
    finally:
        conn.close()


@pytest.fixture
def http_fetch() -> Callable[..., Tuple[int, dict, Any]]:
    return fetch
