"""
=============================================================================
APPLICATION FACADE
=============================================================================

The one call an application makes:

    from restshell import register

    class Manager:
        def register_routes(self, router):
            router.get("/ping")(ping)

    register(Manager())        # blocks until Ctrl+C has drained the server

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Server.run()                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   routes()               manager.register_routes(router)            │
    │   log_routes(router)     "👉 GET /ping"            StartupError ──► │
    │   HTTPServer(...)                                                    │
    │   coordinator.start()    SIGINT armed, watcher thread running       │
    │   "Serving at 🔥 :8082"                                              │
    │   serve()                blocks                                      │
    │     ├─ NormalClosure     → completion.wait() → return               │
    │     └─ TransportFailure  → log error, abandon watcher → return      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from typing import Callable, Optional, Protocol
import logging

from .config import ServerConfig
from .core.shutdown import (
    CompletionSignal,
    InterruptSignal,
    ShutdownCoordinator,
    SignalSource,
    default_fatal,
)
from .http.envelope import response_message, response_wrapper
from .http.route_logger import StartupError, log_routes
from .http.router import Router
from .middleware.logging import LoggingMiddleware
from .server import HTTPServer, ServeResult, TransportFailure


logger = logging.getLogger(__name__)


class Manager(Protocol):
    """Business-logic entry point; only has to hang its routes on the router."""

    def register_routes(self, router: Router) -> None: ...


class Server:
    """
    Binds a Manager to the HTTP serving shell. One per process.

    Args:
        manager: Supplies the routes.
        config: Listen address, drain deadline and friends.
        signals: Shutdown trigger; SIGINT unless a test passes ManualSignal.
        fatal: Drain failure hook; exits the process by default.
    """

    def __init__(
        self,
        manager: Manager,
        config: Optional[ServerConfig] = None,
        signals: Optional[SignalSource] = None,
        fatal: Callable[[str], None] = default_fatal,
    ):
        self.manager = manager
        self.config = config or ServerConfig()
        self.signals = signals or InterruptSignal()
        self.fatal = fatal
        self.httpserver: Optional[HTTPServer] = None
        self.coordinator: Optional[ShutdownCoordinator] = None

    def routes(self) -> Router:
        """
        Assemble the root router from the manager.

        Raises:
            StartupError: register_routes() failed.
        """
        router = Router()
        if self.config.access_log:
            router.use(LoggingMiddleware())
        try:
            self.manager.register_routes(router)
        except Exception as e:
            raise StartupError(f"route registration failed: {e}") from e
        return router

    def run(self) -> ServeResult:
        """
        Serve until shut down.

        Returns NormalClosure after a completed drain, or TransportFailure
        when the listener could not bind or died; that case is logged here
        and not retried.

        Raises:
            StartupError: Routes could not be assembled or walked. Nothing
                was bound.
        """
        self.config.validate()

        router = self.routes()
        log_routes(router)

        self.httpserver = HTTPServer(self.config, router.handle)
        completion = CompletionSignal()
        self.coordinator = ShutdownCoordinator(
            self.httpserver,
            completion,
            self.signals,
            self.config.shutdown_timeout,
            fatal=self.fatal,
        )
        self.coordinator.start()

        try:
            logger.info(f"Serving at 🔥 {self.config.address}")
            result = self.httpserver.serve()

            if isinstance(result, TransportFailure):
                logger.error(f"HTTP server ListenAndServe: {result.error}")
                self.coordinator.abandon()
                return result

            completion.wait()
            return result
        finally:
            self.signals.disarm()


def register(
    manager: Manager,
    config: Optional[ServerConfig] = None,
    signals: Optional[SignalSource] = None,
) -> None:
    """
    Build a Server for ``manager`` and run it until shutdown completes.

    Returns None once the process may exit. Listener failures are logged,
    not raised.

    Raises:
        StartupError: Router assembly or the route walk failed before
            anything was served.
    """
    Server(manager, config, signals).run()


class PingManager:
    """Stand-in manager for the CLI: GET /ping answers with a pong envelope."""

    def register_routes(self, router: Router) -> None:
        router.get("/ping")(response_wrapper(ping))


def ping(request):
    return response_message(200, "pong"), 200, None
