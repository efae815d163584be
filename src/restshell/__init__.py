"""
=============================================================================
RESTSHELL - HTTP Serving Shell With Graceful Shutdown
=============================================================================

Starts a listener for an application's routes, wraps handler results in
a uniform JSON envelope and drains in-flight requests on Ctrl+C.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    restshell/
    ├── __init__.py          # package exports
    ├── __main__.py          # CLI entry point (python -m restshell)
    ├── app.py               # Server facade and register()
    ├── server.py            # HTTPServer: serve loop and drain
    ├── config.py            # ServerConfig, configure_logging
    ├── core/
    │   ├── socket_server.py # TCP listener
    │   ├── connection.py    # per-connection reads, writes, idle state
    │   └── shutdown.py      # SIGINT, coordinator, completion signal
    ├── http/
    │   ├── request.py       # request parsing
    │   ├── response.py      # response building
    │   ├── envelope.py      # {"code", "error", "data"} envelope
    │   ├── router.py        # URL routing and walk()
    │   ├── route_logger.py  # startup route table log
    │   └── status_codes.py  # status enum and reason phrases
    └── middleware/
        ├── base.py          # middleware contract and pipeline
        └── logging.py       # access log

=============================================================================
QUICK START
=============================================================================

    from restshell import register, response_wrapper

    @response_wrapper
    def get_user(request):
        user = USERS.get(request.path_params["id"])
        if user is None:
            return None, 404, LookupError("user not found")
        return user, 200, None

    class Manager:
        def register_routes(self, router):
            router.get("/users/:id")(get_user)

    register(Manager())

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, configure_logging
from .http import (
    HTTPRequest,
    HTTPResponse,
    ResponseResource,
    Router,
    StartupError,
    response_message,
    response_wrapper,
)
from .server import HTTPServer, NormalClosure, TransportFailure, DrainTimeoutError
from .app import Manager, Server, register

__all__ = [
    "ServerConfig",
    "configure_logging",
    "HTTPRequest",
    "HTTPResponse",
    "ResponseResource",
    "Router",
    "StartupError",
    "response_message",
    "response_wrapper",
    "HTTPServer",
    "NormalClosure",
    "TransportFailure",
    "DrainTimeoutError",
    "Manager",
    "Server",
    "register",
    "__version__",
]
