"""
=============================================================================
RESTSHELL CLI ENTRY POINT
=============================================================================

    python -m restshell
    python -m restshell --addr 127.0.0.1:9000
    python -m restshell --shutdown-timeout 10 --log-level DEBUG
    python -m restshell --manager myapp.api:Manager

--manager takes "module:attribute". A class is instantiated with no
arguments; any other object is used as the manager as-is. Without it a
built-in manager serves GET /ping.

Environment variables (REST_ADDR, REST_SHUTDOWN_TIMEOUT, REST_TIMEOUT,
REST_LOG_LEVEL) are read first; flags override them.

Exit status: 0 after a clean drain, 1 when the listener failed, 2 when
startup failed (bad config, bad manager, route registration error).

=============================================================================
"""

import argparse
import importlib
import logging
import sys
from typing import Any, List, Optional

from . import __version__
from .app import PingManager, Server
from .config import ServerConfig, configure_logging
from .http.route_logger import StartupError
from .server import TransportFailure


logger = logging.getLogger("restshell")


def load_manager(spec: str) -> Any:
    """
    Resolve "package.module:attr" to a manager object.

    Raises:
        StartupError: Import failed, attribute missing, or the object has
            no register_routes().
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise StartupError(f"--manager must look like module:attr, got {spec!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise StartupError(f"cannot import {module_name}: {e}") from e

    try:
        obj = getattr(module, attr)
    except AttributeError:
        raise StartupError(f"{module_name} has no attribute {attr!r}") from None

    if isinstance(obj, type):
        obj = obj()

    if not callable(getattr(obj, "register_routes", None)):
        raise StartupError(f"{spec} has no register_routes(router) method")
    return obj


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restshell",
        description="HTTP serving shell with a JSON response envelope and graceful shutdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m restshell                              # :8082, GET /ping
  python -m restshell --addr 127.0.0.1:9000        # localhost only
  python -m restshell --manager myapp.api:Manager  # your routes
        """
    )

    parser.add_argument(
        "--addr", "-a",
        default=None,
        help="host:port to listen on (default: :8082)"
    )

    parser.add_argument(
        "--shutdown-timeout", "-t",
        type=float,
        default=None,
        help="Seconds to drain in-flight requests after Ctrl+C (default: 30)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--manager", "-m",
        default=None,
        help="Manager to serve, as module:attr"
    )

    parser.add_argument(
        "--no-access-log",
        action="store_true",
        help="Do not log one line per request"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"restshell {__version__}"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = ServerConfig.from_env()
    if args.addr is not None:
        config.address = args.addr
    if args.shutdown_timeout is not None:
        config.shutdown_timeout = args.shutdown_timeout
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.no_access_log:
        config.access_log = False

    configure_logging(config.log_level)

    try:
        config.validate()
        manager = load_manager(args.manager) if args.manager else PingManager()
        result = Server(manager, config).run()
    except (StartupError, ValueError) as e:
        logger.error(f"Startup failed: {e}")
        return 2

    if isinstance(result, TransportFailure):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
