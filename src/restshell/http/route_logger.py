"""
Startup route table logging.

    👉 GET /ping
    👉 POST /api/v1/users
    👉 ANY /files/*filepath

One line per route, emitted once before the listener starts.
"""

from typing import Any, List
import logging

from .router import Router, RouteWalkError
from ..middleware.base import Middleware


logger = logging.getLogger(__name__)


class StartupError(Exception):
    """The server could not start; nothing has been bound or served."""


def log_route(method: str, path: str, handler: Any, middlewares: List[Middleware]) -> None:
    """Log one route at INFO. Never raises; handler and chain are ignored."""
    logger.info("👉 %s %s", method, path)


def log_routes(router: Router) -> None:
    """
    Walk ``router`` and log every route.

    Raises:
        StartupError: If the walk itself fails.
    """
    try:
        router.walk(log_route)
    except RouteWalkError as e:
        raise StartupError(f"⚠️  Logging err: {e}") from e
