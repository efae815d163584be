"""
Middleware for the request chain.

    from restshell.middleware import LoggingMiddleware

    router.use(LoggingMiddleware())
"""

from .base import Middleware, MiddlewarePipeline, FunctionMiddleware, function_middleware, NextHandler
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "function_middleware",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
]
