"""
Middleware contract.

A middleware is called with the request and ``next``, the rest of the
chain, and returns the response; it may return early without calling
``next``. The router composes three layers, outermost first:

    router.use(mw)                        every request, 404/405 included
    router.group("/api").use(mw)          routes in the group
    router.add_route(..., middlewares=[mw])   that route only

Router.walk() reports the composed chain of each route in that order.
"""

from abc import ABC, abstractmethod
from functools import partial
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, List, Optional

if TYPE_CHECKING:
    # the router imports this module, so the http package is not loaded yet
    from ..http.request import HTTPRequest
    from ..http.response import HTTPResponse


NextHandler = Callable[["HTTPRequest"], "HTTPResponse"]
MiddlewareFunc = Callable[["HTTPRequest", NextHandler], "HTTPResponse"]


class Middleware(ABC):

    @abstractmethod
    def __call__(self, request: "HTTPRequest", next: NextHandler) -> "HTTPResponse":
        ...

    @property
    def name(self) -> str:
        """Label used in route logs and reprs."""
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<middleware {self.name}>"


class MiddlewarePipeline:
    """
    Ordered middleware around a final handler.

        MiddlewarePipeline().use(a, b).wrap(handler)  ==  a → b → handler
    """

    def __init__(self, middleware: Iterable[Middleware] = ()):
        self._chain: List[Middleware] = list(middleware)

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        self._chain.extend(middleware)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        for mw in reversed(self._chain):
            handler = partial(mw, next=handler)
        return handler

    def __len__(self) -> int:
        return len(self._chain)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._chain)


class FunctionMiddleware(Middleware):
    """Adapts a plain ``func(request, next)``."""

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: "HTTPRequest", next: NextHandler) -> "HTTPResponse":
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: MiddlewareFunc) -> FunctionMiddleware:
    """
    Decorator form:

        @function_middleware
        def stamp(request, next):
            response = next(request)
            return response.set_header("X-Stamp", "1")
    """
    return FunctionMiddleware(func)
