"""
=============================================================================
ROUTER
=============================================================================

The collaborator a Manager fills in. The shell relies on two calls only:

    handle(request) -> HTTPResponse     dispatch, used by HTTPServer
    walk(fn)                            visit every route, used at startup

Patterns:

    /ping                 static
    /users/:id            one segment   → path_params["id"]
    /files/*filepath      the remainder → path_params["filepath"]

Routes registered without a method answer every method. Groups share a
path prefix and may add their own middleware:

    root ─┬─ GET  /ping
          └─ group /api ─── use(auth) ─┬─ GET  /api/users/:id
                                       └─ POST /api/users

Dispatch order is root middleware, then group middleware, then route
middleware, then the handler. Root middleware also wraps the 404 and 405
envelopes so the access log sees unmatched requests.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
import re

from .envelope import error_response
from .request import HTTPRequest
from .response import HTTPResponse
from .status_codes import HTTPStatus
from ..middleware.base import Middleware, MiddlewarePipeline


Handler = Callable[[HTTPRequest], HTTPResponse]
WalkFunc = Callable[[str, str, Handler, List[Middleware]], Any]

ALL_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")

_PARAM = re.compile(r"/:(\w+)")
_WILDCARD = re.compile(r"/\*(\w*)$")


class RouteWalkError(Exception):
    """walk() callback failed; the original exception is chained."""


def compile_path(path: str) -> "re.Pattern[str]":
    """
    "/users/:id/files/*rest" → ^/users/(?P<id>[^/]+)/files/(?P<rest>.*)$

    Literal segments are escaped; a bare "*" captures as "wildcard".
    """
    wildcard = _WILDCARD.search(path)
    tail = ""
    if wildcard:
        tail = f"/(?P<{wildcard.group(1) or 'wildcard'}>.*)"
        path = path[:wildcard.start()]

    pieces, pos = [], 0
    for param in _PARAM.finditer(path):
        pieces.append(re.escape(path[pos:param.start()]))
        pieces.append(f"/(?P<{param.group(1)}>[^/]+)")
        pos = param.end()
    pieces.append(re.escape(path[pos:]))

    return re.compile("^" + ("".join(pieces) + tail or "/") + "$")


def _normalize(path: str) -> str:
    return "/" + path.strip("/")


@dataclass
class Route:
    method: Optional[str]
    path: str
    handler: Handler
    middlewares: List[Middleware] = field(default_factory=list)
    pattern: Optional["re.Pattern[str]"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.pattern = compile_path(self.path)

    @property
    def method_label(self) -> str:
        return self.method or "ANY"

    def allows(self, method: str) -> bool:
        return self.method is None or self.method == method


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]
    chain: List[Middleware]
    """Group and route middleware; root middleware is applied by handle()."""


class Router:
    """
    Route table with prefix groups.

        router = Router()

        @router.get("/users/:id")
        @response_wrapper
        def get_user(request):
            return USERS.get(request.path_params["id"]), 200, None

        admin = router.group("/admin")
        admin.use(require_token)
        admin.add_route("/stats", stats, method="GET")
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        self._groups: List["Router"] = []
        self._middlewares: List[Middleware] = []

    # -------------------------------------------------------------------------
    # registration
    # -------------------------------------------------------------------------

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        middlewares: Optional[List[Middleware]] = None,
    ) -> Route:
        """
        Register ``handler`` under this router's prefix.

        Raises:
            TypeError: handler is not callable.
        """
        if not callable(handler):
            raise TypeError(f"handler for {path} is not callable: {handler!r}")

        route = Route(
            method=method.upper() if method else None,
            path=_normalize(self.prefix + path),
            handler=handler,
            middlewares=list(middlewares or ()),
        )
        self._routes.append(route)
        return route

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        middlewares: Optional[List[Middleware]] = None,
    ) -> Callable[[Handler], Handler]:
        """Decorator form of add_route(); returns the handler unchanged."""
        def register(handler: Handler) -> Handler:
            self.add_route(path, handler, method, middlewares)
            return handler
        return register

    def get(self, path: str, middlewares: Optional[List[Middleware]] = None):
        return self.route(path, "GET", middlewares)

    def post(self, path: str, middlewares: Optional[List[Middleware]] = None):
        return self.route(path, "POST", middlewares)

    def put(self, path: str, middlewares: Optional[List[Middleware]] = None):
        return self.route(path, "PUT", middlewares)

    def patch(self, path: str, middlewares: Optional[List[Middleware]] = None):
        return self.route(path, "PATCH", middlewares)

    def delete(self, path: str, middlewares: Optional[List[Middleware]] = None):
        return self.route(path, "DELETE", middlewares)

    def use(self, *middleware: Middleware) -> "Router":
        self._middlewares.extend(middleware)
        return self

    def group(self, prefix: str) -> "Router":
        """Child router under ``prefix``; it inherits this router's middleware."""
        child = Router(self.prefix + prefix)
        self._groups.append(child)
        return child

    # -------------------------------------------------------------------------
    # lookup
    # -------------------------------------------------------------------------

    def _entries(self, outer: List[Middleware]) -> Iterator[Tuple[Route, List[Middleware]]]:
        # own routes in registration order, then each group depth-first
        chain = outer + self._middlewares
        for route in self._routes:
            yield route, chain + route.middlewares
        for child in self._groups:
            yield from child._entries(chain)

    def routes(self) -> List[Route]:
        return [route for route, _ in self._entries([])]

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        path, method = _normalize(path), method.upper()
        own = len(self._middlewares)
        for route, chain in self._entries([]):
            if not route.allows(method):
                continue
            found = route.pattern.match(path)
            if found:
                return RouteMatch(route, found.groupdict(), chain[own:])
        return None

    def allowed_methods(self, path: str) -> List[str]:
        """Methods some route accepts for ``path``; feeds the Allow header."""
        path = _normalize(path)
        methods = set()
        for route, _ in self._entries([]):
            if route.pattern.match(path):
                methods.update(ALL_METHODS if route.method is None else (route.method,))
        return sorted(methods)

    # -------------------------------------------------------------------------
    # dispatch
    # -------------------------------------------------------------------------

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        return MiddlewarePipeline(self._middlewares).wrap(self._dispatch)(request)

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        found = self.match(request.method, request.path)
        if found is not None:
            request.path_params = found.params
            return MiddlewarePipeline(found.chain).wrap(found.route.handler)(request)

        allowed = self.allowed_methods(request.path)
        if allowed:
            return (error_response(HTTPStatus.METHOD_NOT_ALLOWED)
                .set_header("Allow", ", ".join(allowed)))
        return error_response(HTTPStatus.NOT_FOUND, f"No route matches {request.path}")

    # -------------------------------------------------------------------------
    # introspection
    # -------------------------------------------------------------------------

    def walk(self, fn: WalkFunc) -> None:
        """
        Call ``fn(method, path, handler, middlewares)`` once per route.

        ``method`` is "ANY" for method-less routes and ``middlewares`` is a
        copy of the full chain, outermost first, so ``fn`` cannot alter
        routing.

        Raises:
            RouteWalkError: ``fn`` raised.
        """
        for route, chain in self._entries([]):
            try:
                fn(route.method_label, route.path, route.handler, list(chain))
            except Exception as e:
                raise RouteWalkError(f"walking {route.method_label} {route.path}: {e}") from e
