"""
HTTP protocol layer: parsing, responses, envelope and routing.

Import order matters here: the router pulls in restshell.middleware, which
expects request and response to be importable first.
"""

from .status_codes import HTTPStatus, reason_phrase
from .request import HTTPRequest, HTTPParseError, RequestParser
from .response import HTTPResponse, ResponseBuilder
from .envelope import (
    ResponseResource,
    EnvelopeEncodingError,
    response_wrapper,
    response_message,
    error_response,
)
from .router import Router, Route, RouteWalkError
from .route_logger import log_route, log_routes, StartupError

__all__ = [
    "HTTPStatus",
    "reason_phrase",
    "HTTPRequest",
    "HTTPParseError",
    "RequestParser",
    "HTTPResponse",
    "ResponseBuilder",
    "ResponseResource",
    "EnvelopeEncodingError",
    "response_wrapper",
    "response_message",
    "error_response",
    "Router",
    "Route",
    "RouteWalkError",
    "log_route",
    "log_routes",
    "StartupError",
]
