"""
=============================================================================
RESPONSE ENVELOPE
=============================================================================

Every JSON response the shell writes has the same outer shape:

    {"code": 200, "data": {...}}                     success
    {"code": 404, "error": "user not found"}         failure
    {"code": 409, "error": "stale", "data": {...}}   failure with payload

Fields holding an empty value are left out of the object entirely, so a
client can test ``"error" in body`` instead of comparing against null.

    ┌──────────────┐  (payload, status, error)  ┌──────────────────────┐
    │ user handler │ ─────────────────────────► │  response_wrapper    │
    └──────────────┘                            │  → ResponseResource  │
                                                │  → HTTPResponse      │
                                                └──────────────────────┘

The ``code`` field always equals the status written on the status line.

=============================================================================
"""

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional, Tuple
import json

from .request import HTTPRequest
from .response import HTTPResponse, ResponseBuilder
from .status_codes import HTTPStatus, is_valid_status, reason_phrase


EnvelopeHandler = Callable[[HTTPRequest], Tuple[Any, Optional[int], Optional[BaseException]]]
Handler = Callable[[HTTPRequest], HTTPResponse]

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class EnvelopeEncodingError(Exception):
    """The envelope payload could not be serialized to JSON."""


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, dict, tuple)):
        return len(value) == 0
    return False


@dataclass
class ResponseResource:
    """
    The JSON envelope.

    Attributes:
        code:  HTTP status also written on the status line. 0 means unset.
        error: Text of the handler's error, if it reported one.
        data:  Handler payload; any JSON-serializable value.
    """

    code: int = 0
    error: Optional[str] = None
    data: Any = None

    def to_dict(self) -> dict:
        """Envelope as a dict, empty fields omitted, key order code/error/data."""
        out: dict = {}
        if self.code:
            out["code"] = self.code
        if self.error:
            out["error"] = self.error
        if not _is_empty(self.data):
            out["data"] = self.data
        return out

    def to_json(self) -> bytes:
        """
        Compact UTF-8 JSON body.

        Raises:
            EnvelopeEncodingError: If data holds something json cannot encode
                (arbitrary objects, NaN/Infinity, non-string keys of odd types).
        """
        try:
            text = json.dumps(
                self.to_dict(),
                separators=(",", ":"),
                ensure_ascii=False,
                allow_nan=False,
            )
        except (TypeError, ValueError) as e:
            raise EnvelopeEncodingError(f"cannot encode response envelope: {e}") from e
        return text.encode("utf-8")


def _normalize_status(status: Optional[int]) -> int:
    # None/0 means the handler never chose one; the transport writes 200.
    if not status:
        return HTTPStatus.OK
    if isinstance(status, bool) or not isinstance(status, int):
        raise ValueError(f"status must be an int, got {status!r}")
    if not is_valid_status(status):
        raise ValueError(f"status {status} outside 100-599")
    return int(status)


def envelope_response(resource: ResponseResource) -> HTTPResponse:
    """Render an envelope as a JSON HTTPResponse with status ``resource.code``."""
    status = _normalize_status(resource.code)
    resource.code = status
    return (ResponseBuilder()
        .status(status)
        .content_type(JSON_CONTENT_TYPE)
        .body(resource.to_json())
        .build())


def error_response(status: int, message: Optional[str] = None) -> HTTPResponse:
    """
    Error envelope the transport writes on its own behalf (404, 405, 500,
    parse failures). ``message`` defaults to the reason phrase.
    """
    return envelope_response(
        ResponseResource(code=status, error=message or reason_phrase(status))
    )


def response_wrapper(func: EnvelopeHandler) -> Handler:
    """
    Adapt ``func(request) -> (payload, status, error)`` into a router handler.

    No retries and no recovery: an exception from ``func``, an invalid
    status or an unencodable payload propagates to the transport, which
    answers 500.

    Example:
        @response_wrapper
        def get_user(request):
            user = users.get(request.path_params["id"])
            if user is None:
                return None, 404, LookupError("user not found")
            return user, 200, None
    """

    @wraps(func)
    def handler(request: HTTPRequest) -> HTTPResponse:
        payload, status, err = func(request)

        resource = ResponseResource(code=status or 0, data=payload)
        if err is not None:
            resource.error = str(err)

        return envelope_response(resource)

    return handler


def response_message(status: int, message: str) -> dict:
    """Plain ``{"code": ..., "message": ...}`` payload."""
    return {"code": status, "message": message}
