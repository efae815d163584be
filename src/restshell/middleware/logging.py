"""
Access log.

One line per request on the ``restshell.access`` logger, after the
response is built:

    text  127.0.0.1 "GET /users/7" 404 41B 0.84ms id=3f9c1a2b error="user not found"
    json  {"request_id": "3f9c1a2b", "method": "GET", "path": "/users/7", ...}

The ``error`` of an error envelope is lifted into the line, so failed
requests can be found without decoding bodies. The request id is taken
from an incoming X-Request-ID or generated, and echoed back.
"""

from dataclasses import asdict, dataclass
from typing import Iterable, Optional
import json
import logging
import time
import uuid

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("restshell.access")

FORMATS = ("text", "json")


@dataclass
class RequestLog:
    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict:
        record = asdict(self)
        record["duration_ms"] = round(self.duration_ms, 2)
        if not self.error:
            del record["error"]
        return record

    def to_text(self) -> str:
        line = (f'{self.client_ip} "{self.method} {self.path}" {self.status_code} '
                f'{self.content_length}B {self.duration_ms:.2f}ms id={self.request_id}')
        return f'{line} error="{self.error}"' if self.error else line


def envelope_error(response: HTTPResponse) -> Optional[str]:
    """``error`` of a JSON envelope body, or None."""
    if "application/json" not in response.get_header("Content-Type"):
        return None
    try:
        body = json.loads(response.body)
    except ValueError:
        return None
    return body.get("error") if isinstance(body, dict) else None


class LoggingMiddleware(Middleware):
    """
    Installed on the root router by Server.routes() unless access_log is off,
    so it also times 404 and 405 answers.

    A handler exception is logged at ERROR with its request id and
    re-raised; HTTPServer turns it into the 500 envelope.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Iterable[str] = (),
    ):
        if log_format not in FORMATS:
            raise ValueError(f"log_format must be one of {FORMATS}, got {log_format!r}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = frozenset(skip_paths)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header("x-request-id") or uuid.uuid4().hex[:8]
        started = time.monotonic()

        def elapsed_ms() -> float:
            return (time.monotonic() - started) * 1000

        try:
            response = next(request)
        except Exception as e:
            logger.error(f"{request.method} {request.path} raised "
                         f"{type(e).__name__}: {e} ({elapsed_ms():.2f}ms) id={request_id}")
            raise

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)
        if request.path not in self.skip_paths:
            self._emit(RequestLog(
                request_id=request_id,
                method=request.method,
                path=request.path,
                client_ip=request.client_address[0],
                user_agent=request.user_agent or "-",
                status_code=int(response.status),
                content_length=len(response.body),
                duration_ms=elapsed_ms(),
                error=envelope_error(response),
            ))
        return response

    def _emit(self, entry: RequestLog):
        if self.log_format == "json":
            message = json.dumps(entry.to_dict(), ensure_ascii=False)
        else:
            message = entry.to_text()
        logger.log(self.log_level, message)
