"""
=============================================================================
HTTP RESPONSE
=============================================================================

What a handler returns and what Connection.send_response() writes:

    HTTP/1.1 404 Not Found\r\n
    Content-Type: application/json; charset=utf-8\r\n
    Content-Length: 41\r\n
    Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n
    Server: restshell/1.0\r\n
    \r\n
    {"code":404,"error":"No route matches /x"}

The status is a plain int: envelope handlers may answer with any code in
100-599, listed in HTTPStatus or not.

=============================================================================
"""

from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Dict

from .status_codes import HTTPStatus, reason_phrase


DEFAULT_SERVER_NAME = "restshell/1.0"


@dataclass
class HTTPResponse:
    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive lookup; handlers and middleware mix spellings."""
        wanted = name.lower()
        return next(
            (value for key, value in self.headers.items() if key.lower() == wanted),
            default,
        )

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Wire form. Content-Length, Date and Server are filled in unless the
        handler set them.
        """
        headers = {
            "Content-Length": str(len(self.body)),
            "Date": format_http_date(),
            "Server": server_name,
        }
        present = {key.lower() for key in self.headers}
        headers = {k: v for k, v in headers.items() if k.lower() not in present}
        headers.update(self.headers)

        head = [self.status_line]
        head.extend(f"{name}: {value}" for name, value in headers.items())
        return ("\r\n".join(head) + "\r\n\r\n").encode("latin-1") + self.body


class ResponseBuilder:
    """
    Fluent construction, used by the envelope helpers:

        (ResponseBuilder()
            .status(404)
            .content_type("application/json; charset=utf-8")
            .body(payload)
            .build())
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: bytes) -> "ResponseBuilder":
        self._body = body
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=dict(self._headers), body=self._body)


def format_http_date(timestamp: float = None) -> str:
    """RFC 7231 IMF-fixdate, e.g. "Mon, 19 Oct 2026 12:00:00 GMT"."""
    return formatdate(timestamp, usegmt=True)
