"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Connection.read_request() hands over one complete request (head plus
Content-Length body). RequestParser turns it into an HTTPRequest for the
router; anything it cannot accept becomes an HTTPParseError carrying the
status of the error envelope the transport writes back:

    oversized                     413
    no blank line / bad syntax    400
    method not served             405
    not HTTP/1.0 or HTTP/1.1      505

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple
from urllib.parse import parse_qs, unquote, urlsplit
import re


SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")


class HTTPParseError(Exception):
    """Request rejected before routing; ``status_code`` is what to answer."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed request as the router and envelope handlers see it.

    ``headers`` keys are lower-case. ``path_params`` is empty until the
    router matches a ":param" route.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        # HTTP/1.1 persists unless told to close; HTTP/1.0 only when asked
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Bytes → HTTPRequest.

        parser = RequestParser(max_request_size=config.max_request_size)
        request = parser.parse(raw, conn.address)
    """

    METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"})

    _request_line = re.compile(r"^(\S+) (\S+) (HTTP/\d\.\d)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Raises:
            HTTPParseError: The request cannot be served.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        head, sep, rest = data.partition(b"\r\n\r\n")
        if not sep:
            raise HTTPParseError("Incomplete request: no header terminator")

        first, *header_lines = head.decode("latin-1").split("\r\n")
        method, target, version = self._parse_request_line(first)
        headers = self._parse_headers(header_lines)
        body = rest[:self._content_length(headers, len(rest))]

        url = urlsplit(target)
        path = unquote(url.path) or "/"
        if ".." in path.split("/"):
            raise HTTPParseError(f"Invalid path: {path}")

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=parse_qs(url.query, keep_blank_values=True),
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        found = self._request_line.match(line)
        if found is None:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = found.groups()
        if method not in self.METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)
        if version not in SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)
        return method, target, version

    @staticmethod
    def _parse_headers(lines: List[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for line in lines:
            name, sep, value = line.partition(":")
            if not sep or not name.strip():
                raise HTTPParseError(f"Malformed header line: {line!r}")
            name = name.strip().lower()
            value = value.strip()
            # repeated headers fold into one comma-separated value
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        return headers

    @staticmethod
    def _content_length(headers: Dict[str, str], available: int) -> int:
        raw = headers.get("content-length", "0")
        if not raw.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        length = int(raw)
        if length > available:
            raise HTTPParseError(f"Incomplete body: expected {length} bytes, got {available}")
        return length
