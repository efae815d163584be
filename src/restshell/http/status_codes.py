"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Status codes the serving shell writes on its own behalf, plus a lookup for
the reason phrase of any code a handler chooses.

Handlers behind the response envelope return a plain integer status. The
envelope writes that integer on the status line verbatim, so the phrase
lookup must accept codes that have no enum member (e.g. 299 or 599).

    HTTP/1.1 404 Not Found
             ─── ─────────
              │       │
              │       └── reason_phrase(404)
              └────────── whatever the handler returned

=============================================================================
"""

from enum import IntEnum
from http import HTTPStatus as _Registry


class HTTPStatus(IntEnum):
    """
    Codes the transport answers with on its own behalf.

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200

    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        return reason_phrase(self)

    @property
    def is_error(self) -> bool:
        return self >= 400


def reason_phrase(code: int) -> str:
    """
    Reason phrase for any integer status, from the IANA registry that
    ``http.HTTPStatus`` carries. Unregistered codes get "Unknown".
    """
    try:
        return _Registry(int(code)).phrase
    except ValueError:
        return "Unknown"


def is_valid_status(code: int) -> bool:
    """Whether ``code`` can appear on an HTTP/1.1 status line."""
    return 100 <= code <= 599
