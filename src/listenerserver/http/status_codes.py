"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes a static file server actually emits, with their reason
phrases.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK             - File, listing or icon served         │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 301 Moved Permanently - "/docs" -> "/docs/"               │
    │        │ 304 Not Modified      - ETag matched, use cached copy     │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request    - Malformed request line              │
    │        │ 403 Forbidden      - Permission denied on disk           │
    │        │ 404 Not Found      - Nothing to serve at that path       │
    │        │ 405 / 408 / 413    - Parse and read failures             │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Server Error - Handler failed                │
    │        │ 503 Service Unavailable   - Server is shutting down       │
    │        │ 505 HTTP Version Not Supported                            │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so codes compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301     # Directory requested without trailing slash
    NOT_MODIFIED = 304          # Cached version is still valid

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408       # Client took too long to send request
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503   # Shutting down
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      └── Reason phrase
                      └───────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.NOT_MODIFIED: "Not Modified",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
