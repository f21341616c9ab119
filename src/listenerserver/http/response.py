"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Builds and serializes the single response each connection receives.

    HTTP/1.1 200 OK\\r\\n                         ← Status line
    Content-Type: text/html; charset=utf-8\\r\\n   ← Headers
    Content-Length: 1280\\r\\n
    Connection: close\\r\\n
    \\r\\n                                         ← Separator
    <!DOCTYPE html>...                          ← Body

Serialization is split in two so file handlers can stream large bodies:

    head_bytes()   status line + headers + separator
    to_bytes()     head_bytes() + body

A streamed response sets Content-Length itself and leaves body empty.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import json

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "ListenerServer/1.0"


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Use ResponseBuilder or the helper functions below to construct one.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Example: "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def head_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the status line and headers, including the blank line.

        Content-Length, Date and Server are added when missing.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n"

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Serialize the complete response, ready for socket.sendall()."""
        return self.head_bytes(server_name) + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .html("<h1>Index of /</h1>")
            .no_cache()
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
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

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def redirect(self, location: str) -> "ResponseBuilder":
        """301 Moved Permanently to location."""
        self._status = HTTPStatus.MOVED_PERMANENTLY
        self._headers["Location"] = location
        return self

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        self._headers["Pragma"] = "no-cache"
        self._headers["Expires"] = "0"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are always GMT; pass a UTC datetime.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the error responses the dispatch loop and handlers emit.
# Error bodies are small JSON documents: {"error": "..."}
#
# =============================================================================

def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    """Build an error response with a JSON body."""
    return (ResponseBuilder()
        .status(status)
        .json({"error": message or status.phrase})
        .build())


def forbidden(message: str = "Forbidden") -> HTTPResponse:
    return error_response(HTTPStatus.FORBIDDEN, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500. Keep the message generic; details belong in the log."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def service_unavailable(message: str = "Server is shutting down") -> HTTPResponse:
    return error_response(HTTPStatus.SERVICE_UNAVAILABLE, message)
