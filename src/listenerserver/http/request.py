"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into HTTPRequest objects (RFC 7230).

    GET /reports/2024%20Q1.pdf?download=1 HTTP/1.1\r\n   ← request line
    Host: files.local\r\n                                 ← headers
    If-None-Match: "1718000000-5120"\r\n
    \r\n                                                  ← separator

The only piece of the request the dispatch loop cares about is the
LOCAL PATH: the URI path, percent-decoded, without the query string.

    "/reports/2024%20Q1.pdf?download=1"  ──►  "/reports/2024 Q1.pdf"

The parser deliberately does NOT reject ".." segments. Whether a path
escapes the root folder is decided by the request classifier, which
resolves it against the filesystem and classifies it as OTHER.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code to answer with:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, HEAD, ...
        path:           Local path, percent-decoded, no query string
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header dict with LOWERCASE keys
        body:           Raw body bytes (usually empty for a file server)
        client_address: (ip, port) of the client
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)

    @property
    def is_head(self) -> bool:
        """HEAD requests get the headers of the GET response and no body."""
        return self.method == "HEAD"

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw bytes
            │
            ├──► size check          (413)
            ├──► split at \\r\\n\\r\\n   (400 if missing)
            ├──► request line        (400 / 405 / 505)
            ├──► headers             (lenient, lowercased)
            └──► body by Content-Length
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from socket.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            Tuple of (method, local_path, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        # Absolute-form targets ("http://host/path") are reduced to their path
        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"

        return method, path, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Obsolete line folding is joined onto the previous header and
        repeated headers are combined with ", ".
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

