"""
Unit tests for response serialization and the responses the server emits.
"""

import json
from datetime import datetime, timezone

import pytest

from listenerserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    HTTPStatus,
    error_response,
    not_found,
    forbidden,
    internal_error,
    service_unavailable,
    format_http_date,
)
from listenerserver.http.mime_types import get_content_type


def split_head(head: bytes):
    """Status line and header dict of serialized response headers."""
    lines = head.decode("utf-8").split("\r\n")
    headers = dict(line.split(": ", 1) for line in lines[1:] if line)
    return lines[0], headers


class TestWireFormat:
    """What actually goes down the socket."""

    def test_head_bytes_fills_in_defaults(self):
        status, headers = split_head(HTTPResponse(body=b"12345").head_bytes("Files/2.0"))

        assert status == "HTTP/1.1 200 OK"
        assert headers["Content-Length"] == "5"
        assert headers["Server"] == "Files/2.0"
        assert headers["Date"].endswith(" GMT")

    def test_head_bytes_ends_with_blank_line_and_no_body(self):
        head = HTTPResponse(body=b"payload").head_bytes()

        assert head.endswith(b"\r\n\r\n")
        assert b"payload" not in head

    def test_to_bytes_is_head_plus_body(self):
        response = HTTPResponse(headers={"Date": "fixed"}, body=b"payload")

        assert response.to_bytes() == response.head_bytes() + b"payload"

    def test_streamed_response_keeps_declared_length(self):
        """File responses stream the body; Content-Length comes from stat()."""
        response = HTTPResponse(headers={"Content-Length": "1048576"})
        _, headers = split_head(response.head_bytes())

        assert headers["Content-Length"] == "1048576"

    def test_explicit_server_header_wins(self):
        response = HTTPResponse(headers={"Server": "custom"})
        _, headers = split_head(response.head_bytes("ignored"))

        assert headers["Server"] == "custom"

    @pytest.mark.parametrize("status,line", [
        (HTTPStatus.MOVED_PERMANENTLY, "HTTP/1.1 301 Moved Permanently"),
        (HTTPStatus.NOT_MODIFIED, "HTTP/1.1 304 Not Modified"),
        (HTTPStatus.REQUEST_TIMEOUT, "HTTP/1.1 408 Request Timeout"),
        (HTTPStatus.HTTP_VERSION_NOT_SUPPORTED, "HTTP/1.1 505 HTTP Version Not Supported"),
    ])
    def test_status_line(self, status, line):
        assert HTTPResponse(status=status).status_line == line

    def test_every_status_has_a_phrase(self):
        for status in HTTPStatus:
            assert status.phrase != "Unknown"


class TestHandlerResponses:
    """Builder features the static handler relies on."""

    def test_directory_redirect(self):
        response = ResponseBuilder().redirect("/docs/").build()

        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert response.headers["Location"] == "/docs/"
        assert response.body == b""

    def test_listing_is_uncached_html(self):
        response = ResponseBuilder().html("<h1>Index of /</h1>").no_cache().build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert "no-store" in response.headers["Cache-Control"]
        assert response.body == b"<h1>Index of /</h1>"

    def test_file_is_cacheable(self):
        response = ResponseBuilder().cache(600).build()

        assert response.headers["Cache-Control"] == "public, max-age=600"

    def test_binary_body_untouched(self):
        response = ResponseBuilder().content_type("image/x-icon").body(b"\x00\x00\x01\x00").build()

        assert response.headers["Content-Type"] == "image/x-icon"
        assert response.body == b"\x00\x00\x01\x00"


class TestErrorResponses:
    """Errors carry a small JSON document: {"error": "..."}."""

    @pytest.mark.parametrize("factory,status", [
        (not_found, HTTPStatus.NOT_FOUND),
        (forbidden, HTTPStatus.FORBIDDEN),
        (internal_error, HTTPStatus.INTERNAL_SERVER_ERROR),
        (service_unavailable, HTTPStatus.SERVICE_UNAVAILABLE),
    ])
    def test_status_and_json_body(self, factory, status):
        response = factory()

        assert response.status == status
        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert set(json.loads(response.body)) == {"error"}

    def test_message_defaults_to_phrase(self):
        body = json.loads(error_response(HTTPStatus.PAYLOAD_TOO_LARGE).body)

        assert body == {"error": "Payload Too Large"}

    def test_internal_error_stays_generic(self):
        assert json.loads(internal_error().body) == {"error": "Internal Server Error"}

    def test_shutdown_message(self):
        assert json.loads(service_unavailable().body) == {"error": "Server is shutting down"}

    def test_non_ascii_message(self):
        body = json.loads(not_found("café.txt missing").body.decode("utf-8"))

        assert body["error"] == "café.txt missing"


class TestContentType:
    @pytest.mark.parametrize("name,expected", [
        ("hello.txt", "text/plain; charset=utf-8"),
        ("index.html", "text/html; charset=utf-8"),
        ("readme.md", "text/markdown; charset=utf-8"),
        ("data.json", "application/json; charset=utf-8"),
        ("photo.PNG", "image/png"),
        ("favicon.ico", "image/x-icon"),
        ("deep.bin", "application/octet-stream"),
        ("no_extension", "application/octet-stream"),
    ])
    def test_by_extension(self, name, expected):
        assert get_content_type(name) == expected


class TestHTTPDate:
    def test_rfc7231_format(self):
        dt = datetime(2026, 10, 19, 8, 5, 3, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Mon, 19 Oct 2026 08:05:03 GMT"
