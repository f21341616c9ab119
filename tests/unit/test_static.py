"""
Unit tests for the static content handler.
"""

import os
import threading

import pytest

from listenerserver.handlers.classifier import RequestKind
from listenerserver.handlers.icon import FAVICON
from listenerserver.handlers.static import StaticRequestHandler, format_size
from listenerserver.http.context import RequestCancelledError


def get(path: str, headers: str = "") -> bytes:
    return f"GET {path} HTTP/1.1\r\nHost: test\r\n{headers}\r\n".encode()


@pytest.fixture
def handler(root_tree) -> StaticRequestHandler:
    return StaticRequestHandler(str(root_tree) + os.sep)


class TestClassify:
    def test_delegates_to_classifier(self, handler):
        assert handler.classify("/favicon.ico") == RequestKind.ICON
        assert handler.classify("/hello.txt") == RequestKind.FILE
        assert handler.classify("/docs/") == RequestKind.DIRECTORY
        assert handler.classify("/nope") == RequestKind.OTHER


class TestIcon:
    def test_serves_embedded_icon(self, handler, exchange):
        (status, headers, body), _ = exchange(handler.handle_icon, get("/favicon.ico"))

        assert status == 200
        assert headers["content-type"] == "image/x-icon"
        assert "max-age" in headers["cache-control"]
        assert body == FAVICON

    def test_icon_is_a_valid_ico(self):
        # ICONDIR: reserved 0, type 1, one image
        assert FAVICON[:6] == b"\x00\x00\x01\x00\x01\x00"
        image_size = int.from_bytes(FAVICON[14:18], "little")
        image_offset = int.from_bytes(FAVICON[18:22], "little")
        assert image_offset == 22
        assert len(FAVICON) == image_offset + image_size


class TestFile:
    def test_serves_file(self, handler, exchange):
        (status, headers, body), context = exchange(handler.handle_file, get("/hello.txt"))

        assert status == 200
        assert body == b"Hello, world!\n"
        assert headers["content-type"] == "text/plain; charset=utf-8"
        assert headers["content-length"] == "14"
        assert headers["connection"] == "close"
        assert headers["etag"].startswith('"') and headers["etag"].endswith('-14"')
        assert headers["last-modified"].endswith("GMT")
        assert context.responded

    def test_percent_decoded_name(self, handler, exchange):
        (status, _, body), _ = exchange(handler.handle_file, get("/with%20space.txt"))

        assert status == 200
        assert body == b"spaced"

    def test_streams_in_chunks(self, root_tree, exchange):
        data = bytes(range(256)) * 100
        (root_tree / "big.bin").write_bytes(data)
        small_chunks = StaticRequestHandler(str(root_tree), chunk_size=1000)

        (status, headers, body), _ = exchange(small_chunks.handle_file, get("/big.bin"))

        assert status == 200
        assert headers["content-type"] == "application/octet-stream"
        assert int(headers["content-length"]) == len(data)
        assert body == data

    def test_if_none_match_gives_304(self, handler, exchange):
        (_, headers, _), _ = exchange(handler.handle_file, get("/hello.txt"))
        etag = headers["etag"]

        (status, headers, body), _ = exchange(
            handler.handle_file, get("/hello.txt", f"If-None-Match: {etag}\r\n")
        )

        assert status == 304
        assert headers["etag"] == etag
        assert body == b""

    def test_stale_etag_gets_full_file(self, handler, exchange):
        (status, _, body), _ = exchange(
            handler.handle_file, get("/hello.txt", 'If-None-Match: "0-0"\r\n')
        )

        assert status == 200
        assert body == b"Hello, world!\n"

    def test_head_has_no_body(self, handler, exchange, sample_head_request):
        (status, headers, body), _ = exchange(handler.handle_file, sample_head_request)

        assert status == 200
        assert headers["content-length"] == "14"
        assert body == b""

    def test_vanished_file_is_404(self, handler, root_tree, exchange):
        def remove_then_handle(context):
            (root_tree / "hello.txt").unlink()
            handler.handle_file(context)

        (status, _, _), _ = exchange(remove_then_handle, get("/hello.txt"))

        assert status == 404

    @pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs file permissions")
    def test_unreadable_file_is_403(self, handler, root_tree, exchange):
        secret = root_tree / "locked.txt"
        secret.write_text("locked")
        secret.chmod(0)
        try:
            (status, _, _), _ = exchange(handler.handle_file, get("/locked.txt"))
        finally:
            secret.chmod(0o644)

        assert status == 403


class TestDirectory:
    def test_redirects_to_trailing_slash(self, handler, exchange):
        (status, headers, _), _ = exchange(handler.handle_directory, get("/docs"))

        assert status == 301
        assert headers["location"] == "/docs/"

    def test_listing(self, handler, exchange):
        (status, headers, body), _ = exchange(handler.handle_directory, get("/docs/"))
        html = body.decode()

        assert status == 200
        assert headers["content-type"] == "text/html; charset=utf-8"
        assert "Index of /docs/" in html
        assert 'href="../"' in html
        assert 'href="nested/"' in html
        assert 'href="readme.md"' in html
        assert "100 B" in html

    def test_directories_listed_first(self, handler, exchange):
        (_, _, body), _ = exchange(handler.handle_directory, get("/"))
        html = body.decode()

        assert html.index('href="docs/"') < html.index('href="hello.txt"')
        assert html.index('href="empty/"') < html.index('href="hello.txt"')

    def test_root_has_no_parent_link(self, handler, exchange):
        (_, _, body), _ = exchange(handler.handle_directory, get("/"))

        assert 'href="../"' not in body.decode()

    def test_names_are_escaped_and_quoted(self, handler, root_tree, exchange):
        (root_tree / "a<b>.txt").write_text("x")
        (_, _, body), _ = exchange(handler.handle_directory, get("/"))
        html = body.decode()

        assert "a&lt;b&gt;.txt" in html
        assert 'href="a%3Cb%3E.txt"' in html
        assert 'href="with%20space.txt"' in html

    def test_folder_sizes_shown(self, handler, exchange):
        (_, _, body), _ = exchange(handler.handle_directory, get("/"))

        # docs/ holds readme.md (100 B) and nested/deep.bin (2048 B)
        assert format_size(2148) in body.decode()

    def test_folder_sizes_hidden(self, root_tree, exchange):
        no_sizes = StaticRequestHandler(str(root_tree), show_folder_size=False)
        (_, _, body), _ = exchange(no_sizes.handle_directory, get("/"))
        html = body.decode()

        assert format_size(2148) not in html
        assert "<td>-</td>" in html

    def test_folder_size(self, handler, root_tree):
        assert handler.folder_size(str(root_tree / "docs")) == 2148
        assert handler.folder_size(str(root_tree / "empty")) == 0

    def test_listing_walk_is_cancellable(self, handler, exchange):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RequestCancelledError):
            exchange(handler.handle_directory, get("/"), cancel_event=cancel)


class TestOther:
    def test_not_found(self, handler, exchange):
        (status, headers, body), _ = exchange(handler.handle_other, get("/missing"))

        assert status == 404
        assert headers["content-type"].startswith("application/json")
        assert b"error" in body


class TestFormatSize:
    @pytest.mark.parametrize("size, expected", [
        (0, "0 B"),
        (512, "512 B"),
        (1023, "1023 B"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5.0 MB"),
        (3 * 1024 ** 4, "3.0 TB"),
    ])
    def test_format(self, size, expected):
        assert format_size(size) == expected
