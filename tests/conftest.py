"""
pytest configuration and fixtures.
"""

import socket
import time
from pathlib import Path
from typing import Callable, Dict, Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from listenerserver import StaticServer, ServerConfig
from listenerserver.core.connection import Connection
from listenerserver.http.context import RequestContext


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request for a file."""
    return (
        b"GET /docs/readme.md?download=1&v=2 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: */*\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_head_request() -> bytes:
    """Sample HTTP HEAD request."""
    return (
        b"HEAD /hello.txt HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"\r\n"
    )


@pytest.fixture
def root_tree(tmp_path: Path) -> Path:
    """
    A small root folder:

        Files/
        ├── hello.txt           "Hello, world!\\n"
        ├── index.html
        ├── with space.txt
        ├── docs/
        │   ├── readme.md       100 bytes
        │   └── nested/
        │       └── deep.bin    2048 bytes
        └── empty/

    plus tmp_path/secret.txt, outside the root.
    """
    root = tmp_path / "Files"
    (root / "docs" / "nested").mkdir(parents=True)
    (root / "empty").mkdir()

    (root / "hello.txt").write_bytes(b"Hello, world!\n")
    (root / "index.html").write_text("<h1>Home</h1>")
    (root / "with space.txt").write_text("spaced")
    (root / "docs" / "readme.md").write_bytes(b"#" * 100)
    (root / "docs" / "nested" / "deep.bin").write_bytes(b"\x00" * 2048)

    (tmp_path / "secret.txt").write_text("top secret")
    return root


@pytest.fixture
def config(root_tree: Path) -> ServerConfig:
    """Test server configuration on a free loopback port."""
    return ServerConfig(
        root_folder=str(root_tree),
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        accept_timeout=0.1,
        timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def server(config: ServerConfig) -> Generator[StaticServer, None, None]:
    """A started server; closed after the test."""
    srv = StaticServer(config)
    srv.start()
    assert srv.is_listening

    yield srv

    srv.close()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""
    def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait_until


# =============================================================================
# RAW HTTP HELPERS
# =============================================================================

Response = Tuple[int, Dict[str, str], bytes]


def parse_response(raw: bytes) -> Response:
    """Split raw response bytes into (status, lowercase headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ", 2)[1])

    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return status, headers, body


def send_raw(address: Tuple[str, int], data: bytes, timeout: float = 5.0) -> bytes:
    """Send bytes, read until the server closes the connection."""
    with socket.create_connection(address, timeout=timeout) as s:
        s.sendall(data)
        chunks = []
        while True:
            chunk = s.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def raw_request() -> Callable[..., bytes]:
    return send_raw


@pytest.fixture
def http_request() -> Callable[..., Response]:
    """
    Make one request against a running server.

        status, headers, body = http_request(server.address, "/hello.txt")
    """
    def _http_request(
        address: Tuple[str, int],
        path: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        data = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
        return parse_response(send_raw(address, data))

    return _http_request


@pytest.fixture
def exchange() -> Callable[..., Tuple[Response, RequestContext]]:
    """
    Run one handler operation over a socketpair, without a listener.

        (status, headers, body), context = exchange(handler.handle_file, b"GET /a HTTP/1.1\\r\\n\\r\\n")
    """
    def _exchange(operation, request_bytes: bytes, cancel_event=None):
        server_sock, client_sock = socket.socketpair()
        context = RequestContext(
            Connection(socket=server_sock, address=("127.0.0.1", 0), timeout=5.0),
            cancel_event=cancel_event,
        )
        with client_sock:
            client_sock.sendall(request_bytes)
            context.read_request()
            try:
                operation(context)
            finally:
                server_sock.shutdown(socket.SHUT_WR)

            chunks = []
            while True:
                chunk = client_sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)

        context.close()
        return parse_response(b"".join(chunks)), context

    return _exchange
