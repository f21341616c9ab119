"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps an accepted client socket with the small API a worker needs to read
ONE request and write ONE response.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever the kernel has buffered, not whole messages:

    recv() → "GET /repo"
    recv() → "rts/ HTTP/1.1\\r\\nHost: ...\\r\\n\\r\\n"

So we buffer until the blank line that ends the headers, then read
exactly Content-Length more bytes.

=============================================================================
PLAIN AND TLS ON ONE PORT
=============================================================================

When HTTPS is enabled the same listening socket accepts both schemes.
The first byte a client sends tells them apart without consuming it:

    0x16         TLS handshake record (ClientHello)  → wrap with SSLContext
    'G', 'H'...  an HTTP request line                → serve as plain HTTP

The peek happens on the worker thread, never on the accept thread, so a
slow client cannot stall the accept loop.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED
     │         │                                      ▲
     └─────────┴──────────────────────────────────────┘
                   (client vanished / error)

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)

TLS_HANDSHAKE_RECORD = 0x16


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and close bookkeeping."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A single accepted client connection.

    Attributes:
        socket: The client socket (replaced by an SSLSocket after upgrade_tls).
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 8192
    timeout: float = 30.0
    max_request_size: int = 10 * 1024 * 1024

    # Upper bounds for discarding client bytes on close
    drain_timeout: float = 0.5
    drain_limit: int = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        # Accepted sockets may inherit the listener's polling timeout
        self.socket.setblocking(True)

        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # -------------------------------------------------------------------------
    # TLS
    # -------------------------------------------------------------------------

    def is_tls_handshake(self) -> bool:
        """
        Peek at the first byte to see whether the client opened with TLS.

        Raises:
            TimeoutError: If the client sends nothing within the timeout.
        """
        try:
            first = self.socket.recv(1, socket.MSG_PEEK)
        except socket.timeout:
            raise TimeoutError("Request read timeout")
        except (ConnectionResetError, BrokenPipeError):
            return False

        return bool(first) and first[0] == TLS_HANDSHAKE_RECORD

    def upgrade_tls(self, ssl_context: ssl.SSLContext):
        """
        Run the server side of the TLS handshake on this connection.

        Raises:
            ssl.SSLError: If the handshake fails.
        """
        self.socket = ssl_context.wrap_socket(self.socket, server_side=True)
        logger.debug(f"[{self.id}] TLS established ({self.socket.version()})")

    # -------------------------------------------------------------------------
    # READING
    # -------------------------------------------------------------------------

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Returns:
            Complete request bytes, or None if the client closed the
            connection before sending a full header block.

        Raises:
            TimeoutError: If the read times out.
            ValueError: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None

                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # closed mid-body, parser reports the short body

                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.state = ConnectionState.PROCESSING
            return request_data

        except socket.timeout:
            raise TimeoutError("Request read timeout")

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Find Content-Length in raw headers, before full parsing; 0 if absent."""
        try:
            header_str = headers.decode("utf-8", errors="replace").lower()
            for line in header_str.split("\r\n"):
                if line.startswith("content-length:"):
                    return max(0, int(line.split(":", 1)[1].strip()))
        except (ValueError, IndexError):
            pass
        return 0

    # -------------------------------------------------------------------------
    # WRITING
    # -------------------------------------------------------------------------

    def send(self, data: bytes) -> bool:
        """
        Send bytes to the client with sendall().

        Returns:
            True if sent, False if the connection was lost.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except (ConnectionResetError, BrokenPipeError, OSError) as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # -------------------------------------------------------------------------
    # CLOSING
    # -------------------------------------------------------------------------

    def close(self):
        """
        Close the connection gracefully: FIN, drain, release the fd.

        The drain discards whatever the client still sends so the close
        does not turn into a reset, but never for longer than drain_timeout
        in total nor beyond drain_limit bytes. Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # already disconnected

        self._drain()

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {time.time() - self.created_at:.3f}s")

    def _drain(self):
        deadline = time.monotonic() + self.drain_timeout
        drained = 0

        try:
            while drained < self.drain_limit:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break

                self.socket.settimeout(remaining)
                chunk = self.socket.recv(self.buffer_size)
                if not chunk:
                    break
                drained += len(chunk)
        except (socket.timeout, OSError, ValueError):
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
