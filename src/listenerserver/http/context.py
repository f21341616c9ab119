"""
=============================================================================
REQUEST CONTEXT
=============================================================================

Everything one request needs, owned by exactly one worker:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         RequestContext                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   connection     accepted client socket (read once, write once)     │
    │   request        parsed HTTPRequest (None until read_request())     │
    │   local_path     request.path - what the classifier looks at        │
    │   cancel_event   set by abort()/close(); checked at I/O boundaries  │
    │   responded      flips to True when the response is written         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The context is created by the listener when a connection is accepted and
is released when its connection closes. Exactly one response is written:
a second respond() raises ResponseAlreadySentError.

=============================================================================
"""

import logging
import threading
from typing import Iterable, Optional

from ..core.connection import Connection
from .request import HTTPRequest, RequestParser
from .response import HTTPResponse, DEFAULT_SERVER_NAME


logger = logging.getLogger(__name__)


class ResponseAlreadySentError(RuntimeError):
    """Raised when a second response is written to the same context."""


class RequestCancelledError(Exception):
    """Raised at an I/O boundary when the server is shutting down."""


class RequestContext:
    """
    Per-connection request data and the ability to answer it once.

    Args:
        connection: The accepted client connection.
        parser: Parser used by read_request().
        cancel_event: Shared cancellation token of the server.
        server_name: Value for the Server header.
    """

    def __init__(
        self,
        connection: Connection,
        parser: Optional[RequestParser] = None,
        cancel_event: Optional[threading.Event] = None,
        server_name: str = DEFAULT_SERVER_NAME,
    ):
        self.connection = connection
        self.parser = parser or RequestParser()
        self.cancel_event = cancel_event or threading.Event()
        self.server_name = server_name

        self.request: Optional[HTTPRequest] = None
        self.response: Optional[HTTPResponse] = None
        self._responded = False
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        path = self.request.path if self.request else None
        return f"<RequestContext {self.connection.id} path={path!r} responded={self._responded}>"

    # -------------------------------------------------------------------------
    # REQUEST SIDE
    # -------------------------------------------------------------------------

    def read_request(self) -> Optional[HTTPRequest]:
        """
        Read and parse the request from the connection.

        Returns:
            The parsed request, or None if the client went away first.

        Raises:
            HTTPParseError: Malformed request.
            TimeoutError: Client too slow.
            ValueError: Request exceeds the size limit.
        """
        raw = self.connection.read_request()
        if raw is None:
            return None

        self.request = self.parser.parse(raw, self.connection.address)
        return self.request

    @property
    def local_path(self) -> str:
        if self.request is None:
            raise RuntimeError("Request has not been read yet")
        return self.request.path

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def raise_if_cancelled(self):
        """Checkpoint for long-running handlers."""
        if self.cancel_event.is_set():
            raise RequestCancelledError(f"Request {self.connection.id} cancelled")

    # -------------------------------------------------------------------------
    # RESPONSE SIDE
    # -------------------------------------------------------------------------

    @property
    def responded(self) -> bool:
        return self._responded

    def _claim(self, response: HTTPResponse):
        with self._lock:
            if self._responded:
                raise ResponseAlreadySentError(
                    f"Response already sent on connection {self.connection.id}"
                )
            self._responded = True
            self.response = response

        # One request per connection
        response.headers["Connection"] = "close"

    def respond(self, response: HTTPResponse) -> bool:
        """
        Write the response. HEAD requests get the headers only.

        Returns:
            True if the bytes reached the socket.
        """
        self._claim(response)

        if self.request is not None and self.request.is_head:
            return self.connection.send(response.head_bytes(self.server_name))
        return self.connection.send(response.to_bytes(self.server_name))

    def respond_stream(self, response: HTTPResponse, chunks: Iterable[bytes]) -> bool:
        """
        Write the headers of response, then each chunk as it is produced.

        The caller sets Content-Length. Cancellation is checked between
        chunks; a cancelled stream is cut short and the connection closed
        by the worker.

        Returns:
            True if every chunk reached the socket.
        """
        self._claim(response)

        if not self.connection.send(response.head_bytes(self.server_name)):
            return False

        if self.request is not None and self.request.is_head:
            return True

        for chunk in chunks:
            if self.cancelled:
                logger.debug(f"[{self.connection.id}] Stream cancelled")
                return False
            if not self.connection.send(chunk):
                return False
        return True

    def close(self):
        self.connection.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
