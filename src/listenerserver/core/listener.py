"""
=============================================================================
SOCKET LISTENER
=============================================================================

Owns the listening endpoint. Everything above this module talks to the
network through four calls:

    start()         bind + listen            STOPPED   ──► LISTENING
    stop()          close the socket         LISTENING ──► STOPPED
    abort()         shutdown + close         LISTENING ──► STOPPED
    get_context()   block for the next connection, wrap it in a
                    RequestContext

All of start/stop/abort are idempotent: starting a listening listener or
stopping a stopped one does nothing.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    1. socket()    Create the TCP socket
    2. bind()      Reserve host:port (port 0 = let the OS pick)
    3. listen()    The OS starts queueing connections (backlog)
    4. accept()    One new socket per client; the listening one stays

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created by start()
                    │                       │     Closed by stop()/abort()
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Context 1 │         │ Context 2 │         │ Context 3 │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() would block forever, and closing a socket from another thread
does not reliably wake a thread blocked on it. So the listening socket
gets a short timeout (accept_timeout) and get_context() polls:

    while listening:
        try:
            accept()          # blocks at most accept_timeout
        except timeout:
            continue          # re-check the state

stop() therefore takes effect within one accept_timeout. abort() also
calls shutdown(SHUT_RDWR), which makes a blocked accept() fail at once.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   Rebind right after a stop, without waiting for TIME_WAIT
               to expire ("Address already in use").
TCP_NODELAY    Disable Nagle's algorithm; responses leave immediately.

=============================================================================
"""

import socket
import ssl
import logging
import threading
from enum import Enum
from typing import Optional, Tuple

from ..config import ServerConfig
from ..http.context import RequestContext
from ..http.request import RequestParser
from .connection import Connection


logger = logging.getLogger(__name__)


class ListenerState(Enum):
    STOPPED = "stopped"
    LISTENING = "listening"


class ListenerClosedError(OSError):
    """get_context() was called on, or interrupted by, a stopped listener."""


class SocketListener:
    """
    Listening endpoint that produces one RequestContext per connection.

    Args:
        config: Server configuration (host, port, backlog, timeouts, TLS).
        cancel_event: Cancellation token handed to every context.
    """

    def __init__(self, config: ServerConfig, cancel_event: Optional[threading.Event] = None):
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.parser = RequestParser(max_request_size=config.max_request_size)

        self._socket: Optional[socket.socket] = None
        self._ssl_context: Optional[ssl.SSLContext] = None
        self._state = ListenerState.STOPPED
        self._lock = threading.Lock()

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == ListenerState.LISTENING

    @property
    def ssl_context(self) -> Optional[ssl.SSLContext]:
        """Server-side TLS context; None unless HTTPS is enabled."""
        return self._ssl_context

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port). Reflects the OS-chosen port when port=0."""
        sock = self._socket
        if sock is not None:
            try:
                return sock.getsockname()[:2]
            except OSError:
                pass
        return (self.config.host, self.config.port)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.config.accept_timeout)
        return sock

    def _create_ssl_context(self) -> ssl.SSLContext:
        """
        Load the configured certificate chain and key.

        Raises:
            OSError: If a file is missing or unreadable.
            ssl.SSLError: If the material is invalid.
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=self.config.cert_file, keyfile=self.config.key_file)
        return context

    def start(self, cancel_event: Optional[threading.Event] = None):
        """
        Bind and listen. A no-op when already listening.

        Args:
            cancel_event: Token for the contexts of this run. Keeps the
                          current one when omitted.

        Raises:
            OSError: If the address cannot be bound.
            ssl.SSLError: If HTTPS is enabled and the key material is invalid.
        """
        with self._lock:
            if self._state == ListenerState.LISTENING:
                return

            if cancel_event is not None:
                self.cancel_event = cancel_event

            if self.config.https:
                self._ssl_context = self._create_ssl_context()

            sock = self._create_socket()
            try:
                sock.bind((self.config.host, self.config.port))
                sock.listen(self.config.backlog)
            except OSError as e:
                sock.close()
                logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
                raise

            self._socket = sock
            self._state = ListenerState.LISTENING

        host, port = self.address
        scheme = "http+https" if self._ssl_context else "http"
        logger.info(f"Listening on {scheme}://{host}:{port}")

    def stop(self):
        """Close the listening socket. A no-op when not listening."""
        with self._lock:
            if self._state != ListenerState.LISTENING:
                return
            self._state = ListenerState.STOPPED
            sock, self._socket = self._socket, None

        self._close_socket(sock, force=False)
        logger.info("Listener stopped")

    def abort(self):
        """Shut the listening socket down hard so a blocked accept() returns now."""
        with self._lock:
            if self._state != ListenerState.LISTENING:
                return
            self._state = ListenerState.STOPPED
            sock, self._socket = self._socket, None

        self._close_socket(sock, force=True)
        logger.info("Listener aborted")

    def close(self):
        """Release the endpoint. Safe to call more than once."""
        self.abort()

    def _close_socket(self, sock: Optional[socket.socket], force: bool):
        if sock is None:
            return
        if force:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # not connected, nothing to shut down
        try:
            sock.close()
        except OSError:
            pass

    # -------------------------------------------------------------------------
    # ACCEPTING
    # -------------------------------------------------------------------------

    def get_context(self) -> RequestContext:
        """
        Block until a client connects.

        Returns:
            A RequestContext owning the accepted connection.

        Raises:
            ListenerClosedError: If the listener is (or becomes) stopped.
            OSError: On any other accept failure while still listening.
        """
        while True:
            sock = self._socket
            if sock is None or self._state != ListenerState.LISTENING:
                raise ListenerClosedError("Listener is not listening")

            try:
                client_socket, client_address = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._state != ListenerState.LISTENING:
                    raise ListenerClosedError("Listener closed during accept") from e
                raise

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                timeout=self.config.timeout,
                max_request_size=self.config.max_request_size,
            )
            return RequestContext(
                conn,
                parser=self.parser,
                cancel_event=self.cancel_event,
                server_name=self.config.server_name,
            )
