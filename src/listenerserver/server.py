"""
=============================================================================
STATIC FILE SERVER
=============================================================================

The facade that ties the listener, the accept loop, the worker pool and
the dispatcher together behind four lifecycle calls.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        STATIC SERVER                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │  StaticServer   │                          │
    │                        │    (Facade)     │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            │                    │                    │              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │SocketListener│    │  WorkerPool  │    │  Dispatcher  │        │
    │    │ (Networking) │    │ (Concurrency)│    │  (Routing)   │        │
    │    └──────┬───────┘    └──────────────┘    └──────┬───────┘        │
    │           │                                       │                 │
    │           ▼                                       ▼                 │
    │    ┌──────────────┐                        ┌──────────────┐        │
    │    │   Context    │                        │   Handler    │        │
    │    │ (1 request)  │                        │  (Content)   │        │
    │    └──────────────┘                        └──────────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. ACCEPT (accept thread)
       └── listener.get_context() blocks until a client connects

    2. SUBMIT (accept thread)
       └── context queued on the worker pool; back to accept() at once

    3. TLS (worker)
       └── first byte 0x16 and HTTPS enabled: handshake

    4. PARSE (worker)
       └── 400 / 405 / 408 / 413 / 505 on failure

    5. CLASSIFY + DISPATCH (worker)
       └── ICON / FILE / DIRECTORY / OTHER ──► handler

    6. RESPOND + CLOSE (worker)
       └── exactly one response, then the connection closes

=============================================================================
LIFECYCLE
=============================================================================

    start()   listener on, pool on, accept thread (re)created; after
              abort() the run gets a new cancellation token
    stop()    listener off; the accept thread ends after its current
              accept() returns; running requests finish normally
    abort()   cancellation token set, socket shut down, accept thread
              joined (bounded), pool released without waiting
    close()   abort() once and for all; the server cannot be restarted

Python cannot kill a thread. The accept thread is a daemon and polls the
listener, so "forced termination" means: pull the socket out from under
it and wait a bounded time for it to notice.

=============================================================================
"""

import logging
import ssl
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core.connection import Connection
from .core.listener import SocketListener, ListenerState, ListenerClosedError
from .core.worker_pool import WorkerPool
from .dispatch import RequestDispatcher
from .handlers.base import RequestHandler
from .handlers.static import StaticRequestHandler
from .http.context import RequestContext
from .http.request import HTTPParseError
from .http.response import error_response, service_unavailable
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class StaticServer:
    """
    Static file server with start/stop/abort/close lifecycle.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig(root_folder="Files", relative=True, port=8080)

        with StaticServer(config) as server:
            server.start()
            ...                 # serve until told otherwise
            server.stop()
        # close() ran on the way out of the with block

    Entering the with block does not start the server; leaving it always
    closes it, whichever way the block exits.

    =========================================================================

    Args:
        config: Server configuration. Defaults to ServerConfig().
        handler: Content collaborator. Defaults to a StaticRequestHandler
                 over the configured root folder.

    Raises:
        ConfigurationError: If the configuration is invalid. Nothing has
            been bound when this is raised.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        handler: Optional[RequestHandler] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._root_folder = self.config.resolve_root()

        # Token of the current run, shared by its contexts; set by abort()
        self._cancel_event = threading.Event()

        self._handler = handler or StaticRequestHandler(
            self._root_folder,
            show_folder_size=self.config.show_folder_size,
        )
        self._dispatcher = RequestDispatcher(self._handler)
        self._pool = WorkerPool(max_workers=self.config.max_workers)
        self._listener = SocketListener(self.config, cancel_event=self._cancel_event)

        self._accept_thread: Optional[threading.Thread] = None
        self._join_timeout = self.config.accept_timeout + 1.0
        self._lock = threading.RLock()
        self._disposed = False

    def __repr__(self) -> str:
        return f"<StaticServer {self._root_folder!r} {self.state.value}>"

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def root_folder(self) -> str:
        """Effective root: absolute, one trailing separator."""
        return self._root_folder

    @property
    def handler(self) -> RequestHandler:
        return self._handler

    @property
    def is_listening(self) -> bool:
        return self._listener.is_listening

    @property
    def state(self) -> ListenerState:
        return self._listener.state

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port when configured with port=0."""
        return self._listener.address

    @property
    def accept_thread(self) -> Optional[threading.Thread]:
        return self._accept_thread

    @property
    def is_closed(self) -> bool:
        return self._disposed

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self):
        """
        Start listening and accepting. Safe to call when already started.

        Errors (e.g. the port is taken) are logged, not raised; check
        is_listening afterwards.
        """
        with self._lock:
            if self._disposed:
                logger.error("[Error] Cannot start a closed server")
                return

            try:
                if not self._listener.is_listening:
                    # An accept loop from before a stop() may still be polling
                    self._join_accept_thread()
                    # After abort() a fresh token; contexts of the aborted run stay cancelled
                    if self._cancel_event.is_set():
                        self._cancel_event = threading.Event()
                    self._listener.start(cancel_event=self._cancel_event)

                self._pool.start()

                if self._accept_thread is None or not self._accept_thread.is_alive():
                    self._accept_thread = threading.Thread(
                        target=self._accept_loop,
                        name="AcceptLoop",
                        daemon=True,
                    )
                    self._accept_thread.start()

                host, port = self.address
                logger.info(f"Serving {self._root_folder} on {host}:{port}")
            except Exception as e:
                logger.error(f"[Error] Failed to start server: {e}")

    def stop(self):
        """
        Stop accepting new connections.

        Requests already being handled run to completion.
        """
        with self._lock:
            try:
                logger.info("Stopping server...")
                self._listener.stop()
            except Exception as e:
                logger.error(f"[Error] Failed to stop server: {e}")

    def abort(self):
        """Stop now: cancel in-flight requests and drop the accept thread."""
        with self._lock:
            try:
                logger.info("Aborting server...")
                self._cancel_event.set()
                self._listener.abort()
                self._join_accept_thread()
                self._pool.shutdown(wait=False)
            except Exception as e:
                logger.error(f"[Error] Failed to abort server: {e}")

    def close(self):
        """Release everything. Idempotent; start() afterwards is refused."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True

            logger.info("Closing server...")
            self.abort()
            logger.info("Server closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _join_accept_thread(self):
        thread = self._accept_thread
        if thread is None or thread is threading.current_thread():
            return

        thread.join(timeout=self._join_timeout)
        if thread.is_alive():
            logger.warning(f"Accept thread did not exit within {self._join_timeout:.1f}s")

    # =========================================================================
    # ACCEPT LOOP (accept thread)
    # =========================================================================

    def _accept_loop(self):
        """
        Hand every accepted connection to the worker pool.

        ┌─────────────────────────────────────────────────────────────────┐
        │                                                                  │
        │   while listening:                        (outer: recovers)      │
        │       try:                                                       │
        │           while listening:                (inner: hot path)      │
        │               context = get_context()                            │
        │               pool.submit(handle, context)                       │
        │       except:                                                    │
        │           log, fall through to re-check listening               │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘
        """
        listener = self._listener
        logger.debug("Accept loop started")

        while listener.is_listening:
            try:
                while listener.is_listening:
                    context = listener.get_context()
                    try:
                        self._pool.submit(self._handle_request, args=(context,))
                    except Exception:
                        context.close()
                        raise
            except ListenerClosedError as e:
                logger.debug(f"Accept loop: {e}")
            except Exception as e:
                if listener.is_listening:
                    logger.error(f"[Error] Accept failed: {e}")
                else:
                    logger.debug(f"Accept interrupted by shutdown: {e}")

        logger.debug("Accept loop exited")

    # =========================================================================
    # REQUEST HANDLING (worker threads)
    # =========================================================================

    def _handle_request(self, context: RequestContext):
        """
        Serve one connection: TLS, parse, dispatch, close.

        DispatchError is left to propagate; the worker logs it.
        """
        with context:
            conn = context.connection

            if context.cancelled:
                context.respond(service_unavailable())
                return

            try:
                if not self._negotiate_tls(conn):
                    return
                request = context.read_request()
            except HTTPParseError as e:
                logger.warning(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                context.respond(error_response(HTTPStatus(e.status_code), str(e)))
                return
            except TimeoutError:
                logger.debug(f"[{conn.id}] Request read timeout")
                context.respond(error_response(HTTPStatus.REQUEST_TIMEOUT, "Request timeout"))
                return
            except ValueError as e:
                logger.warning(f"[{conn.id}] {e}")
                context.respond(error_response(HTTPStatus.PAYLOAD_TOO_LARGE))
                return

            if request is None:
                logger.debug(f"[{conn.id}] Client closed before sending a request")
                return

            logger.info(f"[Request] {context.local_path}")
            self._dispatcher.dispatch(context)

    def _negotiate_tls(self, conn: Connection) -> bool:
        """
        Upgrade the connection if HTTPS is on and the client speaks TLS.

        Returns:
            False if a handshake was attempted and failed.
        """
        ssl_context = self._listener.ssl_context
        if ssl_context is None or not conn.is_tls_handshake():
            return True

        try:
            conn.upgrade_tls(ssl_context)
        except (ssl.SSLError, OSError) as e:
            logger.warning(f"[{conn.id}] TLS handshake failed: {e}")
            return False
        return True


def setup_logging(level: str = "INFO"):
    """Configure timestamped logging for the server and its modules."""
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("listenerserver").setLevel(log_level)
