"""
=============================================================================
LISTENERSERVER - Static File Server on Raw Sockets
=============================================================================

Serves a root folder over HTTP (and HTTPS on the same port): files,
directory listings with optional folder sizes, and a favicon.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    listenerserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m listenerserver)
    ├── server.py            # StaticServer facade + accept loop
    ├── config.py            # ServerConfig dataclass
    ├── dispatch.py          # RequestKind ──► handler operation
    ├── core/                # Low-level components
    │   ├── listener.py      # Listening socket, start/stop/abort
    │   ├── connection.py    # Connection wrapper (+ TLS upgrade)
    │   └── worker_pool.py   # Worker threads
    ├── http/                # HTTP protocol components
    │   ├── request.py       # HTTP request parsing
    │   ├── response.py      # HTTP response building
    │   ├── context.py       # One request, one response
    │   ├── status_codes.py  # HTTP status enums
    │   └── mime_types.py    # MIME type detection
    └── handlers/            # Content
        ├── classifier.py    # ICON / FILE / DIRECTORY / OTHER
        ├── base.py          # RequestHandler interface
        ├── static.py        # Files, listings, favicon
        └── icon.py          # Embedded favicon bytes

=============================================================================
QUICK START
=============================================================================

    from listenerserver import StaticServer, ServerConfig

    config = ServerConfig(root_folder="/srv/files", port=8080)

    with StaticServer(config) as server:
        server.start()
        input("Press Enter to stop\\n")
        server.stop()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, ConfigurationError
from .server import StaticServer, setup_logging
from .dispatch import RequestDispatcher, DispatchError
from .handlers import RequestKind, RequestHandler, StaticRequestHandler

__all__ = [
    "StaticServer",
    "ServerConfig",
    "ConfigurationError",
    "RequestKind",
    "RequestHandler",
    "StaticRequestHandler",
    "RequestDispatcher",
    "DispatchError",
    "setup_logging",
    "__version__",
]
