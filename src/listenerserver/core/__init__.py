"""
=============================================================================
CORE MODULE
=============================================================================

The network and concurrency layer:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketListener   owns the listening socket, yields contexts      │
    │   Connection       one accepted client socket (read once, write    │
    │                    once, optional TLS upgrade)                     │
    │   WorkerPool       FIFO queue + worker threads                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

SocketListener lives in core.listener and is imported from there: it
builds http.RequestContext objects, and http.context in turn needs
core.connection.

=============================================================================
"""

from .connection import Connection, ConnectionState
from .worker_pool import WorkerPool

__all__ = [
    "Connection",       # Wrapper for client socket - handles I/O
    "ConnectionState",  # Enum for connection lifecycle states
    "WorkerPool",       # Worker threads for concurrent requests
]
