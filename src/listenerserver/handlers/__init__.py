"""
=============================================================================
HANDLERS MODULE
=============================================================================

What the server does with a request once it knows what kind it is.

    classifier.py   local path ──► RequestKind (ICON/FILE/DIRECTORY/OTHER)
    base.py         RequestHandler interface (classify + one handle_* per kind)
    static.py       StaticRequestHandler: serves the root folder
    icon.py         the embedded favicon

A custom handler subclasses RequestHandler and is passed to StaticServer:

    class Maintenance(StaticRequestHandler):
        def handle_file(self, context):
            context.respond(service_unavailable("Back soon"))

    server = StaticServer(config, handler=Maintenance(config.resolve_root()))

=============================================================================
"""

from .classifier import RequestKind, classify_path
from .base import RequestHandler
from .static import StaticRequestHandler

__all__ = [
    "RequestKind",
    "classify_path",
    "RequestHandler",
    "StaticRequestHandler",
]
