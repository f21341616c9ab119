"""
=============================================================================
REQUEST DISPATCH
=============================================================================

Routes a classified request to the handler operation for its kind:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   context.local_path                                                │
    │        │                                                             │
    │        ▼                                                             │
    │   handler.classify()                                                │
    │        │                                                             │
    │        ├── ICON       ──► handler.handle_icon(context)              │
    │        ├── FILE       ──► handler.handle_file(context)              │
    │        ├── DIRECTORY  ──► handler.handle_directory(context)         │
    │        ├── OTHER      ──► handler.handle_other(context)             │
    │        └── (unknown)  ──► DispatchError                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Exactly one response per dispatch:

- The handler normally writes it.
- A classify() that raises gets a 500; no handler operation runs.
- A handler that raises gets a 500 (503 if the server is shutting down),
  unless it had already started writing.
- A handler that returns without writing gets a 500.
- An unknown kind is a programming error: a 500 is written and
  DispatchError propagates so the worker logs it loudly.

=============================================================================
"""

import logging
from typing import Callable, Dict

from .handlers.base import RequestHandler
from .handlers.classifier import RequestKind
from .http.context import RequestContext, RequestCancelledError
from .http.response import HTTPResponse, internal_error, service_unavailable


logger = logging.getLogger(__name__)


class DispatchError(RuntimeError):
    """Classification produced a kind no handler operation exists for."""


class RequestDispatcher:
    """
    Maps each RequestKind to one operation of a RequestHandler.

    Args:
        handler: The content collaborator.
    """

    def __init__(self, handler: RequestHandler):
        self.handler = handler
        self.routes: Dict[RequestKind, Callable[[RequestContext], None]] = {
            RequestKind.ICON: handler.handle_icon,
            RequestKind.FILE: handler.handle_file,
            RequestKind.DIRECTORY: handler.handle_directory,
            RequestKind.OTHER: handler.handle_other,
        }

    def dispatch(self, context: RequestContext) -> RequestKind:
        """
        Classify the request and run the matching handler operation.

        Returns:
            The kind the request was classified as; OTHER if classify() raised.

        Raises:
            DispatchError: If the kind has no route.
        """
        try:
            kind = self.handler.classify(context.local_path)
        except Exception as e:
            logger.exception(f"[Error] Classification failed for {context.local_path}: {e}")
            self._respond_once(context, internal_error())
            return RequestKind.OTHER

        route = self.routes.get(kind)
        if route is None:
            self._respond_once(context, internal_error())
            raise DispatchError(f"No route for request kind {kind!r} ({context.local_path})")

        try:
            route(context)
        except RequestCancelledError:
            logger.debug(f"[{context.connection.id}] Cancelled while handling {context.local_path}")
            self._respond_once(context, service_unavailable())
            return kind
        except Exception as e:
            logger.exception(f"[Error] {kind.name} handler failed for {context.local_path}: {e}")
            self._respond_once(context, internal_error())
            return kind

        if not context.responded:
            logger.error(f"[Error] {kind.name} handler wrote no response for {context.local_path}")
            self._respond_once(context, internal_error())

        return kind

    def _respond_once(self, context: RequestContext, response: HTTPResponse):
        if not context.responded:
            context.respond(response)
