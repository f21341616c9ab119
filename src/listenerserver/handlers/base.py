"""
Request handler interface.

The dispatcher only knows this contract: classify a path, then call the
one handle_* method that matches the kind. Each handle_* method must write
exactly one response to the context (context.respond / respond_stream).
"""

from abc import ABC, abstractmethod

from ..http.context import RequestContext
from .classifier import RequestKind


class RequestHandler(ABC):
    """Content collaborator of the server."""

    @abstractmethod
    def classify(self, local_path: str) -> RequestKind:
        """Decide which handle_* method serves local_path."""

    @abstractmethod
    def handle_icon(self, context: RequestContext) -> None:
        """Serve the site icon."""

    @abstractmethod
    def handle_file(self, context: RequestContext) -> None:
        """Serve a regular file."""

    @abstractmethod
    def handle_directory(self, context: RequestContext) -> None:
        """Serve a directory."""

    @abstractmethod
    def handle_other(self, context: RequestContext) -> None:
        """Answer a path that is neither icon, file nor directory."""
