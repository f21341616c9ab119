"""
=============================================================================
STATIC CONTENT HANDLER
=============================================================================

Serves everything below the root folder: files, directory listings and
the site icon.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      StaticRequestHandler                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   classify(path)        ICON / FILE / DIRECTORY / OTHER             │
    │                                                                      │
    │   handle_icon()         embedded favicon, cacheable                 │
    │   handle_file()         streamed file with ETag / Last-Modified     │
    │   handle_directory()    HTML listing, optional folder sizes         │
    │   handle_other()        404                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONDITIONAL REQUESTS
=============================================================================

Every file response carries an ETag built from mtime and size:

    1st request:   GET /report.pdf
                   ◄── 200 OK, ETag: "1767268800-52341", body

    2nd request:   GET /report.pdf, If-None-Match: "1767268800-52341"
                   ◄── 304 Not Modified, no body

=============================================================================
STREAMING
=============================================================================

Files are never read into memory whole. The headers go out first
(Content-Length from stat), then the file in chunk_size pieces. The
cancellation token is checked between chunks, so an aborted server stops
sending large files promptly.

=============================================================================
FOLDER SIZES
=============================================================================

With show_folder_size, each sub-folder in a listing shows the total size
of all files beneath it. That walks the whole subtree, so the walk checks
the cancellation token too. Without it, folders show "-".

=============================================================================
"""

import os
import html
import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional
from datetime import datetime, timezone
from urllib.parse import quote

from ..http.context import RequestContext
from ..http.response import (
    ResponseBuilder, HTTPStatus, format_http_date,
    not_found, forbidden
)
from ..http.mime_types import get_content_type
from .base import RequestHandler
from .classifier import RequestKind, classify_path, resolve_local_path
from .icon import FAVICON, ICON_CONTENT_TYPE


logger = logging.getLogger(__name__)


def format_size(size: int) -> str:
    """
    Human-readable byte count.

        512      → "512 B"
        1536     → "1.5 KB"
        5242880  → "5.0 MB"
    """
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{size} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


class StaticRequestHandler(RequestHandler):
    """
    Default content handler: serves the root folder as-is.

    Args:
        root_folder: Absolute root folder (trailing separator allowed).
        show_folder_size: Aggregate sub-folder sizes in listings.
        chunk_size: Bytes per write when streaming files.
        cache_max_age: Cache-Control max-age for files, in seconds.
        icon_max_age: Cache-Control max-age for the favicon, in seconds.
    """

    def __init__(
        self,
        root_folder: str,
        show_folder_size: bool = True,
        chunk_size: int = 64 * 1024,
        cache_max_age: int = 3600,
        icon_max_age: int = 86400,
    ):
        self.root_folder = root_folder
        self.root_path = Path(root_folder).resolve()
        self.show_folder_size = show_folder_size
        self.chunk_size = chunk_size
        self.cache_max_age = cache_max_age
        self.icon_max_age = icon_max_age

        if not self.root_path.is_dir():
            logger.warning(f"Root folder does not exist: {root_folder}")

    def classify(self, local_path: str) -> RequestKind:
        return classify_path(self.root_path, local_path)

    def _target(self, context: RequestContext) -> Optional[Path]:
        return resolve_local_path(self.root_path, context.local_path)

    # -------------------------------------------------------------------------
    # ICON
    # -------------------------------------------------------------------------

    def handle_icon(self, context: RequestContext) -> None:
        response = (ResponseBuilder()
            .content_type(ICON_CONTENT_TYPE)
            .cache(self.icon_max_age)
            .body(FAVICON)
            .build())
        context.respond(response)

    # -------------------------------------------------------------------------
    # FILES
    # -------------------------------------------------------------------------

    def handle_file(self, context: RequestContext) -> None:
        """
        Stream a file, or answer 304 when the client's copy is current.

        A file that disappeared since classification gets 404; one we
        may not read gets 403.
        """
        path = self._target(context)
        if path is None:
            context.respond(not_found())
            return

        try:
            stat = path.stat()
            f = open(path, "rb")
        except FileNotFoundError:
            context.respond(not_found())
            return
        except PermissionError:
            context.respond(forbidden("Permission denied"))
            return

        with f:
            etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'

            if context.request.get_header("if-none-match") == etag:
                context.respond(ResponseBuilder()
                    .status(HTTPStatus.NOT_MODIFIED)
                    .header("ETag", etag)
                    .build())
                return

            mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            response = (ResponseBuilder()
                .status(HTTPStatus.OK)
                .content_type(get_content_type(path))
                .header("Content-Length", str(stat.st_size))
                .header("ETag", etag)
                .header("Last-Modified", format_http_date(mtime))
                .cache(self.cache_max_age)
                .build())

            context.respond_stream(response, self._read_chunks(f))

    def _read_chunks(self, f: BinaryIO) -> Iterator[bytes]:
        while True:
            chunk = f.read(self.chunk_size)
            if not chunk:
                return
            yield chunk

    # -------------------------------------------------------------------------
    # DIRECTORIES
    # -------------------------------------------------------------------------

    def handle_directory(self, context: RequestContext) -> None:
        """
        Render an HTML listing of the directory.

        "/docs" is redirected to "/docs/" first so relative links in the
        listing resolve inside the folder.
        """
        local_path = context.local_path
        if not local_path.endswith("/"):
            context.respond(ResponseBuilder()
                .redirect(quote(local_path) + "/")
                .build())
            return

        path = self._target(context)
        if path is None:
            context.respond(not_found())
            return

        try:
            entries = self._list_directory(path, context)
        except FileNotFoundError:
            context.respond(not_found())
            return
        except PermissionError:
            context.respond(forbidden("Permission denied"))
            return

        body = self._render_listing(local_path, entries)
        context.respond(ResponseBuilder().html(body).no_cache().build())

    def _list_directory(self, path: Path, context: RequestContext) -> list:
        """
        Collect (name, is_dir, size, mtime) for each entry.

        Directories first, then files, each group by case-insensitive name.
        size is None for a directory when folder sizes are off.
        """
        entries = []
        with os.scandir(path) as it:
            for entry in it:
                context.raise_if_cancelled()
                try:
                    is_dir = entry.is_dir()
                    stat = entry.stat()
                except OSError:
                    continue  # vanished or unreadable since scandir

                if is_dir:
                    size = self.folder_size(entry.path, context) if self.show_folder_size else None
                else:
                    size = stat.st_size

                entries.append((entry.name, is_dir, size, stat.st_mtime))

        entries.sort(key=lambda e: (not e[1], e[0].casefold()))
        return entries

    def folder_size(self, path: str, context: Optional[RequestContext] = None) -> int:
        """Total size in bytes of every file beneath path."""
        total = 0
        for dirpath, _dirnames, filenames in os.walk(path):
            if context is not None:
                context.raise_if_cancelled()
            for name in filenames:
                try:
                    total += os.lstat(os.path.join(dirpath, name)).st_size
                except OSError:
                    continue
        return total

    def _render_listing(self, local_path: str, entries: list) -> str:
        title = html.escape(f"Index of {local_path}")
        rows = []

        if local_path != "/":
            rows.append('<tr><td><a href="../">../</a></td><td></td><td></td></tr>')

        for name, is_dir, size, mtime in entries:
            display = name + "/" if is_dir else name
            href = quote(name) + ("/" if is_dir else "")
            size_text = "-" if size is None else format_size(size)
            modified = datetime.fromtimestamp(mtime).strftime("%Y-%m-%d %H:%M")
            rows.append(
                f'<tr><td><a href="{href}">{html.escape(display)}</a></td>'
                f"<td>{size_text}</td><td>{modified}</td></tr>"
            )

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>
        body {{ font-family: monospace; padding: 20px; }}
        h1 {{ border-bottom: 1px solid #ccc; padding-bottom: 10px; }}
        td {{ padding: 3px 20px 3px 0; }}
        a {{ text-decoration: none; color: #0066cc; }}
        a:hover {{ text-decoration: underline; }}
    </style>
</head>
<body>
    <h1>{title}</h1>
    <table>
        <tr><th align="left">Name</th><th align="left">Size</th><th align="left">Modified</th></tr>
        {''.join(rows)}
    </table>
</body>
</html>
"""

    # -------------------------------------------------------------------------
    # EVERYTHING ELSE
    # -------------------------------------------------------------------------

    def handle_other(self, context: RequestContext) -> None:
        context.respond(not_found())
