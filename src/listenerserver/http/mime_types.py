"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps a served file's extension to the Content-Type header value.

The root folder can hold anything, so the lookup is two-tiered:

    1. MIME_TYPES      - explicit table for the types browsers care about
                         (so the answer never depends on the host's
                         /etc/mime.types or Windows registry)
    2. mimetypes       - the platform database for everything else
    3. octet-stream    - unknown, let the browser download it

Text types get a "; charset=utf-8" parameter.

=============================================================================
"""

import mimetypes
from pathlib import Path
from typing import Optional, Union


MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".bmp": "image/bmp",

    # Media
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".7z": "application/x-7z-compressed",
    ".wasm": "application/wasm",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "image/svg+xml",
}


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Examples:
        >>> get_mime_type("report.PDF")
        'application/pdf'

        >>> get_mime_type("data.unknownext")
        'application/octet-stream'
    """
    path = Path(path)
    extension = path.suffix.lower()

    if extension in MIME_TYPES:
        return MIME_TYPES[extension]

    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or default or DEFAULT_MIME_TYPE


def is_text_type(mime_type: str) -> bool:
    """Check if a MIME type represents text content (and so takes a charset)."""
    return mime_type.startswith("text/") or mime_type in _TEXT_APPLICATION_TYPES


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """
    Get the full Content-Type header value for a file.

        >>> get_content_type("index.html")
        'text/html; charset=utf-8'

        >>> get_content_type("photo.png")
        'image/png'
    """
    mime_type = get_mime_type(path)

    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"

    return mime_type
