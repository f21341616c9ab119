"""
=============================================================================
REQUEST CLASSIFIER
=============================================================================

Maps the local path of a request to the kind of content it asks for:

    /favicon.ico                      ──► ICON        (filesystem not consulted)
    existing file under the root      ──► FILE
    existing directory under the root ──► DIRECTORY   ("/" is the root itself)
    anything else                     ──► OTHER

"Anything else" covers missing paths, paths that resolve outside the root
(../ segments, symlinks pointing elsewhere) and paths the OS rejects
(embedded NUL bytes, names that are too long).

classify_path() is pure: it only looks at the filesystem and never writes
to it, so the same inputs against the same tree always give the same kind.

=============================================================================
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union


class RequestKind(Enum):
    ICON = "icon"
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


ICON_PATHS = frozenset({"/favicon.ico"})


def resolve_local_path(root: Union[str, Path], local_path: str) -> Optional[Path]:
    """
    Map a request path onto the filesystem below root.

    Returns:
        The resolved absolute path, or None if it escapes root or is
        not a valid filesystem path.
    """
    if "\x00" in local_path:
        return None

    try:
        root_path = Path(root).resolve()
        target = (root_path / local_path.lstrip("/")).resolve()
        target.relative_to(root_path)
    except (ValueError, OSError, RuntimeError):
        # ValueError: outside root. RuntimeError: symlink loop.
        return None

    return target


def classify_path(root: Union[str, Path], local_path: str) -> RequestKind:
    """
    Classify a request path.

    Args:
        root: Root folder the server serves.
        local_path: Decoded request path, starting with "/".

    Returns:
        The RequestKind for this path.
    """
    if local_path in ICON_PATHS:
        return RequestKind.ICON

    target = resolve_local_path(root, local_path)
    if target is None:
        return RequestKind.OTHER

    try:
        if target.is_file():
            return RequestKind.FILE
        if target.is_dir():
            return RequestKind.DIRECTORY
    except OSError:
        pass  # e.g. ENAMETOOLONG

    return RequestKind.OTHER
