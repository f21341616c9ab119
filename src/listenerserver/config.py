"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All server settings in one immutable dataclass.

=============================================================================
THE ROOT FOLDER
=============================================================================

Everything the server serves lives under one root folder. The configured
value is normalized once, when the server is constructed:

    root_folder="Files", relative=True, base_dir="/opt/app"
        └──► /opt/app/Files/

    root_folder="/srv/Files", relative=False
        └──► /srv/Files/

    root_folder="/srv/Files///"
        └──► /srv/Files/

The effective root is always absolute and always ends with exactly one
separator (os.sep). A missing root (None or "") is a ConfigurationError:
the server object is never created.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    HTTP_ROOT              Root folder (default: Files)
    HTTP_RELATIVE          Resolve root against the program directory (0/1)
    HTTP_HTTPS             Accept TLS on the same port (0/1)
    HTTP_SHOW_FOLDER_SIZE  Aggregate folder sizes in listings (0/1)
    HTTP_HOST              Bind address (default: 0.0.0.0)
    HTTP_PORT              Port (default: 80)
    HTTP_CERT_FILE         PEM certificate chain for HTTPS
    HTTP_KEY_FILE          PEM private key for HTTPS
    HTTP_WORKERS           Max worker threads (default: unbounded)
    HTTP_LOG_LEVEL         Logging level (default: INFO)

=============================================================================
"""

import os
import sys
from dataclasses import dataclass
from typing import Optional


class ConfigurationError(ValueError):
    """Invalid server configuration. Raised before any socket is created."""


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def application_base_dir() -> str:
    """Directory of the running program, used for relative root folders."""
    main = sys.modules.get("__main__")
    main_file = getattr(main, "__file__", None)
    if main_file:
        return os.path.dirname(os.path.abspath(main_file))
    return os.getcwd()


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the static file server.

    CONTENT
    - root_folder, relative, show_folder_size, base_dir

    NETWORK
    - host, port, backlog, https, cert_file, key_file

    TIMING
    - accept_timeout, timeout

    LIMITS
    - max_request_size, max_workers

    IDENTITY / LOGGING
    - server_name, log_level
    """

    root_folder: Optional[str] = "Files"
    """Folder served at "/". Made absolute with one trailing separator."""

    relative: bool = False
    """Resolve root_folder against base_dir instead of the working directory."""

    https: bool = False
    """Also accept TLS connections on the same port."""

    show_folder_size: bool = True
    """Show the aggregate size of each sub-folder in directory listings."""

    base_dir: Optional[str] = None
    """Application base directory; defaults to the running program's folder."""

    host: str = "0.0.0.0"
    """All interfaces."""

    port: int = 80
    """0 lets the OS pick a free port (the bound port is then server.address)."""

    backlog: int = 128

    cert_file: Optional[str] = None
    key_file: Optional[str] = None

    accept_timeout: float = 0.5
    """
    How long one accept() call blocks before re-checking the listener
    state. Bounds how long a stop() takes to be noticed.
    """

    timeout: Optional[float] = 30.0
    """Client socket timeout for reading the request and writing the response."""

    max_request_size: int = 1024 * 1024
    """A file server only receives headers; 1 MB is generous."""

    max_workers: Optional[int] = None
    """None = a thread per in-flight request, no cap."""

    server_name: str = "ListenerServer/1.0"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from HTTP_* environment variables."""
        workers = os.getenv("HTTP_WORKERS")
        return cls(
            root_folder=os.getenv("HTTP_ROOT", "Files"),
            relative=_env_flag("HTTP_RELATIVE", False),
            https=_env_flag("HTTP_HTTPS", False),
            show_folder_size=_env_flag("HTTP_SHOW_FOLDER_SIZE", True),
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "80")),
            cert_file=os.getenv("HTTP_CERT_FILE"),
            key_file=os.getenv("HTTP_KEY_FILE"),
            max_workers=int(workers) if workers else None,
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Fail fast on invalid settings.

        Raises:
            ConfigurationError: On the first invalid value found.
        """
        if self.root_folder is None or not str(self.root_folder).strip():
            raise ConfigurationError("Root folder is null")

        if not 0 <= self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ConfigurationError("backlog must be >= 1")

        if self.accept_timeout <= 0:
            raise ConfigurationError("accept_timeout must be > 0")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0")

        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1")

        if self.https and not (self.cert_file and self.key_file):
            raise ConfigurationError("HTTPS requires both cert_file and key_file")

    def resolve_root(self) -> str:
        """
        Compute the effective root folder.

        Returns:
            Absolute path ending in exactly one os.sep.

        Raises:
            ConfigurationError: If the root folder is missing.
        """
        if self.root_folder is None or not str(self.root_folder).strip():
            raise ConfigurationError("Root folder is null")

        root = os.fspath(self.root_folder)
        if self.relative:
            root = os.path.join(self.base_dir or application_base_dir(), root)

        # abspath also collapses "a//b", "a/./b" and any trailing separators
        root = os.path.abspath(root)
        return root.rstrip(os.sep) + os.sep
