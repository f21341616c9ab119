"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Serve ./Files on port 80 (default)
    python -m listenerserver

    # Serve a folder next to the program, on port 8080
    python -m listenerserver --root Files --relative --port 8080

    # HTTP and HTTPS on the same port
    python -m listenerserver --https --cert server.crt --key server.key

    # Skip the (slow) folder size column in listings
    python -m listenerserver --no-folder-size

Settings come from HTTP_* environment variables first (see config.py);
command-line flags override them.

Ctrl+C or SIGTERM stops the listener, then closes the server.

=============================================================================
"""

import argparse
import signal
import sys
import threading
from dataclasses import replace
from typing import Optional, Sequence

from .config import ServerConfig, ConfigurationError
from .server import StaticServer, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listenerserver",
        description="Static file server with directory listings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m listenerserver --root ./public --port 8080
  python -m listenerserver --root Files --relative
  python -m listenerserver --https --cert server.crt --key server.key
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Root folder to serve (default: Files)"
    )

    parser.add_argument(
        "--relative",
        action="store_true",
        default=None,
        help="Resolve --root against the program directory"
    )

    parser.add_argument(
        "--no-folder-size",
        dest="show_folder_size",
        action="store_false",
        default=None,
        help="Show '-' instead of aggregate folder sizes in listings"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 80)"
    )

    parser.add_argument(
        "--https",
        action="store_true",
        default=None,
        help="Also accept TLS on the same port (needs --cert and --key)"
    )

    parser.add_argument("--cert", default=None, help="PEM certificate chain")
    parser.add_argument("--key", default=None, help="PEM private key")

    # ─────────────────────────────────────────────────────────────────────
    # RUNTIME ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: one per in-flight request)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """Overlay the flags that were given on top of base (env by default)."""
    config = base or ServerConfig.from_env()

    overrides = {
        "root_folder": args.root,
        "relative": args.relative,
        "show_folder_size": args.show_folder_size,
        "host": args.host,
        "port": args.port,
        "https": args.https,
        "cert_file": args.cert,
        "key_file": args.key,
        "max_workers": args.workers,
        "log_level": args.log_level,
    }
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        setup_logging(config.log_level)
        server = StaticServer(config)
    except (ConfigurationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    shutdown_requested = threading.Event()

    def shutdown_handler(signum, frame):
        shutdown_requested.set()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    with server:
        server.start()
        if not server.is_listening:
            return 1

        print(f"Serving {server.root_folder} on port {server.address[1]} (Ctrl+C to stop)")

        # wait() with a timeout so signals are handled promptly on every platform
        while not shutdown_requested.wait(timeout=0.5):
            pass

        server.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
