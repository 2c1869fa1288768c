"""
=============================================================================
DLLBRIDGE CLI ENTRY POINT
=============================================================================

    # Serve a library on the default port (5000)
    python -m dllbridge ./libmath.so

    # Custom port
    python -m dllbridge ./libmath.so 6000

    # Verbose logging, JSON access log
    python -m dllbridge ./libmath.so --log-level DEBUG --log-format json

=============================================================================
EXIT STATUS
=============================================================================

    0   Server stopped normally (Ctrl+C / SIGTERM)
    1   Library failed to load, or the port could not be bound
    2   Usage error (missing library path, invalid port, ...)

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import BridgeConfig, DEFAULT_PORT, LOG_LEVELS, LOG_FORMATS
from .errors import LoadError, UsageError
from .ffi.library import LibraryHandle
from .server import BridgeServer, configure_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="dllbridge",
        description="Call exported functions of a native library over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Protocol (one request per line):
  call <function> sig:<type>[,<type>...][(<convention>)] -> <type> [<arg> ...]

Examples:
  dllbridge ./libmath.so                   # Listen on 127.0.0.1:5000
  dllbridge ./libmath.so 6000              # Custom port
  printf 'call add sig:int,int -> int 3 4\\n' | nc 127.0.0.1 5000
        """
    )

    parser.add_argument(
        "library",
        help="Path to the native library (.so, .dylib, .dll)"
    )

    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default="text",
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"dllbridge {__version__}"
    )

    return parser


def main(argv=None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    config = BridgeConfig(
        port=args.port,
        log_level=args.log_level,
        log_format=args.log_format,
    )

    # ─────────────────────────────────────────────────────────────────────
    # VALIDATE BEFORE DOING ANY WORK
    # ─────────────────────────────────────────────────────────────────────
    try:
        config.validate()
    except UsageError as e:
        parser.error(e.message)  # exits with status 2

    # ─────────────────────────────────────────────────────────────────────
    # LOAD LIBRARY, BIND, SERVE
    # ─────────────────────────────────────────────────────────────────────
    configure_logging(config.log_level)

    try:
        library = LibraryHandle.load(args.library)
        server = BridgeServer(library, config)
        server.bind()
        server.run()
    except LoadError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
