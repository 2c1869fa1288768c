"""
=============================================================================
BRIDGE CONFIGURATION
=============================================================================

All settings live in one typed dataclass. Values come from code or from
the command line; there are no config files and no environment variables.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    WHERE SETTINGS COME FROM                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   dllbridge ./libmath.so 6000 --log-level DEBUG                      │
    │                │           │              │                          │
    │                │           │              └── log_level              │
    │                │           └── port                                  │
    │                └── library path (not part of BridgeConfig)           │
    │                                                                      │
    │   Everything else keeps its default.                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional

from .errors import UsageError


DEFAULT_PORT = 5000

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class BridgeConfig:
    """
    Configuration for the bridge server.

    Example (tests):
        BridgeConfig(port=0, log_level="WARNING")   # OS picks a free port
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    Address to bind. Loopback only: anyone who can connect can run
    arbitrary native code in this process.
    """

    port: int = DEFAULT_PORT
    """TCP port. 0 lets the OS choose (see BridgeServer.address)."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    accept_timeout: float = 1.0
    """
    How often the accept loop wakes up to check for shutdown, in seconds.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    max_line_size: int = 64 * 1024
    """
    Longest request line accepted, in bytes. Longer lines get an ERR
    response and the connection is closed.
    """

    idle_timeout: Optional[float] = None
    """
    Seconds a connection may sit idle before it is closed.
    None = wait forever for the next line.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            UsageError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise UsageError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise UsageError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise UsageError("buffer_size must be >= 1")

        if self.max_line_size < self.buffer_size:
            raise UsageError("max_line_size must be >= buffer_size")

        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise UsageError("idle_timeout must be > 0")

        if self.accept_timeout <= 0:
            raise UsageError("accept_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise UsageError(f"Invalid log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise UsageError(f"Invalid log format: {self.log_format}")
