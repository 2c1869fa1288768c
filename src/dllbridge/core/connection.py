"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one client socket with a line-oriented API.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends two
requests:

    send("call abs sig:int->int -5\\n")
    send("call abs sig:int->int 7\\n")

may be seen by the server as ANY split of those bytes:

    recv() → "call abs sig:int->int -5\\ncall ab"
    recv() → "s sig:int->int 7\\n"

So we buffer what we receive and cut it at "\\n":

    ┌─────────────────────────────────────────────────────────────────┐
    │                    read_line() Buffering                         │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   _buffer: "call abs sig:int->int -5\\ncall ab"                   │
    │                                     ▲                            │
    │                                     └── first "\\n"               │
    │                                                                  │
    │   returns: "call abs sig:int->int -5"                            │
    │   _buffer: "call ab"          ← kept for the next call           │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
END OF INPUT
=============================================================================

recv() returning b"" means the peer closed its side. At that point:

    _buffer empty            → read_line() returns None
    _buffer "call helloworl" → partial line, DISCARDED, returns None

A request is only a request once its "\\n" has arrived.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..errors import ProtocolError


logger = logging.getLogger(__name__)


LINE_TERMINATOR = b"\n"


class ConnectionState(Enum):
    """
    Connection lifecycle states.
    """
    NEW = "new"              # Just accepted
    READING = "reading"      # Waiting for / reading a request line
    CALLING = "calling"      # Line handed to the dispatcher
    WRITING = "writing"      # Sending the response
    CLOSING = "closing"      # Shutdown sequence in progress
    CLOSED = "closed"        # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        last_activity: Timestamp of last activity.
        lines_handled: Number of complete lines read.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lines_handled: int = 0

    # Configuration (passed from BridgeConfig)
    buffer_size: int = 4096
    timeout: Optional[float] = None       # None = block until data arrives
    max_line_size: int = 64 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        """Configure the socket: blocking, with the optional idle timeout."""
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0] if self.address else "-"

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1] if self.address else 0

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read the next complete request line.

        Returns:
            The line without its terminator (a trailing "\\r" is removed
            too), or None if the peer closed the connection or the idle
            timeout expired.

        Raises:
            ProtocolError: If the line exceeds max_line_size or is not
                           valid UTF-8.
        """
        self.state = ConnectionState.READING

        try:
            while LINE_TERMINATOR not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    if self._buffer:
                        logger.debug(
                            f"[{self.id}] Peer closed with {len(self._buffer)} "
                            f"bytes of unterminated input, discarding"
                        )
                        self._buffer = b""
                    return None

                self._buffer += chunk

                if len(self._buffer) > self.max_line_size and LINE_TERMINATOR not in self._buffer:
                    self._buffer = b""
                    raise ProtocolError(f"Request line too long (max {self.max_line_size} bytes)")

        except socket.timeout:
            logger.debug(f"[{self.id}] Idle timeout")
            return None

        raw, _, self._buffer = self._buffer.partition(LINE_TERMINATOR)

        if len(raw) > self.max_line_size:
            raise ProtocolError(f"Request line too long (max {self.max_line_size} bytes)")

        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError("Request line is not valid UTF-8") from None

        self.lines_handled += 1
        self.last_activity = time.time()
        return line.rstrip("\r")

    def _recv(self) -> bytes:
        """
        Receive data from socket with error handling.

        Returns:
            Received bytes, or empty bytes if connection closed.
        """
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send response bytes to the client.

        Returns:
            True if send succeeded, False if connection lost.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): tell the client we're done sending (FIN)
        2. drain whatever the client still has in flight
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.lines_handled} lines")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False
