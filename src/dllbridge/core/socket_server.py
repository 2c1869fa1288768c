"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket: create, bind, listen, accept,
close. It knows nothing about the call protocol; every accepted client is
wrapped in a Connection and handed to a callback.

    ┌───────────────────────┐
    │   Listening Socket    │ ◄── Created once, bound to 127.0.0.1:5000
    └───────────┬───────────┘
                │ accept()
        ┌───────┼───────────────────────┐
        ▼       ▼                       ▼
    Connection  Connection     ...  Connection
        │           │                   │
        └───────────┴─────────┬─────────┘
                              ▼
                   connection_handler(conn)

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() blocks until a client arrives. To be able to stop, the listening
socket gets a short timeout and the loop re-checks its running flag:

    while running:
        try:
            accept()           # at most accept_timeout seconds
        except timeout:
            continue           # check running flag, loop again

SIGINT (Ctrl+C) and SIGTERM flip the flag when the server runs on the
main thread. Python only allows installing signal handlers there, so a
server started from another thread (tests) is stopped with shutdown().

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import BridgeConfig
from ..errors import LoadError
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: BridgeConfig):
        """
        Args:
            config: Bridge configuration (host, port, backlog, ...).

        The socket is created lazily in start().
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False

        # Set once the socket is listening, and once it has stopped
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        """Check if server is running."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The server's address (IP, port).

        After binding this is the real address, so port 0 in the config
        turns into the port the OS picked.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses are tiny; send them right away
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(self.config.accept_timeout)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that trigger shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def bind(self):
        """
        Create the socket, bind it and start listening.

        Separate from start() so a caller can find out about a busy port
        before committing to the accept loop.

        Raises:
            LoadError: If the address cannot be bound.
        """
        if self._socket is not None:
            return

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            raise LoadError(f"Failed to bind to {self.config.host}:{self.config.port}: {e}") from e

        self._socket = sock
        self._bound_address = sock.getsockname()[:2]

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Start accepting connections.

        This method BLOCKS until shutdown() is called.

        Args:
            connection_handler: Called with every new Connection, on the
                                accept thread. It must not block.

        Raises:
            LoadError: If the address cannot be bound.
        """
        self.bind()

        self._running = True
        self._shutdown_event.clear()

        self._setup_signals()

        host, port = self.address
        logger.info(f"Bridge listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown.

        A failed accept() is logged and the loop keeps going; only
        shutdown() ends it.
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.idle_timeout,
                max_line_size=self.config.max_line_size,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                logger.exception(f"[{conn.id}] Could not hand off connection: {e}")
                conn.close()

    def shutdown(self):
        """
        Stop accepting connections.

        Safe to call from any thread, and more than once.
        """
        logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        """Clean up resources on shutdown."""
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready_event.clear()
        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the socket is listening.

        Returns:
            True once ready, False if the timeout expired first.
        """
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the accept loop to finish.

        Returns:
            True if shutdown completed, False if timeout.
        """
        return self._shutdown_event.wait(timeout)
