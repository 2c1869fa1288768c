"""
=============================================================================
BRIDGE SERVER
=============================================================================

Puts the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Request Flow                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer.accept()                                              │
    │        │                                                             │
    │        ▼                                                             │
    │   BridgeServer._handle_connection(conn)                              │
    │        │  starts one thread per connection                           │
    │        ▼                                                             │
    │   BridgeServer._process_connection(conn)      (worker thread)        │
    │        │                                                             │
    │        └──► while line := conn.read_line():                          │
    │                 response = dispatcher.dispatch(line)                 │
    │                 conn.send(response.to_bytes())                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONCURRENCY MODEL
=============================================================================

One thread per connection, no upper bound. Lines on one connection are
handled strictly in order; connections know nothing about each other.

The LibraryHandle is the only thing workers share. Nobody writes to it
after startup, so it needs no lock. There is no lock around the native
call either: if the library is not reentrant, concurrent calls from
different connections race inside it.

A native call cannot be interrupted. Closing the client socket does not
stop it, and shutdown() does not wait for it; worker threads are daemons
and die with the process.

=============================================================================
"""

import logging
import threading
import time
from typing import Optional, Tuple

from .access_log import AccessLogger
from .config import BridgeConfig
from .core import SocketServer, Connection, ConnectionState
from .errors import ProtocolError
from .ffi.library import LibraryHandle
from .protocol.dispatcher import ProtocolDispatcher, Response


logger = logging.getLogger(__name__)


def configure_logging(log_level: str = "INFO"):
    """
    Configure the root logger and the dllbridge logger.

    Only the first call configures handlers (logging.basicConfig is a
    no-op once the root logger has one); the level is always applied.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("dllbridge").setLevel(level)


class BridgeServer:
    """
    TCP server that runs `call` requests against one native library.

    Usage:
        library = LibraryHandle.load("./libmath.so")
        server = BridgeServer(library, BridgeConfig(port=5000))
        server.run()  # Blocks until Ctrl+C
    """

    def __init__(self, library: LibraryHandle, config: Optional[BridgeConfig] = None):
        """
        Args:
            library: The library every connection calls into.
            config: Server configuration (defaults if None).
        """
        self.config = config or BridgeConfig()
        self.config.validate()

        self.library = library

        self._socket_server = SocketServer(self.config)
        self._access_log = AccessLogger(log_format=self.config.log_format)

        self._workers_lock = threading.Lock()
        self._workers: set = set()

        self._running = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_connections(self) -> int:
        """Number of connections with a live worker thread."""
        with self._workers_lock:
            return len(self._workers)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def bind(self):
        """
        Bind the listening socket without starting the accept loop.

        Raises:
            LoadError: If the address cannot be bound.
        """
        self._socket_server.bind()

    def run(self):
        """
        Start the server (blocking).

        Raises:
            LoadError: If the address cannot be bound.
        """
        configure_logging(self.config.log_level)

        self._running = True
        logger.info(f"Serving {self.library.path}")

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._running = False
            logger.info(f"Server stopped ({self.active_connections} connection(s) still open)")

    def shutdown(self):
        """Stop accepting connections. Open connections are not interrupted."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening."""
        return self._socket_server.wait_until_ready(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has stopped."""
        return self._socket_server.wait_for_shutdown(timeout)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Start a worker thread for a new connection.

        Called on the accept thread by SocketServer.
        """
        worker = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"dllbridge-conn-{conn.id}",
            daemon=True,
        )

        with self._workers_lock:
            self._workers.add(worker)

        worker.start()

    def _process_connection(self, conn: Connection):
        """
        Dispatcher loop for one connection (runs in its worker thread).

        Ends when the client closes its side, the idle timeout expires,
        a send fails, or a connection-level error occurs.
        """
        dispatcher = ProtocolDispatcher(self.library)

        try:
            with conn:
                while True:
                    try:
                        line = conn.read_line()
                    except ProtocolError as e:
                        # Unframeable input: answer once, then hang up
                        logger.warning(f"[{conn.id}] {e.message}, closing connection")
                        conn.send(Response.error(e.message).to_bytes())
                        break

                    if line is None:
                        break

                    conn.state = ConnectionState.CALLING
                    started = time.perf_counter()
                    response = dispatcher.dispatch(line)
                    duration_ms = (time.perf_counter() - started) * 1000

                    self._access_log.record(
                        connection_id=conn.id,
                        client_ip=conn.client_ip,
                        function=response.function,
                        ok=response.ok,
                        response=response.text,
                        duration_ms=duration_ms,
                    )

                    if not conn.send(response.to_bytes()):
                        break
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            with self._workers_lock:
                self._workers.discard(threading.current_thread())
