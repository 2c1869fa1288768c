"""
=============================================================================
CORE NETWORKING COMPONENTS
=============================================================================

    SocketServer   listening socket, accept loop, signals
    Connection     one client: buffered line reads, sends, graceful close

These know nothing about native calls; the server module puts them
together with the protocol dispatcher.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState

__all__ = ["SocketServer", "Connection", "ConnectionState"]
