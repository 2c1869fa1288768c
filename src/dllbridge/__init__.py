"""
=============================================================================
DLLBRIDGE - Call Native Library Functions Over TCP
=============================================================================

dllbridge loads one native shared library at startup and lets clients call
its exported functions by name over a line-oriented TCP protocol:

    $ dllbridge ./libmath.so 5000
    $ printf 'call add sig:int,int -> int 3 4\\n' | nc 127.0.0.1 5000
    7

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    dllbridge/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m dllbridge)
    ├── server.py            # BridgeServer: one worker thread per connection
    ├── config.py            # BridgeConfig dataclass
    ├── errors.py            # Exception taxonomy
    ├── access_log.py        # One log record per request line
    ├── core/                # Networking
    │   ├── socket_server.py # Listening socket, accept loop
    │   └── connection.py    # Line-buffered client connection
    ├── protocol/            # Wire protocol
    │   └── dispatcher.py    # Tokenize line, run call, format response
    └── ffi/                 # Native calls
        ├── signature.py     # Signature text → FunctionSignature
        ├── library.py       # LibraryHandle, symbol resolution
        └── invoker.py       # Runtime call interface (the unsafe part)

=============================================================================
QUICK START
=============================================================================

    from dllbridge import BridgeServer, BridgeConfig, LibraryHandle

    library = LibraryHandle.load("./libmath.so")
    server = BridgeServer(library, BridgeConfig(port=5000))
    server.run()

=============================================================================
SAFETY
=============================================================================

Whatever the client names gets called, with full process privileges and
no timeout. A bad call can crash the server. Only bind to loopback and
only load libraries you trust.

=============================================================================
"""

__version__ = "1.0.0"

from .config import BridgeConfig
from .errors import BridgeError
from .ffi.library import LibraryHandle
from .protocol.dispatcher import ProtocolDispatcher
from .server import BridgeServer

__all__ = [
    "BridgeServer",
    "BridgeConfig",
    "BridgeError",
    "LibraryHandle",
    "ProtocolDispatcher",
    "__version__",
]
