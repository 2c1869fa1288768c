"""
pytest configuration and fixtures.
"""

import ctypes
import ctypes.util
import shutil
import socket
import subprocess
import threading
from typing import Callable, Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dllbridge import BridgeServer, BridgeConfig, LibraryHandle
from dllbridge.errors import LoadError


NATIVE_DIR = Path(__file__).parent / "native"


# =============================================================================
# NATIVE LIBRARIES
# =============================================================================

def _c_library_path() -> str:
    """Best guess at the system C library for this platform."""
    if sys.platform == "win32":
        return "msvcrt"
    return ctypes.util.find_library("c") or "libc.so.6"


@pytest.fixture(scope="session")
def libc() -> LibraryHandle:
    """The system C library (exports abs, toupper, ...)."""
    try:
        return LibraryHandle.load(_c_library_path())
    except LoadError as e:
        pytest.skip(f"C library not loadable: {e}")


@pytest.fixture(scope="session")
def testlib_path(tmp_path_factory) -> Path:
    """
    tests/native/testlib.c compiled to a shared library.

    Skips when no C compiler is installed.
    """
    compiler = shutil.which("cc") or shutil.which("gcc") or shutil.which("clang")
    if compiler is None:
        pytest.skip("No C compiler available to build the test library")

    output = tmp_path_factory.mktemp("native") / "libdllbridge_test.so"
    result = subprocess.run(
        [compiler, "-shared", "-fPIC", "-O0", "-o", str(output), str(NATIVE_DIR / "testlib.c")],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        pytest.skip(f"Could not build test library: {result.stderr.strip()}")

    return output


@pytest.fixture(scope="session")
def testlib(testlib_path: Path) -> LibraryHandle:
    """LibraryHandle for the compiled test library."""
    return LibraryHandle.load(testlib_path)


# =============================================================================
# IN-PROCESS NATIVE FUNCTIONS
# =============================================================================
# ctypes callbacks have real C addresses, so the invoker can call them
# like any exported function. They also let tests see exactly which
# arguments arrived.

INT_FN_0 = ctypes.CFUNCTYPE(ctypes.c_int32)
INT_FN_1 = ctypes.CFUNCTYPE(ctypes.c_int32, ctypes.c_int32)
INT_FN_2 = ctypes.CFUNCTYPE(ctypes.c_int32, ctypes.c_int32, ctypes.c_int32)


class NativeFunctions:
    """A few callbacks with addresses, recording every call."""

    def __init__(self):
        self.calls: List[tuple] = []

        def helloworld():
            self.calls.append(("helloworld",))
            return 42

        def negate(a):
            self.calls.append(("negate", a))
            return -a

        def add(a, b):
            self.calls.append(("add", a, b))
            return a + b

        def subtract(a, b):
            self.calls.append(("subtract", a, b))
            return a - b

        # Keep the callback objects alive for as long as their addresses are used
        self._callbacks = {
            "helloworld": INT_FN_0(helloworld),
            "negate": INT_FN_1(negate),
            "add": INT_FN_2(add),
            "subtract": INT_FN_2(subtract),
        }

    def address(self, name: str) -> int:
        return ctypes.cast(self._callbacks[name], ctypes.c_void_p).value

    def names(self) -> List[str]:
        return list(self._callbacks)


@pytest.fixture
def native() -> NativeFunctions:
    """Fresh set of recording callbacks."""
    return NativeFunctions()


# =============================================================================
# SERVER HELPERS
# =============================================================================

class BridgeTestServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: BridgeServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def connect(self) -> "BridgeClient":
        return BridgeClient(self.port)


class BridgeClient:
    """Minimal line-protocol client."""

    def __init__(self, port: int, timeout: float = 5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self._reader = self.sock.makefile("rb")

    def call(self, line: str) -> str:
        """Send one request line and return the response line (no newline)."""
        self.sock.sendall(line.encode("utf-8") + b"\n")
        return self.read_line()

    def read_line(self) -> str:
        raw = self._reader.readline()
        assert raw.endswith(b"\n"), f"response not newline-terminated: {raw!r}"
        return raw[:-1].decode("utf-8")

    def close(self):
        self._reader.close()
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


@pytest.fixture
def make_server() -> Generator[Callable[..., BridgeTestServer], None, None]:
    """Factory for running servers; all are stopped at teardown."""
    started: List[BridgeTestServer] = []

    def factory(library: LibraryHandle, **overrides) -> BridgeTestServer:
        settings = {"host": "127.0.0.1", "port": 0, "log_level": "WARNING"}
        settings.update(overrides)
        test_srv = BridgeTestServer(BridgeServer(library, BridgeConfig(**settings)))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]
