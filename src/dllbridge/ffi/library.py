"""
=============================================================================
NATIVE LIBRARY HANDLE AND SYMBOL RESOLUTION
=============================================================================

The server loads exactly ONE native library, once, at startup:

    main()
      └──► LibraryHandle.load("./libmath.so")     dlopen / LoadLibrary
             │
             └──► BridgeServer(library)
                    ├──► worker 1 ─┐
                    ├──► worker 2 ─┼──► library.resolve("add")   dlsym
                    └──► worker N ─┘

Workers only ever READ from the handle. It is never reloaded or unloaded
while the process runs; the OS releases it at exit.

=============================================================================
WHY dll[name] AND NOT getattr(dll, name)?
=============================================================================

ctypes offers two ways to look up an export:

    getattr(dll, "add")   Looks up the symbol and CACHES the function
                          object on the CDLL instance. Shared, mutable
                          state: argtypes set by one caller leak to others.

    dll["add"]            Looks up the symbol and returns a FRESH function
                          object every time. Nothing is cached.

We use dll[name] so every request re-resolves by name and nothing is
mutated on the shared handle.

=============================================================================
"""

import ctypes
import logging
from pathlib import Path
from typing import Optional, Union

from ..errors import InvalidNameError, LoadError, ResolutionError


logger = logging.getLogger(__name__)


class LibraryHandle:
    """
    Owned wrapper around a loaded native library.

    Create it with LibraryHandle.load(path) and pass the same instance to
    everything that needs it.
    """

    def __init__(self, dll: ctypes.CDLL, path: str):
        """
        Args:
            dll: Already loaded library.
            path: Path it was loaded from (for logs and diagnostics).
        """
        self._dll = dll
        self._path = path

    @classmethod
    def load(cls, path: Union[str, Path], mode: Optional[int] = None) -> "LibraryHandle":
        """
        Load a shared library from disk.

        Args:
            path: Filesystem path of the .so / .dylib / .dll.
            mode: Optional dlopen mode; ctypes' default when None.

        Raises:
            LoadError: If the loader rejects the file.
        """
        path = str(path)
        try:
            if mode is None:
                dll = ctypes.CDLL(path)
            else:
                dll = ctypes.CDLL(path, mode=mode)
        except OSError as e:
            raise LoadError(f"Failed to load library {path}: {e}") from e

        logger.info(f"Loaded library: {path}")
        return cls(dll, path)

    @property
    def path(self) -> str:
        """Path the library was loaded from."""
        return self._path

    @property
    def dll(self) -> ctypes.CDLL:
        """The underlying ctypes library object."""
        return self._dll

    def resolve(self, name: str) -> int:
        """Resolve an exported function to its address."""
        return resolve_symbol(self, name)

    def __repr__(self) -> str:
        return f"LibraryHandle(path={self._path!r})"


def resolve_symbol(library: LibraryHandle, name: str) -> int:
    """
    Look up the address of an exported function.

    Args:
        library: The loaded library.
        name: Exported symbol name.

    Returns:
        The function's address as an integer.

    Raises:
        InvalidNameError: If the name contains a NUL character.
        ResolutionError: If the loader cannot find the symbol. The message
                         is the loader's own diagnostic text.
    """
    if "\0" in name:
        raise InvalidNameError("Invalid function name", name=name)

    try:
        function = library.dll[name]
    except AttributeError as e:
        # ctypes wraps the dlerror()/GetLastError() text in AttributeError
        raise ResolutionError(str(e), name=name) from e

    address = ctypes.cast(function, ctypes.c_void_p).value
    if not address:
        raise ResolutionError(f"Symbol {name} resolved to a null address", name=name)

    return address
