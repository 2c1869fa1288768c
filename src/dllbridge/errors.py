"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the bridge knows how to report is a BridgeError subclass.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        BridgeError hierarchy                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   BridgeError                                                        │
    │   ├── UsageError            bad CLI invocation         (fatal)      │
    │   ├── LoadError             library/bind failure       (fatal)      │
    │   ├── ProtocolError         bad request line           (ERR ...)    │
    │   │   └── SignatureError    bad signature text                      │
    │   │       ├── SignatureFormatError                                  │
    │   │       ├── MalformedSignatureError                               │
    │   │       └── UnsupportedTypeError                                  │
    │   ├── ResolutionError       symbol not found           (ERR ...)    │
    │   │   └── InvalidNameError                                          │
    │   └── ArgumentError         argument is not an int32   (ERR ...)    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Recoverable errors become the literal response "ERR <message>" on the
connection that caused them. Fatal errors end the process.

A crash inside the native function is NOT in this list. Nothing here can
catch a segfault; it takes the whole process down.

=============================================================================
"""

from typing import Optional


class BridgeError(Exception):
    """
    Base class for all bridge errors.

    The message is what goes on the wire after "ERR ", so keep it short
    and free of newlines.
    """

    recoverable = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UsageError(BridgeError):
    """Invalid command line or configuration."""

    recoverable = False


class LoadError(BridgeError):
    """The native library could not be loaded, or the port could not be bound."""

    recoverable = False


class ProtocolError(BridgeError):
    """A request line does not follow the `call` grammar."""


class SignatureError(ProtocolError):
    """Signature text could not be parsed."""


class SignatureFormatError(SignatureError):
    """The signature does not contain exactly one '->'."""


class MalformedSignatureError(SignatureError):
    """A calling convention was opened with '(' but never closed."""


class UnsupportedTypeError(SignatureError):
    """A type token outside {int, float, char, void}."""

    def __init__(self, token: str):
        super().__init__(f"Unsupported type: {token}")
        self.token = token


class ResolutionError(BridgeError):
    """The requested symbol could not be found in the loaded library."""

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class InvalidNameError(ResolutionError):
    """The function name cannot be passed to the loader (embedded NUL)."""


class ArgumentError(BridgeError):
    """An argument token is not a valid signed 32-bit integer."""

    def __init__(self, message: str = "Argument parsing error", token: Optional[str] = None):
        super().__init__(message)
        self.token = token
