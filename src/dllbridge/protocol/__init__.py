"""
Line protocol: request tokenizing, dispatching, response formatting.
"""

from .dispatcher import (
    CallRequest,
    Response,
    ProtocolDispatcher,
    parse_request,
    COMMAND,
    SIGNATURE_PREFIX,
    ERROR_PREFIX,
    RESPONSE_TERMINATOR,
)

__all__ = [
    "CallRequest",
    "Response",
    "ProtocolDispatcher",
    "parse_request",
    "COMMAND",
    "SIGNATURE_PREFIX",
    "ERROR_PREFIX",
    "RESPONSE_TERMINATOR",
]
