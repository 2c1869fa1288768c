"""
Foreign-call components: signature parsing, symbol resolution, invocation.
"""

from .signature import (
    SupportedType,
    FunctionSignature,
    SignatureParser,
    parse_signature,
    DEFAULT_CALLING_CONVENTION,
)
from .library import LibraryHandle, resolve_symbol
from .invoker import CallInvoker, invoke, parse_int32

__all__ = [
    "SupportedType",
    "FunctionSignature",
    "SignatureParser",
    "parse_signature",
    "DEFAULT_CALLING_CONVENTION",
    "LibraryHandle",
    "resolve_symbol",
    "CallInvoker",
    "invoke",
    "parse_int32",
]
