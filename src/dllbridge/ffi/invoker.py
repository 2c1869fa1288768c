"""
=============================================================================
DYNAMIC NATIVE CALLS
=============================================================================

This is the ONLY module that calls into native code. Everything unsafe
about the bridge happens between the two lines marked below.

    invoke(address, ["3", "4"])
        │
        ├──► marshal     "3", "4"  →  3, 4              (pure Python)
        │
        ├──► interface   CFUNCTYPE(c_int32, c_int32, c_int32)
        │
        ├──► call        prototype(address)(3, 4)        ◄── UNSAFE
        │
        └──► unmarshal   7  →  "7"

=============================================================================
MARSHALING RULES
=============================================================================

Every argument is a signed 32-bit integer and so is the return value,
whatever the signature declares. The call passes as many arguments as the
client sent, not as many as the signature lists.

    signature "int,int -> int", args "3 4"      → add(3, 4)
    signature "float -> void",  args "3"        → f(3) read back as int32
    signature "int,int -> int", args "3"        → add(3, <garbage>)

The last line is the client's problem: C cannot tell us how many
arguments a function expects. We log a warning and call anyway.

=============================================================================
WHAT CAN GO WRONG
=============================================================================

    Bad argument text       ArgumentError, nothing is called
    Wrong address           Segfault, process dies
    Function never returns  Worker thread blocks forever
    Function scribbles      Memory corruption, anything can happen

ctypes releases the GIL for the duration of the call, so calls from
different connections run in parallel inside the library.

=============================================================================
"""

import ctypes
import logging
import re
from typing import List, Optional, Sequence

from ..errors import ArgumentError
from .signature import FunctionSignature, SupportedType


logger = logging.getLogger(__name__)


INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def parse_int32(token: str) -> int:
    """
    Parse a decimal token as a signed 32-bit integer.

    Accepts an optional sign and ASCII digits only: no whitespace, no
    underscores, no hex.

    Raises:
        ArgumentError: If the token is not a valid int32.
    """
    if not _INT_PATTERN.fullmatch(token):
        raise ArgumentError(token=token)

    value = int(token)
    if not INT32_MIN <= value <= INT32_MAX:
        raise ArgumentError(token=token)

    return value


class CallInvoker:
    """
    Builds a call interface at runtime and calls a native address with it.
    """

    def marshal(self, tokens: Sequence[str]) -> List[int]:
        """Convert all argument tokens, failing before any call is made."""
        return [parse_int32(token) for token in tokens]

    def invoke(
        self,
        address: int,
        tokens: Sequence[str],
        signature: Optional[FunctionSignature] = None,
    ) -> str:
        """
        Call the function at `address` with `tokens` as int32 arguments.

        Args:
            address: Resolved function address.
            tokens: Argument texts, in call order.
            signature: Declared signature. Only used for diagnostics.

        Returns:
            The int32 result as decimal text.

        Raises:
            ArgumentError: If any token is not a valid int32.
        """
        values = self.marshal(tokens)

        if signature is not None:
            # "void -> int" declares no parameters
            declared = sum(1 for t in signature.param_types if t is not SupportedType.VOID)
            if declared != len(values):
                logger.warning(
                    f"Signature declares {declared} parameter(s) but "
                    f"{len(values)} argument(s) were sent; calling with {len(values)}"
                )

        prototype = ctypes.CFUNCTYPE(ctypes.c_int32, *([ctypes.c_int32] * len(values)))
        function = prototype(address)

        # ── UNSAFE ──────────────────────────────────────────────────────
        result = function(*values)
        # ────────────────────────────────────────────────────────────────

        return str(result)


def invoke(address: int, tokens: Sequence[str], signature: Optional[FunctionSignature] = None) -> str:
    """Convenience function to call `address` with a default invoker."""
    return CallInvoker().invoke(address, tokens, signature)
