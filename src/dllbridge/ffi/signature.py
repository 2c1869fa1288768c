"""
=============================================================================
SIGNATURE PARSING
=============================================================================

A client describes the function it wants to call with a short text:

    int,int(stdcall) -> int
    ───┬─── ───┬───    ─┬─
       │       │        └── return type
       │       └── calling convention (optional, default "cdecl")
       └── parameter types, comma separated (may be empty)

=============================================================================
GRAMMAR
=============================================================================

    signature   := params [ "(" convention ")" ] "->" type
    params      := [ type { "," type } ]
    type        := "int" | "float" | "char" | "void"     (case-insensitive)

Rules that matter at the edges:

    "int,int -> int"         ✓  params [INT, INT], cdecl
    "-> int"                 ✓  params [] (empty tokens are dropped)
    "void -> int"            ✓  params [VOID]
    "int,,int -> int"        ✓  params [INT, INT]
    "int(stdcall -> int"     ✗  missing ')'
    "int -> int -> int"      ✗  more than one '->'
    "int int"                ✗  no '->'
    "bool -> int"            ✗  "Unsupported type: bool"

Parsing is pure: no I/O, no caching, a fresh FunctionSignature every call.

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from ..errors import MalformedSignatureError, SignatureFormatError, UnsupportedTypeError


DEFAULT_CALLING_CONVENTION = "cdecl"

ARROW = "->"


class SupportedType(Enum):
    """The fixed type vocabulary of the signature grammar."""

    INT = "int"
    FLOAT = "float"
    CHAR = "char"
    VOID = "void"

    @classmethod
    def from_token(cls, token: str) -> "SupportedType":
        """
        Resolve a type token, ignoring case.

        Raises:
            UnsupportedTypeError: If the token is not in the vocabulary.
        """
        try:
            return cls(token.lower())
        except ValueError:
            raise UnsupportedTypeError(token) from None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FunctionSignature:
    """
    Parsed form of a signature text.

    Attributes:
        calling_convention: Text between the parentheses, verbatim.
        param_types: Parameter types in argument order.
        return_type: Declared return type.
    """

    param_types: Tuple[SupportedType, ...]
    return_type: SupportedType
    calling_convention: str = DEFAULT_CALLING_CONVENTION

    def __str__(self) -> str:
        params = ",".join(str(t) for t in self.param_types)
        return f"{params}({self.calling_convention}) -> {self.return_type}"


class SignatureParser:
    """
    Parser for signature texts.

    Usage:
        parser = SignatureParser()
        sig = parser.parse("int,int -> int")
        sig.param_types   # (SupportedType.INT, SupportedType.INT)
    """

    def parse(self, text: str) -> FunctionSignature:
        """
        Parse a signature text.

        Args:
            text: Signature such as "int,int(cdecl) -> int".

        Returns:
            The parsed FunctionSignature.

        Raises:
            SignatureFormatError: Zero or several '->' separators.
            MalformedSignatureError: '(' without a following ')'.
            UnsupportedTypeError: A type token outside the vocabulary.
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Exactly one arrow
        # ─────────────────────────────────────────────────────────────────
        parts = text.split(ARROW)
        if len(parts) != 2:
            raise SignatureFormatError(f"Signature must contain '{ARROW}'")

        params_text, return_text = parts

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: Optional calling convention
        # ─────────────────────────────────────────────────────────────────
        # Anything after the ')' is ignored.
        params_text, convention = self._split_convention(params_text)

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: Parameter and return types
        # ─────────────────────────────────────────────────────────────────
        param_types = tuple(
            SupportedType.from_token(token.strip())
            for token in params_text.split(",")
            if token.strip()
        )
        return_type = SupportedType.from_token(return_text.strip())

        return FunctionSignature(
            param_types=param_types,
            return_type=return_type,
            calling_convention=convention,
        )

    def _split_convention(self, params_text: str) -> Tuple[str, str]:
        """Return (params, convention) for the left side of the arrow."""
        open_index = params_text.find("(")
        if open_index == -1:
            return params_text, DEFAULT_CALLING_CONVENTION

        close_index = params_text.find(")", open_index + 1)
        if close_index == -1:
            raise MalformedSignatureError("Malformed signature: missing closing parenthesis")

        return params_text[:open_index], params_text[open_index + 1:close_index]


def parse_signature(text: str) -> FunctionSignature:
    """Convenience function to parse a signature with a default parser."""
    return SignatureParser().parse(text)
