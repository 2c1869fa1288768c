r"""
=============================================================================
PROTOCOL DISPATCHER
=============================================================================

One request is one line of text:

    call add sig:int,int -> int 3 4\n
    ──┬─ ─┬─ ──────────┬─────────── ─┬─
      │   │            │             └── arguments (ints, any count)
      │   │            └── signature block: "sig:" ... first token with "->"
      │   └── exported function name
      └── the only command

One response is one line of text:

    7\n                                  success: decimal result
    ERR Argument parsing error\n         failure: "ERR " + message

Every response ends with a single "\n", so clients can read it with a
plain readline().

=============================================================================
THE SIGNATURE BLOCK
=============================================================================

The signature may contain spaces ("int,int -> int"), so it spans several
whitespace-separated tokens. The block starts at the third token, which
must begin with "sig:", and runs up to the first token containing "->".
If that token ENDS with the arrow, the return type is the next token and
belongs to the block too:

    tokens:  call  add  sig:int,int  ->  int  3  4
                        └───────────┬─────────┘
                          signature = "int,int -> int"

    tokens:  call  add  sig:int,int  ->int  3  4
                        └───────┬────────┘
                          signature = "int,int ->int"

    tokens:  call  add  sig:int,int->int  3  4
                        └──────┬───────┘
                          signature = "int,int->int"

    tokens:  call  add  sig:int,int  3  4
                        └────────────┬──────┘
                          no "->" anywhere: "Malformed signature"

Written as a grammar over tokens:

    block := s { t } [ r ]

        s   the third token, starting with "sig:"
        t   tokens up to and including the first one containing "->"
            (none if s itself contains it)
        r   one more token, present iff that token ends with "->"

=============================================================================
PROCESSING ORDER
=============================================================================

    parse_request ──► SignatureParser ──► resolve_symbol ──► CallInvoker
         │                  │                   │                 │
    ProtocolError     SignatureError     ResolutionError    ArgumentError
         └──────────────────┴─────────┬─────────┴─────────────────┘
                                      ▼
                              "ERR <message>\n"

The first failure wins; nothing after it runs. In particular an
ArgumentError means the native function is never called.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..errors import BridgeError, ProtocolError
from ..ffi.invoker import CallInvoker
from ..ffi.library import LibraryHandle, resolve_symbol
from ..ffi.signature import ARROW, SignatureParser


logger = logging.getLogger(__name__)


COMMAND = "call"
SIGNATURE_PREFIX = "sig:"
ERROR_PREFIX = "ERR "
RESPONSE_TERMINATOR = "\n"


@dataclass
class CallRequest:
    """
    A tokenized request line.

    Attributes:
        function: Name of the exported function.
        signature_text: Signature with the "sig:" prefix removed.
        arguments: Argument tokens, in call order.
    """

    function: str
    signature_text: str
    arguments: List[str] = field(default_factory=list)


@dataclass
class Response:
    """One protocol response."""

    text: str
    ok: bool
    function: Optional[str] = None

    @classmethod
    def success(cls, result: str, function: Optional[str] = None) -> "Response":
        return cls(text=result, ok=True, function=function)

    @classmethod
    def error(cls, message: str, function: Optional[str] = None) -> "Response":
        return cls(text=f"{ERROR_PREFIX}{message}", ok=False, function=function)

    def to_bytes(self) -> bytes:
        """Wire form, terminator included."""
        return (self.text + RESPONSE_TERMINATOR).encode("utf-8")


def parse_request(line: str) -> CallRequest:
    """
    Tokenize one request line.

    Args:
        line: Raw line, with or without the trailing newline.

    Returns:
        The CallRequest.

    Raises:
        ProtocolError: If the line is not a well-formed `call` request.
    """
    tokens = line.split()

    if not tokens or tokens[0] != COMMAND:
        raise ProtocolError(f"Command must start with '{COMMAND}'")

    if len(tokens) < 2:
        raise ProtocolError("Missing function name")

    function = tokens[1]

    if len(tokens) < 3 or not tokens[2].startswith(SIGNATURE_PREFIX):
        raise ProtocolError("No signature string provided")

    # ─────────────────────────────────────────────────────────────────────
    # SCAN THE SIGNATURE BLOCK
    # ─────────────────────────────────────────────────────────────────────
    # tokens[2] minus its prefix, then following tokens, up to and
    # including the first one that contains the arrow.
    pieces = [tokens[2][len(SIGNATURE_PREFIX):]]
    end = 2
    while ARROW not in pieces[-1]:
        end += 1
        if end >= len(tokens):
            raise ProtocolError(f"Malformed signature; no '{ARROW}' found")
        pieces.append(tokens[end])

    # "-> int": the return type is the token after a trailing arrow
    if pieces[-1].endswith(ARROW) and end + 1 < len(tokens):
        end += 1
        pieces.append(tokens[end])

    # a bare "sig:" contributes nothing, not a leading space
    signature_text = " ".join(piece for piece in pieces if piece)

    return CallRequest(
        function=function,
        signature_text=signature_text,
        arguments=tokens[end + 1:],
    )


Resolver = Callable[[LibraryHandle, str], int]


class ProtocolDispatcher:
    """
    Turns request lines into responses.

    Holds no per-line state: the same dispatcher can serve any number of
    lines, in any order, from any thread.

    Usage:
        dispatcher = ProtocolDispatcher(library)
        response = dispatcher.dispatch("call helloworld sig:void->int")
        response.text        # "42"
        response.to_bytes()  # b"42\\n"
    """

    def __init__(
        self,
        library: LibraryHandle,
        resolver: Resolver = resolve_symbol,
        parser: Optional[SignatureParser] = None,
        invoker: Optional[CallInvoker] = None,
    ):
        """
        Args:
            library: The shared library handle.
            resolver: Symbol lookup function.
            parser: Signature parser (default: SignatureParser()).
            invoker: Native call invoker (default: CallInvoker()).
        """
        self.library = library
        self._resolver = resolver
        self._parser = parser or SignatureParser()
        self._invoker = invoker or CallInvoker()

    def dispatch(self, line: str) -> Response:
        """
        Handle one request line.

        Recoverable errors are turned into "ERR" responses. Anything else
        propagates to the caller.
        """
        function: Optional[str] = None
        try:
            request = parse_request(line)
            function = request.function

            signature = self._parser.parse(request.signature_text)
            logger.debug(f"Using signature for {function}: {signature}")

            address = self._resolver(self.library, function)
            result = self._invoker.invoke(address, request.arguments, signature)
        except BridgeError as e:
            return Response.error(e.message, function=function)

        return Response.success(result, function=function)
