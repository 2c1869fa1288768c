"""
Unit tests for request tokenizing and dispatching.
"""

import pytest

from dllbridge.errors import ProtocolError, ResolutionError
from dllbridge.protocol.dispatcher import (
    CallRequest,
    ProtocolDispatcher,
    Response,
    parse_request,
)


class TestParseRequest:
    """Tests for parse_request()."""

    def test_parse_full_request(self):
        request = parse_request("call add sig:int,int -> int 3 4")

        assert request == CallRequest(function="add", signature_text="int,int -> int", arguments=["3", "4"])

    def test_parse_no_arguments(self):
        request = parse_request("call helloworld sig:void -> int")

        assert request.function == "helloworld"
        assert request.signature_text == "void -> int"
        assert request.arguments == []

    @pytest.mark.parametrize("line, signature, arguments", [
        ("call f sig:void ->int", "void ->int", []),
        ("call f sig:int,int->int 1 2", "int,int->int", ["1", "2"]),
        ("call f sig:int,int-> int 1 2", "int,int-> int", ["1", "2"]),
        ("call f sig:int , int -> int 1 2", "int , int -> int", ["1", "2"]),
        ("call f sig:int(stdcall) -> int 1", "int(stdcall) -> int", ["1"]),
        ("call f sig: int -> int 5", "int -> int", ["5"]),
        ("call f sig:-> int", "-> int", []),
        ("call f sig:int ->", "int ->", []),
    ])
    def test_signature_block_boundaries(self, line, signature, arguments):
        request = parse_request(line)

        assert request.signature_text == signature
        assert request.arguments == arguments

    def test_whitespace_is_flexible(self):
        request = parse_request("  call\tadd   sig:int,int->int  1\t 2 \r\n")

        assert request.function == "add"
        assert request.arguments == ["1", "2"]

    @pytest.mark.parametrize("line", ["", "   ", "CALL f sig:int->int", "invoke f sig:int->int", "hello"])
    def test_must_start_with_call(self, line):
        with pytest.raises(ProtocolError) as exc_info:
            parse_request(line)

        assert str(exc_info.value) == "Command must start with 'call'"

    def test_missing_function_name(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_request("call")

        assert str(exc_info.value) == "Missing function name"

    @pytest.mark.parametrize("line", [
        "call f",
        "call f 1 2",
        "call f 1 sig:int->int",
    ])
    def test_missing_signature(self, line):
        with pytest.raises(ProtocolError) as exc_info:
            parse_request(line)

        assert str(exc_info.value) == "No signature string provided"

    def test_unterminated_signature_block(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_request("call add sig:int,int 3 4")

        assert str(exc_info.value) == "Malformed signature; no '->' found"


class FakeResolver:
    """Resolver backed by NativeFunctions, recording lookups."""

    def __init__(self, native):
        self.native = native
        self.lookups = []

    def __call__(self, library, name):
        self.lookups.append(name)
        if name not in self.native.names():
            raise ResolutionError(f"undefined symbol: {name}", name=name)
        return self.native.address(name)


@pytest.fixture
def resolver(native) -> FakeResolver:
    return FakeResolver(native)


@pytest.fixture
def dispatcher(resolver) -> ProtocolDispatcher:
    return ProtocolDispatcher(library=None, resolver=resolver)


class TestProtocolDispatcher:
    """Tests for ProtocolDispatcher.dispatch()."""

    def test_helloworld(self, dispatcher):
        response = dispatcher.dispatch("call helloworld sig:void -> int")

        assert response == Response(text="42", ok=True, function="helloworld")
        assert response.to_bytes() == b"42\n"

    def test_add(self, dispatcher, native):
        response = dispatcher.dispatch("call add sig:int,int -> int 3 4\n")

        assert response.text == "7"
        assert native.calls == [("add", 3, 4)]

    def test_arguments_in_order(self, dispatcher):
        assert dispatcher.dispatch("call subtract sig:int,int -> int 10 3").text == "7"

    def test_argument_error_prevents_call(self, dispatcher, native):
        response = dispatcher.dispatch("call add sig:int,int -> int 3 x")

        assert response.ok is False
        assert response.text == "ERR Argument parsing error"
        assert response.to_bytes() == b"ERR Argument parsing error\n"
        assert native.calls == []

    def test_unknown_function(self, dispatcher):
        response = dispatcher.dispatch("call nope sig:void -> int")

        assert response.text == "ERR undefined symbol: nope"
        assert response.function == "nope"

    def test_signature_error_before_resolution(self, dispatcher, resolver):
        response = dispatcher.dispatch("call add sig:int,bool -> int 1 2")

        assert response.text == "ERR Unsupported type: bool"
        assert resolver.lookups == []

    def test_missing_signature_makes_no_call(self, dispatcher, resolver, native):
        response = dispatcher.dispatch("call add 1 2")

        assert response.text == "ERR No signature string provided"
        assert resolver.lookups == []
        assert native.calls == []

    def test_unterminated_signature_makes_no_call(self, dispatcher, native):
        response = dispatcher.dispatch("call add sig:int,int 3 4")

        assert response.text == "ERR Malformed signature; no '->' found"
        assert native.calls == []

    def test_bad_command(self, dispatcher):
        response = dispatcher.dispatch("hello world")

        assert response.text == "ERR Command must start with 'call'"
        assert response.function is None

    def test_lines_are_independent(self, dispatcher):
        assert dispatcher.dispatch("call add sig:int,int -> int 1 x").ok is False
        assert dispatcher.dispatch("garbage").ok is False
        assert dispatcher.dispatch("call helloworld sig:->int").text == "42"

    def test_resolves_on_every_call(self, dispatcher, resolver):
        dispatcher.dispatch("call helloworld sig:->int")
        dispatcher.dispatch("call helloworld sig:->int")

        assert resolver.lookups == ["helloworld", "helloworld"]


class TestDispatcherWithRealLibrary:
    """Dispatching against the system C library."""

    def test_abs(self, libc):
        dispatcher = ProtocolDispatcher(libc)

        assert dispatcher.dispatch("call abs sig:int -> int -5").text == "5"

    def test_missing_symbol(self, libc):
        response = ProtocolDispatcher(libc).dispatch("call dllbridge_missing sig:void -> int")

        assert response.text.startswith("ERR ")
        assert "dllbridge_missing" in response.text

    def test_embedded_nul_in_name(self, libc):
        response = ProtocolDispatcher(libc).dispatch("call abs\0x sig:int -> int 1")

        assert response.text == "ERR Invalid function name"


class TestResponse:
    """Tests for Response formatting."""

    def test_success(self):
        assert Response.success("-3").to_bytes() == b"-3\n"

    def test_error(self):
        response = Response.error("boom", function="f")

        assert response.text == "ERR boom"
        assert response.ok is False
        assert response.function == "f"
