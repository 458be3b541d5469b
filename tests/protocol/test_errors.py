"""Tests for protocol error mapping."""

from __future__ import annotations

import pytest

from graphmem.protocol.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    ProtocolVersionMismatchError,
    ServerNotInitializedError,
    ToolExecutionError,
    UnknownToolError,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (ParseError("bad"), -32700),
            (InvalidRequestError("bad"), -32600),
            (MethodNotFoundError("x"), -32601),
            (UnknownToolError("x"), -32601),
            (InvalidParamsError("bad"), -32602),
            (ProtocolVersionMismatchError("1", ["2"]), -32602),
            (ServerNotInitializedError("tools/list"), -32002),
            (ToolExecutionError("t", "bad"), -32603),
            (InternalError("bad"), -32603),
        ],
    )
    def test_code(self, error: ProtocolError, code: int) -> None:
        assert error.to_error().code == code

    def test_all_are_protocol_errors(self) -> None:
        assert issubclass(UnknownToolError, ProtocolError)
        assert issubclass(ToolExecutionError, ProtocolError)


class TestErrorWire:
    def test_data_omitted_when_absent(self) -> None:
        assert MethodNotFoundError("foo").to_error().to_wire() == {
            "code": -32601,
            "message": "Method not found: foo",
        }

    def test_invalid_request_carries_reason_and_id(self) -> None:
        error = InvalidRequestError("method must be a string", request_id=4)
        assert error.request_id == 4
        assert error.to_error().to_wire()["data"] == {"reason": "method must be a string"}

    def test_tool_execution_message(self) -> None:
        error = ToolExecutionError("search_nodes", "index offline", error_type="OSError")
        assert error.message == "Error executing search_nodes: index offline"
        assert error.data == {"tool": "search_nodes", "type": "OSError"}

    def test_tool_execution_without_detail(self) -> None:
        assert ToolExecutionError("x").message == "Error executing x"
