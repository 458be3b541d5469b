"""Tests for argument validation and elicitation."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

from graphmem.protocol.elicitation import (
    Elicitation,
    ElicitationRequired,
    Failure,
    Success,
    call_tool,
    find_violations,
    json_type_name,
    missing_fields,
)
from graphmem.protocol.errors import InvalidParamsError, ToolExecutionError
from graphmem.protocol.models import ToolDescriptor, ToolResult
from graphmem.protocol.registry import RegisteredTool

ENTITIES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "entities": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "entityType": {"type": "string"},
                    "content": {"type": "array"},
                },
                "required": ["name", "entityType", "content"],
            },
        },
    },
    "required": ["entities"],
}


def _tool(handler: Any, schema: dict[str, Any] = ENTITIES_SCHEMA) -> RegisteredTool:
    descriptor = ToolDescriptor(
        name="create_entities",
        title="Create Entities",
        description="Create entities",
        input_schema=schema,
    )
    return RegisteredTool(descriptor=descriptor, handler=handler)


class TestFindViolations:
    def test_valid_arguments(self) -> None:
        arguments = {"entities": [{"name": "a", "entityType": "t", "content": []}]}
        assert find_violations(ENTITIES_SCHEMA, arguments) == []

    def test_missing_top_level(self) -> None:
        violations = find_violations(ENTITIES_SCHEMA, {})
        assert [(v.field, v.reason) for v in violations] == [("entities", "missing")]
        assert violations[0].received == "undefined"

    def test_null_counts_as_missing(self) -> None:
        violations = find_violations(ENTITIES_SCHEMA, {"entities": None})
        assert violations[0].reason == "missing"
        assert violations[0].received == "null"

    def test_nullable_field_accepts_null(self) -> None:
        schema = {
            "type": "object",
            "properties": {"note": {"type": ["string", "null"]}},
            "required": ["note"],
        }
        assert find_violations(schema, {"note": None}) == []

    def test_nested_missing_in_array_items(self) -> None:
        arguments = {"entities": [{"name": "x"}]}
        violations = find_violations(ENTITIES_SCHEMA, arguments)
        assert [v.field for v in violations] == ["entityType", "content"]
        assert violations[0].path == "entities[0].entityType"

    def test_wrong_type(self) -> None:
        violations = find_violations(ENTITIES_SCHEMA, {"entities": "x"})
        assert violations[0].reason == "invalid_type"
        assert violations[0].expected == "array"
        assert violations[0].received == "string"

    def test_enum(self) -> None:
        schema = {"type": "object", "properties": {"mode": {"type": "string", "enum": ["a", "b"]}}}
        violations = find_violations(schema, {"mode": "c"})
        assert violations[0].reason == "invalid_value"

    def test_optional_fields_may_be_absent(self) -> None:
        schema = {"type": "object", "properties": {"limit": {"type": "number"}}}
        assert find_violations(schema, {}) == []

    def test_extra_properties_tolerated(self) -> None:
        arguments = {"entities": [], "unexpected": True}
        assert find_violations(ENTITIES_SCHEMA, arguments) == []

    def test_integer_accepts_integral_float(self) -> None:
        schema = {"type": "object", "properties": {"n": {"type": "integer"}}}
        assert find_violations(schema, {"n": 3.0}) == []
        assert find_violations(schema, {"n": 3.5})[0].reason == "invalid_type"

    def test_boolean_is_not_a_number(self) -> None:
        schema = {"type": "object", "properties": {"n": {"type": "number"}}}
        assert find_violations(schema, {"n": True})[0].received == "boolean"

    def test_minimum(self) -> None:
        schema = {"type": "object", "properties": {"limit": {"type": "number", "minimum": 0}}}
        assert find_violations(schema, {"limit": 0}) == []
        (violation,) = find_violations(schema, {"limit": -1})
        assert violation.reason == "out_of_range"
        assert violation.describe() == "limit must be >= 0 (got -1)"


class TestMissingFields:
    def test_declaration_order_and_dedup(self) -> None:
        arguments = {"entities": [{"content": []}, {"content": []}]}
        violations = find_violations(ENTITIES_SCHEMA, arguments)
        assert missing_fields(ENTITIES_SCHEMA, violations) == ["name", "entityType"]


class TestJsonTypeName:
    def test_names(self) -> None:
        assert json_type_name(None) == "null"
        assert json_type_name(1) == "integer"
        assert json_type_name(1.5) == "number"
        assert json_type_name({}) == "object"


class TestCallTool:
    async def test_success(self) -> None:
        result = ToolResult.from_structured({"ok": True}, "done")
        handler = AsyncMock(return_value=result)
        outcome = await call_tool(_tool(handler), {"entities": []})

        assert isinstance(outcome, Success)
        assert outcome.result is result
        handler.assert_awaited_once_with({"entities": []})

    async def test_sync_handler(self) -> None:
        handler = MagicMock(return_value=ToolResult.from_structured({}, "sync"))
        outcome = await call_tool(_tool(handler), {"entities": []})
        assert isinstance(outcome, Success)

    async def test_dict_result_is_validated(self) -> None:
        handler = MagicMock(
            return_value={"content": [{"type": "text", "text": "hi"}], "structuredContent": {}}
        )
        outcome = await call_tool(_tool(handler), {"entities": []})
        assert isinstance(outcome, Success)
        assert outcome.result.content[0].text == "hi"

    async def test_invalid_arguments_skip_handler(self) -> None:
        handler = AsyncMock()
        outcome = await call_tool(_tool(handler), {})

        assert isinstance(outcome, Elicitation)
        assert outcome.missing_fields == ["entities"]
        handler.assert_not_called()

    async def test_elicitation_result_shape(self) -> None:
        outcome = await call_tool(_tool(AsyncMock()), {"entities": [{}]})
        assert isinstance(outcome, Elicitation)
        wire = outcome.to_result().to_wire()

        structured = wire["structuredContent"]
        assert structured["elicitation"] is True
        assert structured["missingFields"] == ["name", "entityType", "content"]
        assert structured["tool"] == "create_entities"
        assert structured["requestedSchema"] == ENTITIES_SCHEMA
        assert len(structured["invalidFields"]) == 3
        assert wire["isError"] is True
        assert wire["content"][0]["type"] == "text"
        assert "name" in wire["content"][0]["text"]

    async def test_handler_requests_more_input(self) -> None:
        handler = MagicMock(side_effect=ElicitationRequired(["confirm", "confirm"]))
        outcome = await call_tool(_tool(handler), {"entities": []})

        assert isinstance(outcome, Elicitation)
        assert outcome.missing_fields == ["confirm"]
        assert outcome.message == "Please provide: confirm, confirm"

    async def test_handler_exception_becomes_failure(self) -> None:
        handler = AsyncMock(side_effect=ValueError("bad thing"))
        outcome = await call_tool(_tool(handler), {"entities": []})

        assert isinstance(outcome, Failure)
        assert isinstance(outcome.error, ToolExecutionError)
        assert outcome.error.message == "Error executing create_entities: bad thing"
        assert outcome.error.data == {"tool": "create_entities", "type": "ValueError"}

    async def test_protocol_error_passes_through(self) -> None:
        handler = AsyncMock(side_effect=InvalidParamsError("path escapes root"))
        outcome = await call_tool(_tool(handler), {"entities": []})

        assert isinstance(outcome, Failure)
        assert isinstance(outcome.error, InvalidParamsError)

    async def test_non_result_return_is_failure(self) -> None:
        handler = MagicMock(return_value=42)
        outcome = await call_tool(_tool(handler), {"entities": []})
        assert isinstance(outcome, Failure)
        assert "int" in outcome.error.message

    async def test_repeated_bad_input_repeats_elicitation(self) -> None:
        tool = _tool(AsyncMock())
        first = await call_tool(tool, {})
        second = await call_tool(tool, {})
        assert isinstance(first, Elicitation)
        assert isinstance(second, Elicitation)
        assert first.missing_fields == second.missing_fields
