"""Elicitation: schema validation that asks for corrections instead of failing.

A ``tools/call`` whose arguments do not satisfy the tool's ``inputSchema``
never reaches the handler.  Instead the caller gets an :class:`Elicitation`
naming the missing or malformed fields, so an LLM client can read
``missingFields`` and retry with a corrected call.

Validation is structural and deliberately partial:

* required properties must be present and non-null (unless ``null`` is an
  allowed type);
* present properties must match their declared ``type`` (and ``enum``);
* objects and array items are checked recursively;
* undeclared properties are always tolerated.

Nothing is cached between calls: the same bad input produces the same
elicitation every time.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from graphmem.protocol.errors import ProtocolError, ToolExecutionError
from graphmem.protocol.models import TextContent, ToolResult
from graphmem.protocol.registry import RegisteredTool

logger = logging.getLogger(__name__)

_MISSING = object()

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: (
        (isinstance(v, int) and not isinstance(v, bool))
        or (isinstance(v, float) and v.is_integer())
    ),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}


class Violation(BaseModel):
    """One offending field found while walking the arguments."""

    field: str
    path: str
    reason: Literal["missing", "invalid_type", "invalid_value", "out_of_range"]
    expected: str | None = None
    received: str | None = None

    def describe(self) -> str:
        if self.reason == "missing":
            return f"{self.path} is required"
        if self.reason in ("invalid_type", "out_of_range"):
            return f"{self.path} must be {self.expected} (got {self.received})"
        return f"{self.path} must be one of {self.expected} (got {self.received})"


class ElicitationRequired(Exception):
    """Raised by a handler that needs more input for reasons a schema cannot express."""

    def __init__(self, missing_fields: list[str], message: str = "") -> None:
        self.missing_fields = missing_fields
        self.message = message or f"Please provide: {', '.join(missing_fields)}"
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    result: ToolResult


@dataclass(frozen=True)
class Elicitation:
    """A request for the caller to supply or correct fields."""

    tool: str
    missing_fields: list[str]
    violations: list[Violation] = field(default_factory=list)
    requested_schema: dict[str, Any] = field(default_factory=dict)
    message: str = ""

    def to_result(self) -> ToolResult:
        """Render as a ``tools/call`` result.

        ``structuredContent.elicitation`` and ``structuredContent.missingFields``
        are the stable paths clients branch on.
        """
        data = {
            "elicitation": True,
            "missingFields": list(self.missing_fields),
            "invalidFields": [v.model_dump() for v in self.violations],
            "tool": self.tool,
            "message": self.message,
            "requestedSchema": self.requested_schema,
        }
        return ToolResult(
            content=[TextContent(text=self.message)],
            structured_content=data,
            is_error=True,
        )


@dataclass(frozen=True)
class Failure:
    error: ProtocolError


ToolOutcome = Success | Elicitation | Failure


# ---------------------------------------------------------------------------
# Schema walk
# ---------------------------------------------------------------------------


def json_type_name(value: Any) -> str:
    """Name of *value*'s JSON type, as used in schema ``type`` keywords."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _declared_types(schema: dict[str, Any]) -> list[str]:
    declared = schema.get("type")
    if declared is None:
        return []
    return [declared] if isinstance(declared, str) else list(declared)


def _matches_type(schema: dict[str, Any], value: Any) -> bool:
    declared = _declared_types(schema)
    if not declared:
        return True
    # Unknown type keywords are not ours to enforce.
    return any(_TYPE_CHECKS.get(name, lambda _: True)(value) for name in declared)


def find_violations(schema: dict[str, Any], arguments: dict[str, Any]) -> list[Violation]:
    """Walk *arguments* against *schema* and collect every violation."""
    violations: list[Violation] = []
    _check_object(schema, arguments, "", violations)
    return violations


def _check_object(
    schema: dict[str, Any],
    obj: dict[str, Any],
    prefix: str,
    out: list[Violation],
) -> None:
    properties: dict[str, Any] = schema.get("properties") or {}
    required: list[str] = schema.get("required") or []
    names = list(properties) + [name for name in required if name not in properties]

    for name in names:
        path = f"{prefix}.{name}" if prefix else name
        prop_schema = properties.get(name) or {}
        value = obj.get(name, _MISSING)

        if value is _MISSING or (value is None and "null" not in _declared_types(prop_schema)):
            if name in required:
                out.append(
                    Violation(
                        field=name,
                        path=path,
                        reason="missing",
                        expected="|".join(_declared_types(prop_schema)) or None,
                        received="undefined" if value is _MISSING else "null",
                    )
                )
            continue

        _check_value(prop_schema, value, name, path, out)


def _check_value(
    schema: dict[str, Any],
    value: Any,
    field_name: str,
    path: str,
    out: list[Violation],
) -> None:
    if not _matches_type(schema, value):
        out.append(
            Violation(
                field=field_name,
                path=path,
                reason="invalid_type",
                expected="|".join(_declared_types(schema)),
                received=json_type_name(value),
            )
        )
        return

    allowed = schema.get("enum")
    if isinstance(allowed, list) and value not in allowed:
        out.append(
            Violation(
                field=field_name,
                path=path,
                reason="invalid_value",
                expected=", ".join(map(str, allowed)),
                received=str(value),
            )
        )
        return

    minimum = schema.get("minimum")
    if isinstance(minimum, (int, float)) and isinstance(value, (int, float)) and value < minimum:
        out.append(
            Violation(
                field=field_name,
                path=path,
                reason="out_of_range",
                expected=f">= {minimum}",
                received=str(value),
            )
        )
        return

    if isinstance(value, dict) and ("properties" in schema or "required" in schema):
        _check_object(schema, value, path, out)
    elif isinstance(value, list) and isinstance(schema.get("items"), dict):
        for index, item in enumerate(value):
            _check_value(schema["items"], item, field_name, f"{path}[{index}]", out)


def declaration_order(schema: dict[str, Any]) -> dict[str, int]:
    """Map each property name to its first position in a pre-order schema walk."""
    order: dict[str, int] = {}

    def walk(node: Any) -> None:
        if not isinstance(node, dict):
            return
        properties = node.get("properties") or {}
        for name, sub in properties.items():
            order.setdefault(name, len(order))
            walk(sub)
        for name in node.get("required") or []:
            order.setdefault(name, len(order))
        walk(node.get("items"))

    walk(schema)
    return order


def missing_fields(schema: dict[str, Any], violations: list[Violation]) -> list[str]:
    """Deduplicated offending field names, in schema-declaration order."""
    order = declaration_order(schema)
    unique = {v.field for v in violations}
    return sorted(unique, key=lambda name: (order.get(name, len(order)), name))


def build_elicitation(tool: RegisteredTool, violations: list[Violation]) -> Elicitation:
    fields = missing_fields(tool.input_schema, violations)
    details = "; ".join(v.describe() for v in violations[:10])
    if len(violations) > 10:
        details += f"; and {len(violations) - 10} more"
    message = (
        f"'{tool.name}' needs corrected input. "
        f"Missing or invalid fields: {', '.join(fields)}. {details}."
    )
    return Elicitation(
        tool=tool.name,
        missing_fields=fields,
        violations=violations,
        requested_schema=tool.input_schema,
        message=message,
    )


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


async def call_tool(tool: RegisteredTool, arguments: dict[str, Any]) -> ToolOutcome:
    """Validate *arguments*, then run the handler if they pass.

    Never raises: handler failures come back as :class:`Failure`.
    """
    violations = find_violations(tool.input_schema, arguments)
    if violations:
        logger.info(
            "Elicitation for %s: %s",
            tool.name,
            ", ".join(missing_fields(tool.input_schema, violations)),
        )
        return build_elicitation(tool, violations)

    try:
        result: Any = tool.handler(arguments)
        if inspect.isawaitable(result):
            result = await result
    except ElicitationRequired as exc:
        return Elicitation(
            tool=tool.name,
            missing_fields=list(dict.fromkeys(exc.missing_fields)),
            violations=[
                Violation(field=name, path=name, reason="missing")
                for name in dict.fromkeys(exc.missing_fields)
            ],
            requested_schema=tool.input_schema,
            message=exc.message,
        )
    except ProtocolError as exc:
        return Failure(exc)
    except Exception as exc:
        logger.exception("Tool %s failed", tool.name)
        return Failure(ToolExecutionError(tool.name, str(exc), error_type=type(exc).__name__))

    if isinstance(result, dict):
        try:
            result = ToolResult.model_validate(result)
        except ValidationError as exc:
            return Failure(ToolExecutionError(tool.name, f"malformed result: {exc}"))
    if not isinstance(result, ToolResult):
        return Failure(
            ToolExecutionError(tool.name, f"handler returned {type(result).__name__}")
        )
    return Success(result)
