"""Shared fixtures for protocol-layer tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from graphmem.config import ServerSettings
from graphmem.protocol.dispatcher import Dispatcher
from graphmem.protocol.elicitation import ElicitationRequired
from graphmem.protocol.models import ToolDescriptor, ToolResult
from graphmem.protocol.negotiation import ProtocolNegotiator
from graphmem.protocol.registry import RegisteredTool, ToolRegistry

ECHO_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "message": {"type": "string"},
        "repeat": {"type": "integer"},
    },
    "required": ["message"],
}


def make_tool(
    name: str,
    handler: Any,
    schema: dict[str, Any] | None = None,
    title: str | None = None,
) -> RegisteredTool:
    descriptor = ToolDescriptor(
        name=name,
        title=title or name.replace("_", " ").title(),
        description=f"The {name} tool",
        input_schema=schema or {"type": "object", "properties": {}},
    )
    return RegisteredTool(descriptor=descriptor, handler=handler)


async def echo(arguments: dict[str, Any]) -> ToolResult:
    text = arguments["message"] * int(arguments.get("repeat", 1))
    return ToolResult.from_structured({"echo": text}, text)


async def slow_echo(arguments: dict[str, Any]) -> ToolResult:
    await asyncio.sleep(float(arguments.get("delay", 0)))
    return ToolResult.from_structured({"echo": arguments["message"]}, arguments["message"])


def explode(arguments: dict[str, Any]) -> ToolResult:
    msg = "disk on fire"
    raise RuntimeError(msg)


def needs_more(arguments: dict[str, Any]) -> ToolResult:
    raise ElicitationRequired(["confirmation"], "Please confirm the deletion")


@pytest.fixture()
def settings() -> ServerSettings:
    return ServerSettings(name="graphmem-test", version="9.9.9")


@pytest.fixture()
def registry() -> ToolRegistry:
    return ToolRegistry(
        [
            make_tool("echo", echo, ECHO_SCHEMA),
            make_tool(
                "slow_echo",
                slow_echo,
                {
                    "type": "object",
                    "properties": {"message": {"type": "string"}, "delay": {"type": "number"}},
                    "required": ["message"],
                },
            ),
            make_tool("explode", explode),
            make_tool("needs_more", needs_more),
        ]
    )


@pytest.fixture()
def dispatcher(registry: ToolRegistry, settings: ServerSettings) -> Dispatcher:
    return Dispatcher(registry, ProtocolNegotiator(settings))
