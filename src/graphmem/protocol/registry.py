"""ToolRegistry: the closed name -> {descriptor, handler} table behind ``tools/*``."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from graphmem.protocol.errors import RegistrySealedError, UnknownToolError
from graphmem.protocol.models import ToolDescriptor, ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], "ToolResult | Awaitable[ToolResult]"]


@dataclass(frozen=True)
class RegisteredTool:
    """A tool descriptor paired with the callable that implements it."""

    descriptor: ToolDescriptor
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.descriptor.input_schema


class ToolRegistry:
    """Maintains the tool table and resolves ``tools/call`` targets.

    Populated once at startup, then sealed; after that it is only read, so
    concurrent requests share it without locking.

    Usage::

        registry = ToolRegistry()
        registry.register([RegisteredTool(descriptor, handler)])
        registry.seal()

        registry.list()                     # descriptors, registration order
        tool = registry.resolve("search")   # or UnknownToolError
    """

    def __init__(self, tools: Iterable[RegisteredTool] = ()) -> None:
        self._tools: dict[str, RegisteredTool] = {}
        self._sealed = False
        self.register(tools)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def register(self, tools: Iterable[RegisteredTool]) -> None:
        """Add *tools* to the table.

        Re-registering a name replaces the previous entry (last wins) and
        keeps its original position in :meth:`list`.

        Raises:
            RegistrySealedError: The registry has been sealed.
        """
        for tool in tools:
            if self._sealed:
                raise RegistrySealedError(tool.name)
            if tool.name in self._tools:
                logger.warning("Tool %s registered twice; keeping the latest", tool.name)
            self._tools[tool.name] = tool

    def seal(self) -> None:
        """Freeze the table; further registration raises."""
        self._sealed = True

    def list(self) -> list[ToolDescriptor]:
        """Return all descriptors in registration order."""
        return [tool.descriptor for tool in self._tools.values()]

    def resolve(self, name: str) -> RegisteredTool:
        """Return the tool registered under *name*.

        Raises:
            UnknownToolError: No such tool.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
