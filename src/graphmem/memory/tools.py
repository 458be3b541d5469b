"""Memory tools: the knowledge-graph operations exposed over ``tools/call``.

:func:`build_registry` pairs each tool's descriptor (name, title,
description, ``inputSchema``) with a handler bound to a
:class:`~graphmem.memory.store.GraphStore`.  Handlers receive arguments
that already passed structural validation, so they only deal with
semantics.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import mimetypes
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from graphmem.memory.models import Entity, Relation
from graphmem.protocol.errors import InvalidParamsError
from graphmem.protocol.models import ResourceLink, ToolDescriptor, ToolResult
from graphmem.protocol.registry import RegisteredTool, ToolHandler, ToolRegistry

if TYPE_CHECKING:
    from graphmem.config import ServerSettings
    from graphmem.memory.store import GraphStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared schema fragments
# ---------------------------------------------------------------------------

CONTENT_BLOCK_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {
            "type": "string",
            "enum": ["text", "image", "audio", "resource_link", "resource"],
        },
        "text": {"type": "string"},
        "data": {"type": "string"},
        "mimeType": {"type": "string"},
        "uri": {"type": "string"},
        "title": {"type": "string"},
        "description": {"type": "string"},
    },
    "required": ["type"],
}

_CONTEXT_PROPERTY: dict[str, Any] = {
    "type": "string",
    "description": "Memory context to operate on (defaults to the current context)",
}

RELATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "from": {"type": "string"},
        "to": {"type": "string"},
        "relationType": {"type": "string"},
    },
    "required": ["from", "to", "relationType"],
}

_CONTENT_UPDATE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "entityName": {"type": "string"},
        "content": {"type": "array", "items": CONTENT_BLOCK_SCHEMA},
    },
    "required": ["entityName", "content"],
}


def _object(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class MemoryTools:
    """Handlers for every memory tool, bound to one store.

    Usage::

        tools = MemoryTools(InMemoryGraphStore(), settings)
        result = await tools.create_entities({"entities": [...]})
    """

    def __init__(self, store: GraphStore, settings: ServerSettings) -> None:
        self._store = store
        self._settings = settings

    async def set_context(self, arguments: dict[str, Any]) -> ToolResult:
        context = self._store.set_context(arguments["context"])
        return ToolResult.from_structured(
            {"success": True, "context": context},
            f"Switched to context '{context}'",
        )

    async def get_context_info(self, arguments: dict[str, Any]) -> ToolResult:
        info = self._store.get_context_info()
        lines = [f"Current context: {info['currentContext']}"]
        for name, counts in info["contexts"].items():
            lines.append(
                f"- {name}: {counts['entities']} entities, {counts['relations']} relations"
            )
        return ToolResult.from_structured(info, "\n".join(lines))

    async def create_context(self, arguments: dict[str, Any]) -> ToolResult:
        name = await self._store.create_context(arguments["name"], arguments.get("description"))
        return ToolResult.from_structured(
            {"success": True, "context": name},
            f"Created context '{name}'",
        )

    async def delete_context(self, arguments: dict[str, Any]) -> ToolResult:
        name = arguments["name"]
        dropped = await self._store.delete_context(name, bool(arguments.get("force", False)))
        return ToolResult.from_structured(
            {"success": True, "context": name, "entitiesDeleted": dropped},
            f"Deleted context '{name}' ({dropped} entities)",
        )

    async def list_contexts(self, arguments: dict[str, Any]) -> ToolResult:
        contexts = self._store.list_contexts()
        lines = [
            f"{'*' if c['current'] else '-'} {c['name']}: {c['entities']} entities"
            for c in contexts
        ]
        return ToolResult.from_structured({"contexts": contexts}, "\n".join(lines))

    async def create_entities(self, arguments: dict[str, Any]) -> ToolResult:
        started = time.perf_counter()
        entities = [Entity.model_validate(item) for item in arguments["entities"]]
        stored = await self._store.create_entities(entities, arguments.get("context"))
        duration = round((time.perf_counter() - started) * 1000, 3)
        logger.debug("Created %d entities in %.3f ms", len(stored), duration)
        return ToolResult.from_structured(
            {
                "success": True,
                "entitiesCreated": len(stored),
                "items": [entity.to_wire() for entity in stored],
                "performance": {"duration": duration},
            },
            f"Created {len(stored)} entities",
        )

    async def search_nodes(self, arguments: dict[str, Any]) -> ToolResult:
        limit = int(arguments.get("limit", 20))
        found = await self._store.search_nodes(arguments["query"], limit, arguments.get("context"))
        return ToolResult.from_structured(
            found.to_wire(),
            f"Found {len(found.entities)} entities matching '{arguments['query']}'",
        )

    async def read_graph(self, arguments: dict[str, Any]) -> ToolResult:
        limit = arguments.get("limit")
        graph = await self._store.read_graph(
            int(limit) if limit is not None else None,
            int(arguments.get("offset", 0)),
            arguments.get("context"),
        )
        return ToolResult.from_structured(
            graph.to_wire(),
            f"Graph has {len(graph.entities)} entities and {len(graph.relations)} relations",
        )

    async def open_nodes(self, arguments: dict[str, Any]) -> ToolResult:
        found = await self._store.open_nodes(arguments["names"], arguments.get("context"))
        return ToolResult.from_structured(
            found.to_wire(),
            f"Opened {len(found.entities)} of {len(arguments['names'])} requested entities",
        )

    async def create_relations(self, arguments: dict[str, Any]) -> ToolResult:
        relations = [Relation.model_validate(item) for item in arguments["relations"]]
        created = await self._store.create_relations(relations, arguments.get("context"))
        return ToolResult.from_structured(
            {
                "success": True,
                "relationsCreated": len(created),
                "items": [relation.to_wire() for relation in created],
            },
            f"Created {len(created)} relations",
        )

    async def delete_relations(self, arguments: dict[str, Any]) -> ToolResult:
        relations = [Relation.model_validate(item) for item in arguments["relations"]]
        removed = await self._store.delete_relations(relations, arguments.get("context"))
        return ToolResult.from_structured(
            {"success": True, "relationsDeleted": removed},
            f"Deleted {removed} relations",
        )

    async def add_observations(self, arguments: dict[str, Any]) -> ToolResult:
        updates = [(item["entityName"], item["content"]) for item in arguments["updates"]]
        added = await self._store.add_observations(updates, arguments.get("context"))
        total = sum(added.values())
        return ToolResult.from_structured(
            {"success": True, "observationsAdded": total, "entities": added},
            f"Added {total} observations to {len(added)} entities",
        )

    async def delete_observations(self, arguments: dict[str, Any]) -> ToolResult:
        deletions = [
            (item["entityName"], item.get("content") or item.get("observations") or [])
            for item in arguments["deletions"]
        ]
        removed = await self._store.delete_observations(deletions, arguments.get("context"))
        total = sum(removed.values())
        return ToolResult.from_structured(
            {"success": True, "observationsDeleted": total, "entities": removed},
            f"Deleted {total} observations",
        )

    async def delete_entities(self, arguments: dict[str, Any]) -> ToolResult:
        removed = await self._store.delete_entities(
            arguments["entityNames"], arguments.get("context")
        )
        return ToolResult.from_structured(
            {"success": True, "entitiesDeleted": removed},
            f"Deleted {removed} entities",
        )

    async def list_files(self, arguments: dict[str, Any]) -> ToolResult:
        root = Path(self._settings.files_root).resolve()
        target = (root / arguments.get("path", ".")).resolve()
        if not target.is_relative_to(root):
            msg = f"Path {arguments.get('path')!r} is outside the files root"
            raise InvalidParamsError(msg)

        pattern = arguments.get("pattern")
        entries = await asyncio.to_thread(_scan_directory, target, pattern)
        items = [
            {
                "name": path.name,
                "path": path.relative_to(root).as_posix(),
                "type": "directory" if path.is_dir() else "file",
            }
            for path in entries
        ]
        links = [
            ResourceLink(
                uri=path.as_uri(),
                name=path.name,
                mime_type=mimetypes.guess_type(path.name)[0],
            )
            for path in entries
            if path.is_file()
        ]
        return ToolResult.from_structured(
            {
                "resourceLinks": [
                    link.model_dump(by_alias=True, exclude_none=True) for link in links
                ],
                "items": items,
            },
            f"Found {len(items)} entries in {target.relative_to(root).as_posix() or '.'}",
            extra_content=links,
        )


def _scan_directory(directory: Path, pattern: str | None) -> list[Path]:
    """List *directory* sorted by name; a missing directory lists as empty."""
    if not directory.is_dir():
        return []
    entries = sorted(directory.iterdir(), key=lambda p: p.name)
    if not pattern:
        return entries
    if any(ch in pattern for ch in "*?["):
        return [p for p in entries if fnmatch.fnmatch(p.name, pattern)]
    return [p for p in entries if pattern in p.name]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _tool(
    name: str,
    title: str,
    description: str,
    schema: dict[str, Any],
    handler: ToolHandler,
) -> RegisteredTool:
    descriptor = ToolDescriptor(
        name=name, title=title, description=description, input_schema=schema
    )
    return RegisteredTool(descriptor=descriptor, handler=handler)


def build_registry(store: GraphStore, settings: ServerSettings) -> ToolRegistry:
    """Return an unsealed registry holding every memory tool."""
    tools = MemoryTools(store, settings)
    contexts = ", ".join(settings.contexts)
    return ToolRegistry(
        [
            _tool(
                "set_context",
                "Set Context",
                "Switch the active memory context",
                _object(
                    {
                        "context": {
                            "type": "string",
                            "description": f"Context to activate (configured: {contexts})",
                        }
                    },
                    ["context"],
                ),
                tools.set_context,
            ),
            _tool(
                "get_context_info",
                "Get Context Info",
                "Report the active context and entity/relation counts per context",
                _object({}, []),
                tools.get_context_info,
            ),
            _tool(
                "create_context",
                "Create Context",
                "Create a new, empty memory context (e.g. for a project or hobby)",
                _object(
                    {
                        "name": {
                            "type": "string",
                            "description": "Lowercase letters, numbers, hyphens, underscores",
                        },
                        "description": {"type": "string"},
                    },
                    ["name"],
                ),
                tools.create_context,
            ),
            _tool(
                "delete_context",
                "Delete Context",
                "Delete a memory context and everything stored in it",
                _object(
                    {
                        "name": {"type": "string"},
                        "force": {
                            "type": "boolean",
                            "description": "Delete even if the context holds entities",
                        },
                    },
                    ["name"],
                ),
                tools.delete_context,
            ),
            _tool(
                "list_contexts",
                "List Contexts",
                "List every memory context with its entity and relation counts",
                _object({}, []),
                tools.list_contexts,
            ),
            _tool(
                "create_entities",
                "Create Entities",
                "Create entities in the knowledge graph; existing names are updated",
                _object(
                    {
                        "entities": {
                            "type": "array",
                            "items": _object(
                                {
                                    "name": {"type": "string"},
                                    "entityType": {"type": "string"},
                                    "content": {"type": "array", "items": CONTENT_BLOCK_SCHEMA},
                                },
                                ["name", "entityType", "content"],
                            ),
                        },
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["entities"],
                ),
                tools.create_entities,
            ),
            _tool(
                "search_nodes",
                "Search Nodes",
                "Search entities by name, type, or text content",
                _object(
                    {
                        "query": {"type": "string"},
                        "limit": {"type": "number", "minimum": 0},
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["query"],
                ),
                tools.search_nodes,
            ),
            _tool(
                "read_graph",
                "Read Graph",
                "Read entities and the relations between them, optionally paginated",
                _object(
                    {
                        "limit": {"type": "number", "minimum": 0},
                        "offset": {"type": "number", "minimum": 0},
                        "context": _CONTEXT_PROPERTY,
                    },
                    [],
                ),
                tools.read_graph,
            ),
            _tool(
                "open_nodes",
                "Open Nodes",
                "Fetch specific entities by name",
                _object(
                    {
                        "names": {"type": "array", "items": {"type": "string"}},
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["names"],
                ),
                tools.open_nodes,
            ),
            _tool(
                "create_relations",
                "Create Relations",
                "Create directed relations between existing entities",
                _object(
                    {
                        "relations": {"type": "array", "items": RELATION_SCHEMA},
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["relations"],
                ),
                tools.create_relations,
            ),
            _tool(
                "delete_relations",
                "Delete Relations",
                "Delete relations from the knowledge graph",
                _object(
                    {
                        "relations": {"type": "array", "items": RELATION_SCHEMA},
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["relations"],
                ),
                tools.delete_relations,
            ),
            _tool(
                "add_observations",
                "Add Observations",
                "Append content blocks to existing entities",
                _object(
                    {
                        "updates": {"type": "array", "items": _CONTENT_UPDATE_SCHEMA},
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["updates"],
                ),
                tools.add_observations,
            ),
            _tool(
                "delete_observations",
                "Delete Observations",
                "Remove content blocks from entities",
                _object(
                    {
                        "deletions": {
                            "type": "array",
                            "items": _object(
                                {
                                    "entityName": {"type": "string"},
                                    "content": {"type": "array", "items": CONTENT_BLOCK_SCHEMA},
                                    "observations": {
                                        "type": "array",
                                        "items": CONTENT_BLOCK_SCHEMA,
                                    },
                                },
                                ["entityName"],
                            ),
                        },
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["deletions"],
                ),
                tools.delete_observations,
            ),
            _tool(
                "delete_entities",
                "Delete Entities",
                "Delete entities and every relation that touches them",
                _object(
                    {
                        "entityNames": {"type": "array", "items": {"type": "string"}},
                        "context": _CONTEXT_PROPERTY,
                    },
                    ["entityNames"],
                ),
                tools.delete_entities,
            ),
            _tool(
                "list_files",
                "List Files",
                "List files under the server's files root as resource links",
                _object(
                    {
                        "path": {
                            "type": "string",
                            "description": "Directory relative to the files root",
                        },
                        "pattern": {"type": "string", "description": "Glob or substring filter"},
                    },
                    [],
                ),
                tools.list_files,
            ),
        ]
    )
