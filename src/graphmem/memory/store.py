"""Knowledge-graph storage backends.

:class:`GraphStore` defines the async storage protocol the memory tools
depend on.  :class:`InMemoryGraphStore` keeps one graph per named context
in process memory, for tests and single-process deployments.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from graphmem.memory.errors import ContextError, EntityNotFoundError, InvalidContextError
from graphmem.memory.models import Entity, GraphSlice, Relation

_ABSENT = object()
_CONTEXT_NAME = re.compile(r"^[a-z0-9_-]+$")


class GraphStore(Protocol):
    """Async persistence protocol for a multi-context knowledge graph."""

    current_context: str

    def set_context(self, context: str) -> str: ...
    def get_context_info(self) -> dict[str, Any]: ...
    async def create_context(self, name: str, description: str | None = None) -> str: ...
    async def delete_context(self, name: str, force: bool = False) -> int: ...
    def list_contexts(self) -> list[dict[str, Any]]: ...
    async def create_entities(
        self, entities: list[Entity], context: str | None = None
    ) -> list[Entity]: ...
    async def search_nodes(
        self, query: str, limit: int = 20, context: str | None = None
    ) -> GraphSlice: ...
    async def read_graph(
        self, limit: int | None = None, offset: int = 0, context: str | None = None
    ) -> GraphSlice: ...
    async def open_nodes(self, names: list[str], context: str | None = None) -> GraphSlice: ...
    async def create_relations(
        self, relations: list[Relation], context: str | None = None
    ) -> list[Relation]: ...
    async def delete_relations(
        self, relations: list[Relation], context: str | None = None
    ) -> int: ...
    async def add_observations(
        self, updates: list[tuple[str, list[dict[str, Any]]]], context: str | None = None
    ) -> dict[str, int]: ...
    async def delete_observations(
        self, deletions: list[tuple[str, list[dict[str, Any]]]], context: str | None = None
    ) -> dict[str, int]: ...
    async def delete_entities(self, names: list[str], context: str | None = None) -> int: ...


@dataclass
class _Graph:
    entities: dict[str, Entity] = field(default_factory=dict)
    relations: dict[Relation, None] = field(default_factory=dict)

    def relations_touching(self, names: set[str]) -> list[Relation]:
        return [r for r in self.relations if r.source in names and r.target in names]


class InMemoryGraphStore:
    """Dict-backed :class:`GraphStore` implementation.

    Entities keep insertion order.  Writes to a store are serialized by one
    :class:`asyncio.Lock`; reads take the same lock so they never observe a
    half-applied batch.
    """

    def __init__(
        self,
        contexts: Iterable[str] = ("personal", "work"),
        default_context: str = "personal",
    ) -> None:
        self._graphs: dict[str, _Graph] = {name: _Graph() for name in contexts}
        if default_context not in self._graphs:
            raise InvalidContextError(default_context, list(self._graphs))
        self.current_context = default_context
        self._descriptions: dict[str, str] = {}
        self._lock = asyncio.Lock()

    def _graph(self, context: str | None) -> _Graph:
        name = context or self.current_context
        graph = self._graphs.get(name)
        if graph is None:
            raise InvalidContextError(name, list(self._graphs))
        return graph

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def set_context(self, context: str) -> str:
        self._graph(context)
        self.current_context = context
        return context

    def get_context_info(self) -> dict[str, Any]:
        return {
            "currentContext": self.current_context,
            "contexts": {
                name: {"entities": len(graph.entities), "relations": len(graph.relations)}
                for name, graph in self._graphs.items()
            },
        }

    def list_contexts(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "current": name == self.current_context,
                "description": self._descriptions.get(name, ""),
                "entities": len(graph.entities),
                "relations": len(graph.relations),
            }
            for name, graph in self._graphs.items()
        ]

    async def create_context(self, name: str, description: str | None = None) -> str:
        """Add an empty context named *name*.

        Raises:
            ContextError: The name is malformed or already taken.
        """
        if not _CONTEXT_NAME.match(name):
            raise ContextError(
                name, "must use lowercase letters, numbers, hyphens and underscores only"
            )
        async with self._lock:
            if name in self._graphs:
                raise ContextError(name, "already exists")
            self._graphs[name] = _Graph()
            if description:
                self._descriptions[name] = description
        return name

    async def delete_context(self, name: str, force: bool = False) -> int:
        """Drop context *name* and return how many entities went with it.

        Raises:
            InvalidContextError: No such context.
            ContextError: It is the active context, or holds entities and
                *force* is false.
        """
        async with self._lock:
            graph = self._graphs.get(name)
            if graph is None:
                raise InvalidContextError(name, list(self._graphs))
            if name == self.current_context:
                raise ContextError(name, "is the active context")
            if graph.entities and not force:
                raise ContextError(
                    name, f"holds {len(graph.entities)} entities; pass force to delete it"
                )
            del self._graphs[name]
            self._descriptions.pop(name, None)
        return len(graph.entities)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def create_entities(
        self, entities: list[Entity], context: str | None = None
    ) -> list[Entity]:
        """Insert *entities*; an existing name is updated in place (upsert).

        Returns one entity per distinct name, in first-seen order.
        """
        graph = self._graph(context)
        stored: dict[str, Entity] = {}
        async with self._lock:
            for entity in entities:
                existing = graph.entities.get(entity.name)
                if existing is not None:
                    fresh = [b for b in entity.content if b not in existing.content]
                    merged = existing.content + fresh
                    entity = existing.model_copy(
                        update={"entity_type": entity.entity_type, "content": merged}
                    )
                graph.entities[entity.name] = entity
                stored[entity.name] = entity
        return list(stored.values())

    async def search_nodes(
        self, query: str, limit: int = 20, context: str | None = None
    ) -> GraphSlice:
        """Case-insensitive substring search; name hits rank before type/content hits."""
        graph = self._graph(context)
        needle = query.casefold()
        async with self._lock:
            scored: list[tuple[int, Entity]] = []
            for entity in graph.entities.values():
                if needle in entity.name.casefold():
                    scored.append((0, entity))
                elif needle in entity.entity_type.casefold():
                    scored.append((1, entity))
                elif needle in entity.text().casefold():
                    scored.append((2, entity))
            scored.sort(key=lambda pair: pair[0])
            found = [entity for _, entity in scored[: max(limit, 0)]]
            relations = graph.relations_touching({e.name for e in found})
        return GraphSlice(entities=found, relations=relations)

    async def read_graph(
        self, limit: int | None = None, offset: int = 0, context: str | None = None
    ) -> GraphSlice:
        graph = self._graph(context)
        async with self._lock:
            entities = list(graph.entities.values())
            start = max(offset, 0)
            page = entities[start : start + max(limit, 0) if limit is not None else None]
            relations = graph.relations_touching({e.name for e in page})
        return GraphSlice(entities=page, relations=relations)

    async def open_nodes(self, names: list[str], context: str | None = None) -> GraphSlice:
        graph = self._graph(context)
        async with self._lock:
            found = [graph.entities[name] for name in names if name in graph.entities]
            relations = graph.relations_touching({e.name for e in found})
        return GraphSlice(entities=found, relations=relations)

    async def delete_entities(self, names: list[str], context: str | None = None) -> int:
        """Delete entities and every relation touching them; return the count removed."""
        graph = self._graph(context)
        doomed = set(names)
        async with self._lock:
            removed = 0
            for name in doomed:
                if graph.entities.pop(name, None) is not None:
                    removed += 1
            touching = [r for r in graph.relations if r.source in doomed or r.target in doomed]
            for relation in touching:
                del graph.relations[relation]
        return removed

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    async def create_relations(
        self, relations: list[Relation], context: str | None = None
    ) -> list[Relation]:
        """Add relations whose endpoints exist; return only the new ones.

        Raises:
            EntityNotFoundError: An endpoint is unknown (nothing is written).
        """
        graph = self._graph(context)
        async with self._lock:
            for relation in relations:
                for endpoint in (relation.source, relation.target):
                    if endpoint not in graph.entities:
                        raise EntityNotFoundError(endpoint)
            created = [r for r in dict.fromkeys(relations) if r not in graph.relations]
            for relation in created:
                graph.relations[relation] = None
        return created

    async def delete_relations(
        self, relations: list[Relation], context: str | None = None
    ) -> int:
        graph = self._graph(context)
        async with self._lock:
            removed = 0
            for relation in dict.fromkeys(relations):
                if graph.relations.pop(relation, _ABSENT) is not _ABSENT:
                    removed += 1
        return removed

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    async def add_observations(
        self, updates: list[tuple[str, list[dict[str, Any]]]], context: str | None = None
    ) -> dict[str, int]:
        """Append content blocks to existing entities; return blocks added per entity.

        Raises:
            EntityNotFoundError: An entity is unknown (nothing is written).
        """
        graph = self._graph(context)
        async with self._lock:
            for name, _ in updates:
                if name not in graph.entities:
                    raise EntityNotFoundError(name)
            added: dict[str, int] = {}
            for name, blocks in updates:
                entity = graph.entities[name]
                fresh = [b for b in blocks if b not in entity.content]
                graph.entities[name] = entity.model_copy(
                    update={"content": entity.content + fresh}
                )
                added[name] = added.get(name, 0) + len(fresh)
        return added

    async def delete_observations(
        self, deletions: list[tuple[str, list[dict[str, Any]]]], context: str | None = None
    ) -> dict[str, int]:
        """Remove matching content blocks; unknown entities are skipped."""
        graph = self._graph(context)
        async with self._lock:
            removed: dict[str, int] = {}
            for name, blocks in deletions:
                entity = graph.entities.get(name)
                if entity is None:
                    continue
                kept = [b for b in entity.content if b not in blocks]
                graph.entities[name] = entity.model_copy(update={"content": kept})
                removed[name] = removed.get(name, 0) + len(entity.content) - len(kept)
        return removed

