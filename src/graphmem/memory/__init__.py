"""In-memory knowledge graph and the MCP tools that expose it."""

from graphmem.memory.errors import (
    ContextError,
    EntityNotFoundError,
    GraphStoreError,
    InvalidContextError,
)
from graphmem.memory.models import Entity, GraphSlice, Relation
from graphmem.memory.store import GraphStore, InMemoryGraphStore
from graphmem.memory.tools import MemoryTools, build_registry

__all__ = [
    "ContextError",
    "Entity",
    "EntityNotFoundError",
    "GraphSlice",
    "GraphStore",
    "GraphStoreError",
    "InMemoryGraphStore",
    "InvalidContextError",
    "MemoryTools",
    "Relation",
    "build_registry",
]
