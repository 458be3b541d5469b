"""Error types raised by the knowledge-graph store."""

from __future__ import annotations


class GraphStoreError(Exception):
    """Base error for all graph store failures."""


class EntityNotFoundError(GraphStoreError):
    """An operation referenced an entity that does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Entity not found: {name}")


class InvalidContextError(GraphStoreError):
    """An operation named a context the store does not have."""

    def __init__(self, context: str, valid: list[str]) -> None:
        self.context = context
        self.valid = valid
        super().__init__(f"Invalid context '{context}'. Valid contexts: {', '.join(valid)}")


class ContextError(GraphStoreError):
    """A context could not be created or deleted."""

    def __init__(self, context: str, reason: str) -> None:
        self.context = context
        self.reason = reason
        super().__init__(f"Context '{context}' {reason}")
