"""Knowledge-graph records: entities, relations, and graph slices."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Entity(BaseModel):
    """A named node with a type and a list of MCP content blocks."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    entity_type: str = Field(alias="entityType")
    content: list[dict[str, Any]] = Field(default_factory=list)

    def text(self) -> str:
        """Concatenated text of all text blocks (used for search)."""
        return " ".join(
            str(block.get("text", "")) for block in self.content if block.get("type") == "text"
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Relation(BaseModel):
    """A directed, typed edge between two entities."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")
    relation_type: str = Field(alias="relationType")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class GraphSlice(BaseModel):
    """A subset of one context's graph returned by read/search operations."""

    entities: list[Entity] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {
            "entities": [entity.to_wire() for entity in self.entities],
            "relations": [relation.to_wire() for relation in self.relations],
        }
