"""
Entity models for EAV metadata rows.

These models validate the rows the initial data snapshot loads from both
systems. They are frozen because the snapshot is read-only for the whole
run, and they allow extra fields because each schema generation carries
columns the other does not. ``to_record()`` returns the complete original
row, extras included, so it can seed a destination record.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EavModel(BaseModel):
    """Base for snapshot rows: immutable, permissive about extra columns."""

    model_config = ConfigDict(frozen=True, extra="allow")

    def to_record(self) -> dict[str, Any]:
        """Return the full row as a plain dictionary."""
        return self.model_dump()


class EntityType(EavModel):
    """Classification of a business object that owns attributes."""

    entity_type_id: int = Field(..., description="System-local id")
    entity_type_code: str = Field(..., description="Stable code, e.g. 'catalog_product'")
    default_attribute_set_id: int | None = None


class Attribute(EavModel):
    """A custom attribute of one entity type."""

    attribute_id: int
    entity_type_id: int
    attribute_code: str = Field(..., description="Stable per entity type")


class AttributeSet(EavModel):
    """A named collection of attributes for one entity type."""

    attribute_set_id: int
    entity_type_id: int
    attribute_set_name: str


class AttributeGroup(EavModel):
    """A named sub-collection of an attribute set."""

    attribute_group_id: int
    attribute_set_id: int
    attribute_group_name: str
    attribute_group_code: str | None = None
    sort_order: int | None = None


__all__ = [
    "EavModel",
    "EntityType",
    "Attribute",
    "AttributeSet",
    "AttributeGroup",
]
