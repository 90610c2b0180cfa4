"""
Configuration for the EAV migration step.

EavMigrationSettings collects the static configuration the pipeline consumes:

    - document_map: source relation name -> destination relation name
    - documents: every relation the step touches (progress and rollback)
    - mapped_documents: relations merged by composite key instead of replaced
    - ignored_attributes: source attribute codes that are never migrated
    - product_entity_type_code: entity type receiving the supplemental groups
    - supplemental_groups: attribute groups the destination generation needs
    - design_group_code: supplemental group receiving the design attributes
    - field_rules: per destination relation rules for the record transformer
    - batch_size: page size for reading source relations

The defaults reproduce the standard EAV step, so most callers only override
the ignore list and field rules.

Example:
    >>> settings = EavMigrationSettings.from_dict({
    ...     "ignored_attributes": ["gift_message_available"],
    ...     "batch_size": 500,
    ... })
    >>> settings.destination_name("eav_attribute")
    'eav_attribute'
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from eavmigrate.exceptions import ConfigurationError

ATTRIBUTE_SET = "eav_attribute_set"
ATTRIBUTE_GROUP = "eav_attribute_group"
ATTRIBUTE = "eav_attribute"
ENTITY_ATTRIBUTE = "eav_entity_attribute"
ENTITY_TYPE = "eav_entity_type"

CORE_DOCUMENTS: tuple[str, ...] = (
    ATTRIBUTE_SET,
    ATTRIBUTE_GROUP,
    ATTRIBUTE,
    ENTITY_ATTRIBUTE,
)


class FieldRules(BaseModel):
    """
    Declarative rules for transforming one source record into a destination record.

    Attributes:
        ignore: Destination fields the transform never writes; they keep
            their seeded value.
        ignore_source: Source fields that are never copied.
        rename: Source field -> destination field for fields whose name
            changed between schema generations.
        values: Destination field -> constant written on every record.
    """

    model_config = ConfigDict(frozen=True)

    ignore: tuple[str, ...] = ()
    ignore_source: tuple[str, ...] = ()
    rename: dict[str, str] = Field(default_factory=dict)
    values: dict[str, Any] = Field(default_factory=dict)


class MappedDocument(BaseModel):
    """A relation merged by composite key rather than fully replaced."""

    model_config = ConfigDict(frozen=True)

    relation: str
    key_fields: tuple[str, ...] = Field(..., min_length=1)


class SupplementalGroup(BaseModel):
    """An attribute group added to every product attribute set."""

    model_config = ConfigDict(frozen=True)

    attribute_group_name: str
    attribute_group_code: str
    sort_order: int
    default_id: int = 0
    tab_group_code: str | None = "advanced"


SCHEDULE_DESIGN_UPDATE_GROUP = SupplementalGroup(
    attribute_group_name="Schedule Design Update",
    attribute_group_code="schedule-design-update",
    sort_order=55,
)
BUNDLE_ITEMS_GROUP = SupplementalGroup(
    attribute_group_name="Bundle Items",
    attribute_group_code="bundle-items",
    sort_order=16,
)

DEFAULT_MAPPED_DOCUMENTS: tuple[MappedDocument, ...] = (
    MappedDocument(relation=ENTITY_TYPE, key_fields=("entity_type_code",)),
    MappedDocument(relation="catalog_eav_attribute", key_fields=("attribute_id",)),
    MappedDocument(relation="customer_eav_attribute", key_fields=("attribute_id",)),
)


class EavMigrationSettings(BaseModel):
    """
    Static configuration of the EAV migration step.

    Immutable once built; the pipeline reads it but never changes it.
    """

    model_config = ConfigDict(frozen=True)

    document_map: dict[str, str] = Field(default_factory=dict)
    documents: tuple[str, ...] = CORE_DOCUMENTS + tuple(
        doc.relation for doc in DEFAULT_MAPPED_DOCUMENTS
    )
    mapped_documents: tuple[MappedDocument, ...] = DEFAULT_MAPPED_DOCUMENTS
    ignored_attributes: frozenset[str] = frozenset()
    product_entity_type_code: str = "catalog_product"
    supplemental_groups: tuple[SupplementalGroup, ...] = (
        SCHEDULE_DESIGN_UPDATE_GROUP,
        BUNDLE_ITEMS_GROUP,
    )
    design_group_code: str | None = SCHEDULE_DESIGN_UPDATE_GROUP.attribute_group_code
    field_rules: dict[str, FieldRules] = Field(default_factory=dict)
    batch_size: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def _check_documents(self) -> EavMigrationSettings:
        declared = set(self.documents)
        missing = [name for name in CORE_DOCUMENTS if name not in declared]
        missing += [doc.relation for doc in self.mapped_documents if doc.relation not in declared]
        if missing:
            raise ValueError(f"documents must declare {', '.join(missing)}")
        if len(declared) != len(self.documents):
            raise ValueError("documents must not contain duplicates")
        return self

    @model_validator(mode="after")
    def _check_design_group(self) -> EavMigrationSettings:
        codes = {group.attribute_group_code for group in self.supplemental_groups}
        if self.design_group_code is not None and self.design_group_code not in codes:
            raise ValueError(
                f"design_group_code {self.design_group_code!r} is not a supplemental group code"
            )
        return self

    def destination_name(self, source_name: str) -> str:
        """Return the destination relation a source relation maps onto."""
        return self.document_map.get(source_name, source_name)

    def rules_for(self, destination_name: str) -> FieldRules:
        return self.field_rules.get(destination_name, FieldRules())

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, source: str | None = None) -> EavMigrationSettings:
        """
        Build settings from a plain dictionary.

        Raises:
            ConfigurationError: If the data does not validate.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e), source=source) from e

    @classmethod
    def from_file(cls, path: str | Path) -> EavMigrationSettings:
        """
        Load settings from a JSON file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(str(e), source=str(path)) from e
        if not isinstance(data, dict):
            raise ConfigurationError("top-level value must be an object", source=str(path))
        return cls.from_dict(data, source=str(path))


__all__ = [
    "ATTRIBUTE",
    "ATTRIBUTE_GROUP",
    "ATTRIBUTE_SET",
    "ENTITY_ATTRIBUTE",
    "ENTITY_TYPE",
    "CORE_DOCUMENTS",
    "FieldRules",
    "MappedDocument",
    "SupplementalGroup",
    "SCHEDULE_DESIGN_UPDATE_GROUP",
    "BUNDLE_ITEMS_GROUP",
    "DEFAULT_MAPPED_DOCUMENTS",
    "EavMigrationSettings",
]
