"""
Initial data snapshot.

Every id correspondence map compares the destination after a phase with the
destination as it was before the run. InitialData captures that "before"
picture for both systems once, before any phase touches the destination,
and keeps it read-only for the rest of the run.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import ValidationError

from eavmigrate.config import (
    ATTRIBUTE,
    ATTRIBUTE_GROUP,
    ATTRIBUTE_SET,
    ENTITY_TYPE,
    EavMigrationSettings,
)
from eavmigrate.exceptions import SnapshotLoadError, StorageError
from eavmigrate.models import Attribute, AttributeGroup, AttributeSet, EavModel, EntityType
from eavmigrate.stores.interface import RelationReader

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=EavModel)

ENTITY_TYPE_KEY_FIELDS = ("entity_type_id", "entity_type_code")


class System(enum.Enum):
    """Which side of the migration a snapshot belongs to."""

    SOURCE = "source"
    DEST = "dest"


class InitialData:
    """
    Pre-migration inventories of both systems.

    Keying:
        - attributes(SOURCE): attribute_id
        - attributes(DEST): (entity_type_id, attribute_code)
        - attribute_sets(system): attribute_set_id
        - attribute_groups(system): attribute_group_id
        - entity_types_keyed_by(system, field): entity_type_id or entity_type_code

    Destination relation names come from the settings' document map.

    Example:
        >>> initial = InitialData(source, destination, settings)
        >>> await initial.load()
        >>> initial.attribute_sets(System.DEST)[9].attribute_set_name
        'Default'
    """

    def __init__(
        self,
        source: RelationReader,
        destination: RelationReader,
        settings: EavMigrationSettings,
    ) -> None:
        self._readers = {System.SOURCE: source, System.DEST: destination}
        self._settings = settings
        self._loaded = False
        self._entity_types: dict[tuple[System, str], Mapping[Any, EntityType]] = {}
        self._attributes: dict[System, Mapping[Any, Attribute]] = {}
        self._attribute_sets: dict[System, Mapping[int, AttributeSet]] = {}
        self._attribute_groups: dict[System, Mapping[int, AttributeGroup]] = {}

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """
        Read both systems. A second call is a no-op.

        Raises:
            SnapshotLoadError: If a relation cannot be read or a row is invalid.
        """
        if self._loaded:
            return
        for system in System:
            entity_types = await self._read(system, ENTITY_TYPE, EntityType)
            for field in ENTITY_TYPE_KEY_FIELDS:
                self._entity_types[(system, field)] = _index(
                    entity_types, lambda row, field=field: getattr(row, field)
                )

            attributes = await self._read(system, ATTRIBUTE, Attribute)
            if system is System.SOURCE:
                self._attributes[system] = _index(attributes, lambda row: row.attribute_id)
            else:
                self._attributes[system] = _index(
                    attributes, lambda row: (row.entity_type_id, row.attribute_code)
                )

            sets = await self._read(system, ATTRIBUTE_SET, AttributeSet)
            self._attribute_sets[system] = _index(sets, lambda row: row.attribute_set_id)

            groups = await self._read(system, ATTRIBUTE_GROUP, AttributeGroup)
            self._attribute_groups[system] = _index(groups, lambda row: row.attribute_group_id)

            logger.info(
                "Loaded %s snapshot: %d entity types, %d attributes, %d sets, %d groups",
                system.value,
                len(entity_types),
                len(attributes),
                len(sets),
                len(groups),
            )
        self._loaded = True

    async def _read(self, system: System, name: str, model: type[ModelT]) -> list[ModelT]:
        relation = name if system is System.SOURCE else self._settings.destination_name(name)
        reader = self._readers[system]
        rows: list[ModelT] = []
        try:
            async for row in reader.read_all(relation, self._settings.batch_size):
                rows.append(model.model_validate(row))
        except ValidationError as e:
            raise SnapshotLoadError(relation, str(e)) from e
        except StorageError as e:
            raise SnapshotLoadError(relation, str(e)) from e
        return rows

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise SnapshotLoadError(None, "snapshot accessed before load()")

    def attributes(self, system: System) -> Mapping[Any, Attribute]:
        self._require_loaded()
        return self._attributes[system]

    def attribute_sets(self, system: System) -> Mapping[int, AttributeSet]:
        self._require_loaded()
        return self._attribute_sets[system]

    def attribute_groups(self, system: System) -> Mapping[int, AttributeGroup]:
        self._require_loaded()
        return self._attribute_groups[system]

    def entity_types_keyed_by(self, system: System, field: str) -> Mapping[Any, EntityType]:
        """
        Return entity types keyed by ``entity_type_id`` or ``entity_type_code``.

        Raises:
            ValueError: For any other key field.
        """
        if field not in ENTITY_TYPE_KEY_FIELDS:
            raise ValueError(f"Entity types cannot be keyed by '{field}'")
        self._require_loaded()
        return self._entity_types[(system, field)]

    def entity_type_id(self, system: System, code: str) -> int | None:
        """Return the id ``system`` uses for entity type ``code``, if any."""
        entity_type = self.entity_types_keyed_by(system, "entity_type_code").get(code)
        return entity_type.entity_type_id if entity_type is not None else None


def _index(rows: list[ModelT], key: Callable[[ModelT], Any]) -> Mapping[Any, ModelT]:
    return MappingProxyType({key(row): row for row in rows})


__all__ = ["System", "InitialData"]
