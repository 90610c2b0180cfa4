"""
In-memory relation store.

Useful for testing and for running the migration against data that has
already been loaded into memory. All content is lost when the process
terminates.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from eavmigrate.exceptions import BackupNotFoundError, RelationNotFoundError, StorageError
from eavmigrate.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LIMIT,
    ATTR_OFFSET,
    ATTR_RELATION,
    ATTR_ROW_COUNT,
    Tracer,
    create_tracer,
)
from eavmigrate.records import Relation
from eavmigrate.stores.interface import DestinationStore, Row


class InMemoryRelationStore(DestinationStore):
    """
    Dictionary-backed implementation of DestinationStore.

    Can serve as both the source and the destination of a migration.
    Rows are copied on the way in and on the way out, so callers never
    share state with the store. Backups are deep copies.

    Fresh primary keys continue from the largest key present, counting the
    explicit keys of the batch being saved, so a batch mixing carried-over
    ids with new rows never collides.

    Example:
        >>> store = InMemoryRelationStore()
        >>> store.add_relation(
        ...     Relation("eav_attribute_set", ("attribute_set_id", "attribute_set_name"),
        ...              primary_key="attribute_set_id"),
        ...     [{"attribute_set_id": 4, "attribute_set_name": "Default"}],
        ... )
        >>> await store.count("eav_attribute_set")
        1
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._relations: dict[str, Relation] = {}
        self._rows: dict[str, list[Row]] = {}
        self._backups: dict[str, list[Row]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    def add_relation(
        self,
        relation: Relation,
        rows: Iterable[Mapping[str, Any]] = (),
    ) -> None:
        """Register a relation with its initial content, replacing any existing one."""
        self._relations[relation.name] = relation
        self._rows[relation.name] = [relation.normalize(row) for row in rows]
        self._backups.pop(relation.name, None)

    def rows(self, name: str) -> list[Row]:
        """Return a copy of the current content of ``name``."""
        self._require(name)
        return [dict(row) for row in self._rows[name]]

    def has_backup(self, name: str) -> bool:
        return name in self._backups

    def _require(self, name: str) -> Relation:
        try:
            return self._relations[name]
        except KeyError:
            raise RelationNotFoundError(name) from None

    def _span_attributes(self, name: str, operation: str) -> dict[str, Any]:
        return {
            ATTR_RELATION: name,
            ATTR_DB_SYSTEM: "memory",
            ATTR_DB_OPERATION: operation,
        }

    async def get_relation(self, name: str) -> Relation:
        return self._require(name)

    async def count(self, name: str) -> int:
        self._require(name)
        return len(self._rows[name])

    async def records(self, name: str, offset: int, limit: int) -> list[Row]:
        with self._tracer.span(
            "eavmigrate.memory_store.records",
            {**self._span_attributes(name, "SELECT"), ATTR_OFFSET: offset, ATTR_LIMIT: limit},
        ):
            self._require(name)
            return [dict(row) for row in self._rows[name][offset : offset + limit]]

    async def backup(self, name: str) -> None:
        with self._tracer.span(
            "eavmigrate.memory_store.backup",
            self._span_attributes(name, "BACKUP"),
        ):
            async with self._lock:
                self._require(name)
                self._backups[name] = copy.deepcopy(self._rows[name])

    async def clear(self, name: str) -> None:
        with self._tracer.span(
            "eavmigrate.memory_store.clear",
            self._span_attributes(name, "DELETE"),
        ):
            async with self._lock:
                self._require(name)
                self._rows[name] = []

    async def save(self, name: str, rows: Sequence[Mapping[str, Any]]) -> int:
        with self._tracer.span(
            "eavmigrate.memory_store.save",
            {**self._span_attributes(name, "INSERT"), ATTR_ROW_COUNT: len(rows)},
        ):
            async with self._lock:
                relation = self._require(name)
                staged = [relation.normalize(row) for row in rows]
                if relation.primary_key is not None:
                    self._assign_keys(relation, staged)
                self._rows[name].extend(staged)
                return len(staged)

    def _assign_keys(self, relation: Relation, staged: list[Row]) -> None:
        pk = relation.primary_key
        assert pk is not None
        taken = {row[pk] for row in self._rows[relation.name] if row[pk] is not None}
        for row in staged:
            key = row[pk]
            if key is None:
                continue
            if key in taken:
                raise StorageError(
                    f"Duplicate primary key {key!r} in relation '{relation.name}'"
                )
            taken.add(key)
        next_key = max(taken, default=0) + 1
        for row in staged:
            if row[pk] is None:
                row[pk] = next_key
                next_key += 1

    async def rollback(self, name: str) -> None:
        with self._tracer.span(
            "eavmigrate.memory_store.rollback",
            self._span_attributes(name, "RESTORE"),
        ):
            async with self._lock:
                self._require(name)
                if name not in self._backups:
                    raise BackupNotFoundError(name)
                self._rows[name] = copy.deepcopy(self._backups[name])


__all__ = ["InMemoryRelationStore"]
