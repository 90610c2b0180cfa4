"""
SQLAlchemy relation store.

Reads and replaces relations in a relational database through SQLAlchemy's
async API. PostgreSQL (asyncpg) and SQLite (aiosqlite) are supported.

Relation metadata (columns and primary key) is discovered by reflection the
first time a relation is used. Backups are kept in sibling tables named
``<relation>__backup`` so they survive the process and a rollback can be
issued by a later run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from eavmigrate.exceptions import BackupNotFoundError, RelationNotFoundError
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
from eavmigrate.stores._connection import execute_with_connection
from eavmigrate.stores.interface import DestinationStore, Row

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = "__backup"


def _reflect(sync_conn: Connection, name: str) -> Relation | None:
    inspector = inspect(sync_conn)
    if not inspector.has_table(name):
        return None
    fields = tuple(column["name"] for column in inspector.get_columns(name))
    pk_columns = inspector.get_pk_constraint(name).get("constrained_columns") or []
    # Composite keys are never auto-assigned
    primary_key = pk_columns[0] if len(pk_columns) == 1 else None
    return Relation(name=name, fields=fields, primary_key=primary_key)


def _has_table(sync_conn: Connection, name: str) -> bool:
    return inspect(sync_conn).has_table(name)


class SQLAlchemyRelationStore(DestinationStore):
    """
    DestinationStore over an AsyncEngine or AsyncConnection.

    With an AsyncEngine, every write runs in its own transaction. With an
    AsyncConnection, the caller owns the transaction and every operation
    runs on that connection.

    Example:
        >>> engine = create_async_engine("sqlite+aiosqlite:///magento.db")
        >>> store = SQLAlchemyRelationStore(engine)
        >>> relation = await store.get_relation("eav_attribute")
        >>> await store.backup("eav_attribute")
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._relations: dict[str, Relation] = {}

    @property
    def dialect_name(self) -> str:
        return self._conn.dialect.name

    def _quote(self, identifier: str) -> str:
        return self._conn.dialect.identifier_preparer.quote(identifier)

    def _columns(self, relation: Relation) -> str:
        return ", ".join(self._quote(name) for name in relation.fields)

    def _span_attributes(self, name: str, operation: str) -> dict[str, Any]:
        return {
            ATTR_RELATION: name,
            ATTR_DB_SYSTEM: self.dialect_name,
            ATTR_DB_OPERATION: operation,
        }

    async def get_relation(self, name: str) -> Relation:
        if name in self._relations:
            return self._relations[name]
        async with execute_with_connection(self._conn, transactional=False) as conn:
            relation = await conn.run_sync(_reflect, name)
        if relation is None:
            raise RelationNotFoundError(name)
        logger.debug(
            "Reflected relation %s: %d fields, primary key %s",
            name,
            len(relation.fields),
            relation.primary_key,
        )
        self._relations[name] = relation
        return relation

    async def count(self, name: str) -> int:
        relation = await self.get_relation(name)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(
                text(f"SELECT COUNT(*) FROM {self._quote(relation.name)}")
            )
            return int(result.scalar_one())

    async def records(self, name: str, offset: int, limit: int) -> list[Row]:
        relation = await self.get_relation(name)
        with self._tracer.span(
            "eavmigrate.sql_store.records",
            {**self._span_attributes(name, "SELECT"), ATTR_OFFSET: offset, ATTR_LIMIT: limit},
        ):
            query = f"SELECT {self._columns(relation)} FROM {self._quote(relation.name)}"
            if relation.primary_key is not None:
                query += f" ORDER BY {self._quote(relation.primary_key)}"
            else:
                # Composite or missing key: only a total order keeps pages stable
                query += f" ORDER BY {self._columns(relation)}"
            query += " LIMIT :limit OFFSET :offset"
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(text(query), {"limit": limit, "offset": offset})
                return [dict(row._mapping) for row in result.fetchall()]

    async def backup(self, name: str) -> None:
        relation = await self.get_relation(name)
        backup_name = self._quote(relation.name + BACKUP_SUFFIX)
        with self._tracer.span(
            "eavmigrate.sql_store.backup",
            self._span_attributes(name, "BACKUP"),
        ):
            async with execute_with_connection(self._conn) as conn:
                await conn.execute(text(f"DROP TABLE IF EXISTS {backup_name}"))
                await conn.execute(
                    text(
                        f"CREATE TABLE {backup_name} AS "
                        f"SELECT {self._columns(relation)} FROM {self._quote(relation.name)}"
                    )
                )
            logger.debug("Backed up relation %s", name)

    async def clear(self, name: str) -> None:
        relation = await self.get_relation(name)
        with self._tracer.span(
            "eavmigrate.sql_store.clear",
            self._span_attributes(name, "DELETE"),
        ):
            async with execute_with_connection(self._conn) as conn:
                await conn.execute(text(f"DELETE FROM {self._quote(relation.name)}"))

    async def save(self, name: str, rows: Sequence[Mapping[str, Any]]) -> int:
        relation = await self.get_relation(name)
        with self._tracer.span(
            "eavmigrate.sql_store.save",
            {**self._span_attributes(name, "INSERT"), ATTR_ROW_COUNT: len(rows)},
        ):
            if not rows:
                return 0
            pk = relation.primary_key
            keyed = [row for row in rows if pk is None or row.get(pk) is not None]
            unkeyed = [row for row in rows if pk is not None and row.get(pk) is None]

            async with execute_with_connection(self._conn) as conn:
                if keyed:
                    await self._insert(conn, relation, relation.fields, keyed)
                    if pk is not None and self.dialect_name == "postgresql":
                        await self._sync_sequence(conn, relation, pk)
                if unkeyed:
                    fields = tuple(field for field in relation.fields if field != pk)
                    await self._insert(conn, relation, fields, unkeyed)

            logger.debug(
                "Saved %d rows to %s (%d with new keys)",
                len(rows),
                name,
                len(unkeyed),
            )
            return len(rows)

    async def _insert(
        self,
        conn: AsyncConnection,
        relation: Relation,
        fields: tuple[str, ...],
        rows: Sequence[Mapping[str, Any]],
    ) -> None:
        # Positional bind names keep arbitrary column names out of the parameter syntax
        binds = [f"p{index}" for index in range(len(fields))]
        columns = ", ".join(self._quote(name) for name in fields)
        placeholders = ", ".join(f":{bind}" for bind in binds)
        query = text(
            f"INSERT INTO {self._quote(relation.name)} ({columns}) VALUES ({placeholders})"
        )
        params = [
            {bind: row.get(field) for bind, field in zip(binds, fields, strict=True)}
            for row in rows
        ]
        await conn.execute(query, params)

    async def _sync_sequence(self, conn: AsyncConnection, relation: Relation, pk: str) -> None:
        # Explicit keys do not advance a serial sequence
        await conn.execute(
            text(
                "SELECT setval(pg_get_serial_sequence(:table, :column), "
                f"(SELECT COALESCE(MAX({self._quote(pk)}), 0) + 1 "
                f"FROM {self._quote(relation.name)}), false)"
            ),
            {"table": relation.name, "column": pk},
        )

    async def rollback(self, name: str) -> None:
        relation = await self.get_relation(name)
        backup_table = relation.name + BACKUP_SUFFIX
        with self._tracer.span(
            "eavmigrate.sql_store.rollback",
            self._span_attributes(name, "RESTORE"),
        ):
            async with execute_with_connection(self._conn) as conn:
                if not await conn.run_sync(_has_table, backup_table):
                    raise BackupNotFoundError(name)
                columns = self._columns(relation)
                await conn.execute(text(f"DELETE FROM {self._quote(relation.name)}"))
                await conn.execute(
                    text(
                        f"INSERT INTO {self._quote(relation.name)} ({columns}) "
                        f"SELECT {columns} FROM {self._quote(backup_table)}"
                    )
                )
                if relation.primary_key is not None and self.dialect_name == "postgresql":
                    await self._sync_sequence(conn, relation, relation.primary_key)
            logger.info("Restored relation %s from %s", name, backup_table)


__all__ = ["BACKUP_SUFFIX", "SQLAlchemyRelationStore"]
