"""
Fixtures for the SQLite integration tests.

Each fixture creates a SQLite database file in the test's temporary
directory, creates the sample EAV relations in it and fills them with the
sample rows from tests.fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from eavmigrate.records import Relation
from tests.fixtures import DEST_RELATIONS, DEST_ROWS, SOURCE_RELATIONS, SOURCE_ROWS

TEXT_FIELDS = frozenset(
    {
        "entity_type_code",
        "attribute_code",
        "frontend_label",
        "note",
        "attribute_set_name",
        "attribute_group_name",
        "attribute_group_code",
        "tab_group_code",
        "input_filter",
    }
)


def create_table_sql(relation: Relation) -> str:
    """Return CREATE TABLE DDL for a sample relation."""
    columns = []
    for field in relation.fields:
        column = f"{field} {'TEXT' if field in TEXT_FIELDS else 'INTEGER'}"
        if field == relation.primary_key:
            column += " PRIMARY KEY"
        columns.append(column)
    return f"CREATE TABLE {relation.name} ({', '.join(columns)})"


async def create_relations(
    engine: AsyncEngine,
    relations: Mapping[str, Relation],
    rows: Mapping[str, Sequence[Mapping[str, Any]]],
) -> None:
    """Create ``relations`` in the database behind ``engine`` and insert ``rows``."""
    async with engine.begin() as conn:
        for name, relation in relations.items():
            await conn.execute(text(create_table_sql(relation)))
            data = [relation.normalize(row) for row in rows.get(name, ())]
            if data:
                placeholders = ", ".join(f":{field}" for field in relation.fields)
                await conn.execute(
                    text(
                        f"INSERT INTO {name} ({', '.join(relation.fields)}) "
                        f"VALUES ({placeholders})"
                    ),
                    data,
                )


@pytest_asyncio.fixture
async def source_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite engine holding the sample source relations."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'source.db'}")
    await create_relations(engine, SOURCE_RELATIONS, SOURCE_ROWS)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def destination_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite engine holding the sample destination relations."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'destination.db'}")
    await create_relations(engine, DEST_RELATIONS, DEST_ROWS)
    yield engine
    await engine.dispose()
