"""
Shared test fixtures for the eavmigrate library.

This module provides reusable test data:
- Source and destination relation definitions (SOURCE_RELATIONS, DEST_RELATIONS)
- Sample EAV content for both systems (SOURCE_ROWS, DEST_ROWS)
- Store builders (make_store, make_source_store, make_destination_store)
- Row lookup helpers (find, find_one)

Usage:
    from tests.fixtures import (
        DEST_ROWS,
        make_destination_store,
        make_source_store,
        find_one,
    )
"""

from tests.fixtures.eav import (
    DEST_RELATIONS,
    DEST_ROWS,
    SOURCE_RELATIONS,
    SOURCE_ROWS,
    find,
    find_one,
    group_code_from_name,
    make_destination_store,
    make_source_store,
    make_store,
)

__all__ = [
    "SOURCE_RELATIONS",
    "DEST_RELATIONS",
    "SOURCE_ROWS",
    "DEST_ROWS",
    "group_code_from_name",
    "make_store",
    "make_source_store",
    "make_destination_store",
    "find",
    "find_one",
]
