"""
Relation stores.

- RelationReader / DestinationStore: the interfaces the pipeline consumes
- InMemoryRelationStore: dictionary-backed store for tests and preloaded data
- SQLAlchemyRelationStore: PostgreSQL or SQLite through SQLAlchemy's async API
"""

from eavmigrate.stores.in_memory import InMemoryRelationStore
from eavmigrate.stores.interface import DestinationStore, RelationReader, Row
from eavmigrate.stores.sqlalchemy import BACKUP_SUFFIX, SQLAlchemyRelationStore

__all__ = [
    "Row",
    "RelationReader",
    "DestinationStore",
    "InMemoryRelationStore",
    "SQLAlchemyRelationStore",
    "BACKUP_SUFFIX",
]
