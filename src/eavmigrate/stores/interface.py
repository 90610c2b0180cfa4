"""
Relation store interfaces.

The migration reads its source through a RelationReader and writes its
destination through a DestinationStore. Both exchange plain dictionaries;
the pipeline wraps them in Records bound to the Relation returned by
``get_relation``.

Destination relations are replaced wholesale: the pipeline takes a backup,
clears the relation and saves the complete staged content. ``rollback``
restores the latest backup, which makes a failed run recoverable to the
state before each relation was touched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from eavmigrate.records import Relation

Row = dict[str, Any]


class RelationReader(ABC):
    """
    Read access to named relations.

    Implementations raise RelationNotFoundError for unknown relation names.
    """

    @abstractmethod
    async def get_relation(self, name: str) -> Relation:
        """Return the metadata of relation ``name``."""
        pass

    @abstractmethod
    async def count(self, name: str) -> int:
        """Return the number of rows in relation ``name``."""
        pass

    @abstractmethod
    async def records(self, name: str, offset: int, limit: int) -> list[Row]:
        """
        Return one page of rows.

        Rows come back in a stable order (primary key order where the
        relation has one) so consecutive pages never overlap.

        Args:
            name: Relation name
            offset: Number of rows to skip
            limit: Maximum number of rows to return
        """
        pass

    async def read_all(self, name: str, batch_size: int = 1000) -> AsyncIterator[Row]:
        """
        Iterate over every row of a relation, reading pages of ``batch_size``.

        Example:
            >>> async for row in reader.read_all("eav_attribute", batch_size=500):
            ...     process(row)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        total = await self.count(name)
        for offset in range(0, total, batch_size):
            for row in await self.records(name, offset, batch_size):
                yield row


class DestinationStore(RelationReader):
    """
    A relation store the migration writes to.

    Writes are not atomic across relations; each relation is protected only
    by its own backup.
    """

    @abstractmethod
    async def backup(self, name: str) -> None:
        """Snapshot the current content of ``name``, replacing any earlier backup."""
        pass

    @abstractmethod
    async def clear(self, name: str) -> None:
        """Delete every row of ``name``."""
        pass

    @abstractmethod
    async def save(self, name: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert rows into ``name``.

        Rows whose primary key is None receive a fresh key greater than any
        key already present. Rows carrying a key keep it.

        Returns:
            Number of rows written
        """
        pass

    @abstractmethod
    async def rollback(self, name: str) -> None:
        """
        Restore ``name`` from its latest backup.

        Raises:
            BackupNotFoundError: If ``name`` was never backed up
        """
        pass


__all__ = [
    "Row",
    "RelationReader",
    "DestinationStore",
]
