"""
Exceptions for the eavmigrate package.

Exception Hierarchy:
    EavMigrationError (base)
    +-- ConfigurationError
    +-- SnapshotLoadError
    +-- NaturalKeyResolutionError
    +-- RecordTransformError
    +-- StorageError
        +-- RelationNotFoundError
        +-- BackupNotFoundError

Fatal vs. non-fatal:
    Every exception in this module aborts the running phase. Orphaned
    foreign keys found while remapping entity-attribute assignments are the
    one expected attrition case; they are dropped and counted, never raised.
    Errors raised by a storage backend itself (database driver errors)
    propagate unmodified.
"""

from __future__ import annotations

from typing import Any


class EavMigrationError(Exception):
    """Base exception for eavmigrate."""

    pass


class ConfigurationError(EavMigrationError):
    """Raised when migration settings are invalid."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        self.source = source
        location = f" ({source})" if source else ""
        super().__init__(f"Invalid migration settings{location}: {message}")


class SnapshotLoadError(EavMigrationError):
    """
    Raised when the initial data snapshot cannot be built.

    The snapshot is the baseline every id correspondence map is derived
    from, so an unreadable relation or an invalid row makes the whole run
    meaningless.

    Attributes:
        relation: Name of the relation that failed to load (if known).
        reason: Human-readable failure reason.
    """

    def __init__(self, relation: str | None, reason: str) -> None:
        self.relation = relation
        self.reason = reason
        where = f" relation '{relation}'" if relation else ""
        super().__init__(f"Failed to load initial data snapshot{where}: {reason}")


class NaturalKeyResolutionError(EavMigrationError):
    """
    Raised when a just-saved row cannot be found by its natural key.

    Id correspondence maps are rebuilt by looking up every pre-existing
    destination row in the freshly saved relation. A miss means the saved
    content diverged from what was staged.

    Attributes:
        relation: Relation being indexed.
        key: The composite natural key that was not found.
        old_id: Pre-migration id of the row being mapped (if known).
    """

    def __init__(
        self,
        relation: str,
        key: tuple[Any, ...],
        old_id: Any | None = None,
    ) -> None:
        self.relation = relation
        self.key = key
        self.old_id = old_id
        id_info = f" for old id {old_id}" if old_id is not None else ""
        super().__init__(
            f"No row with natural key {key!r} found in '{relation}'{id_info} after save"
        )


class RecordTransformError(EavMigrationError):
    """
    Raised when a field rule cannot be applied to a record.

    Attributes:
        relation: Destination relation of the transform.
        field: Field the failing rule targets (if known).
        reason: Human-readable failure reason.
    """

    def __init__(self, relation: str, field: str | None, reason: str) -> None:
        self.relation = relation
        self.field = field
        self.reason = reason
        field_info = f" field '{field}'" if field else ""
        super().__init__(f"Transform into '{relation}'{field_info} failed: {reason}")


class StorageError(EavMigrationError):
    """Raised when a relation store operation fails."""

    pass


class RelationNotFoundError(StorageError):
    """Raised when a relation does not exist in a store."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Relation not found: {name}")


class BackupNotFoundError(StorageError):
    """Raised when rolling back a relation that was never backed up."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No backup exists for relation: {name}")


__all__ = [
    "EavMigrationError",
    "ConfigurationError",
    "SnapshotLoadError",
    "NaturalKeyResolutionError",
    "RecordTransformError",
    "StorageError",
    "RelationNotFoundError",
    "BackupNotFoundError",
]
