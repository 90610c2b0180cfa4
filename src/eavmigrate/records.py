"""
Relation and record value types.

A Relation describes one table-like collection: its name, its ordered field
list and the field holding its primary key. A Record is a field to value
mapping bound to one relation. Stores return and accept plain dictionaries;
the pipeline wraps them in Records so field access is checked against the
relation it belongs to.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Relation:
    """
    Metadata for a relation (table).

    Attributes:
        name: Relation name as known to its store.
        fields: Ordered field names.
        primary_key: Field holding the system-local numeric id, or None for
            relations without a surrogate key.

    Example:
        >>> relation = Relation(
        ...     name="eav_attribute_set",
        ...     fields=("attribute_set_id", "entity_type_id", "attribute_set_name"),
        ...     primary_key="attribute_set_id",
        ... )
        >>> relation.empty_row()["attribute_set_name"] is None
        True
    """

    name: str
    fields: tuple[str, ...]
    primary_key: str | None = None

    def __post_init__(self) -> None:
        if self.primary_key is not None and self.primary_key not in self.fields:
            raise ValueError(
                f"Primary key '{self.primary_key}' is not a field of relation '{self.name}'"
            )

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def empty_row(self) -> dict[str, Any]:
        """Return a row with every field set to None."""
        return dict.fromkeys(self.fields)

    def normalize(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Return a row with exactly this relation's fields, missing ones as None."""
        return {name: data.get(name) for name in self.fields}


class Record:
    """
    A row scoped to one relation.

    Assigning a field the relation does not declare raises KeyError; reading
    one returns None, mirroring how optional columns behave across the two
    schema generations.
    """

    __slots__ = ("_relation", "_data")

    def __init__(self, relation: Relation, data: Mapping[str, Any] | None = None) -> None:
        self._relation = relation
        self._data = relation.normalize(data or {})

    @property
    def relation(self) -> Relation:
        return self._relation

    @property
    def fields(self) -> tuple[str, ...]:
        return self._relation.fields

    def get(self, name: str, default: Any = None) -> Any:
        value = self._data.get(name)
        return default if value is None else value

    def __getitem__(self, name: str) -> Any:
        return self._data.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self._data:
            raise KeyError(f"Field '{name}' is not defined on relation '{self._relation.name}'")
        self._data[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self._relation.name == other._relation.name and self._data == other._data

    def __repr__(self) -> str:
        return f"Record({self._relation.name}, {self._data!r})"

    def update(self, data: Mapping[str, Any]) -> None:
        """Set every field of ``data`` that the relation declares."""
        for name, value in data.items():
            if name in self._data:
                self._data[name] = value

    def key(self, fields: Iterable[str]) -> tuple[Any, ...]:
        return tuple(self._data.get(name) for name in fields)

    def clear_primary_key(self) -> None:
        if self._relation.primary_key is not None:
            self._data[self._relation.primary_key] = None

    @property
    def primary_key_value(self) -> Any:
        if self._relation.primary_key is None:
            return None
        return self._data.get(self._relation.primary_key)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def copy(self) -> Record:
        return Record(self._relation, self._data)


__all__ = ["Relation", "Record"]
