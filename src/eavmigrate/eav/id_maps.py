"""
Id correspondence maps.

Each map records, for one relation, which id a pre-existing destination row
received when the relation was rewritten. A map is built exactly once, right
after its phase saved the relation, and is read-only from then on.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class IdCorrespondenceMap:
    """
    Write-once lookup from a pre-migration destination id to its new id.

    Example:
        >>> sets = IdCorrespondenceMap.build("eav_attribute_set", [(9, 5), (10, 12)])
        >>> sets.get(9)
        5
        >>> 11 in sets
        False
    """

    relation: str
    entries: Mapping[int, int] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, relation: str, pairs: Iterable[tuple[int, int]]) -> IdCorrespondenceMap:
        """
        Build a map from (old_id, new_id) pairs.

        Raises:
            ValueError: If an old id is mapped twice to different new ids.
        """
        entries: dict[int, int] = {}
        for old_id, new_id in pairs:
            if entries.get(old_id, new_id) != new_id:
                raise ValueError(
                    f"Conflicting mapping for {relation} id {old_id}: "
                    f"{entries[old_id]} and {new_id}"
                )
            entries[old_id] = new_id
        return cls(relation=relation, entries=MappingProxyType(entries))

    @classmethod
    def empty(cls, relation: str) -> IdCorrespondenceMap:
        return cls(relation=relation)

    def get(self, old_id: object) -> int | None:
        return self.entries.get(old_id)  # type: ignore[call-overload]

    def __contains__(self, old_id: object) -> bool:
        return old_id in self.entries

    def __getitem__(self, old_id: int) -> int:
        return self.entries[old_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class IdMaps:
    """The three correspondence maps the later phases read."""

    attribute_sets: IdCorrespondenceMap
    attribute_groups: IdCorrespondenceMap
    attributes: IdCorrespondenceMap


__all__ = ["IdCorrespondenceMap", "IdMaps"]
