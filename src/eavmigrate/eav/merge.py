"""
Composite-key merge of transformed source rows against a destination baseline.

For every source row the merge computes its key on the destination side. If
a baseline row has that key, the new record is seeded from it and the
baseline row is consumed; otherwise the record is seeded without it. The
source row is then transformed onto the seeded record. Baseline rows never
matched are returned as ``remaining`` so the caller decides what to do with
them (carry them over, renumber them, drop them).
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

from eavmigrate.records import Record

S = TypeVar("S")
B = TypeVar("B")

Key = tuple[Hashable, ...]


@dataclass(frozen=True)
class MergeOutcome(Generic[B]):
    """
    Result of merge_by_key.

    Attributes:
        merged: One record per source row, in source order
        remaining: Baseline rows no source row matched, in baseline order
    """

    merged: tuple[Record, ...]
    remaining: tuple[B, ...]


def merge_by_key(
    source_rows: Iterable[S],
    baseline: Mapping[Key, B],
    *,
    key_of: Callable[[S], Key],
    seed: Callable[[B | None], Record],
    transform: Callable[[S, Record], None],
) -> MergeOutcome[B]:
    """
    Merge source rows into a keyed baseline.

    Keys containing None never match, so such rows are always seeded with
    None. A baseline row is consumed by the first source row that matches it.
    Performs no I/O.

    Args:
        source_rows: Rows to merge, in processing order
        baseline: Composite key -> baseline row
        key_of: Computes a source row's key in the baseline's key space
        seed: Builds the starting record from the matched baseline row (or None)
        transform: Fills the seeded record from the source row

    Example:
        >>> outcome = merge_by_key(
        ...     source_records,
        ...     {(4, "sku"): existing_sku},
        ...     key_of=lambda rec: (rec["entity_type_id"], rec["attribute_code"]),
        ...     seed=lambda row: Record(relation, row),
        ...     transform=transformer.transform,
        ... )
    """
    pending = dict(baseline)
    merged: list[Record] = []
    for source_row in source_rows:
        key = key_of(source_row)
        match: B | None = None
        if None not in key:
            match = pending.pop(key, None)
        record = seed(match)
        transform(source_row, record)
        merged.append(record)
    return MergeOutcome(merged=tuple(merged), remaining=tuple(pending.values()))


__all__ = ["Key", "MergeOutcome", "merge_by_key"]
