"""
Record transformation between schema generations.

A record transformer maps one source record onto one destination record.
The pipeline obtains one transformer per (source relation, destination
relation) pair from a TransformerFactory, so implementations can validate
their rules once up front.

The default FieldRuleTransformer is driven by declarative FieldRules:

    1. Every source field not listed in ``ignore_source`` is copied to the
       destination field of the same name (or its ``rename`` target).
    2. Destination fields listed in ``ignore`` are never written, so they
       keep whatever the record was seeded with.
    3. ``values`` constants are written last.
    4. Field handlers, when registered, compute a destination field from the
       source record.

Source fields without a destination counterpart are dropped silently; they
are the normal difference between two schema generations.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from eavmigrate.config import EavMigrationSettings, FieldRules
from eavmigrate.exceptions import RecordTransformError
from eavmigrate.records import Record, Relation

logger = logging.getLogger(__name__)

FieldHandler = Callable[[Record], Any]
"""Computes a destination field value from the source record."""


@runtime_checkable
class RecordTransformer(Protocol):
    """Maps one source record onto one destination record in place."""

    def transform(self, source: Record, destination: Record) -> None:
        """
        Fill ``destination`` from ``source``.

        Raises:
            RecordTransformError: If a field rule cannot be applied.
        """
        ...


class TransformerFactory(Protocol):
    """Builds the transformer for a (source, destination) relation pair."""

    def __call__(self, source: Relation, destination: Relation) -> RecordTransformer: ...


class FieldRuleTransformer:
    """
    Rule-driven record transformer.

    Rules are checked against the destination relation when the transformer
    is built: a rename, constant or handler targeting a field the destination
    does not declare raises RecordTransformError immediately.

    Example:
        >>> transformer = FieldRuleTransformer(
        ...     source_relation,
        ...     destination_relation,
        ...     FieldRules(ignore=("tab_group_code",), rename={"sort": "sort_order"}),
        ... )
        >>> transformer.transform(source_record, destination_record)
    """

    def __init__(
        self,
        source: Relation,
        destination: Relation,
        rules: FieldRules | None = None,
        *,
        handlers: Mapping[str, FieldHandler] | None = None,
    ) -> None:
        self._source = source
        self._destination = destination
        self._rules = rules or FieldRules()
        self._handlers = dict(handlers or {})
        self._copies = self._build_copies()
        self._validate()

    @property
    def rules(self) -> FieldRules:
        return self._rules

    def _build_copies(self) -> tuple[tuple[str, str], ...]:
        ignored = set(self._rules.ignore) | set(self._handlers)
        copies = []
        for name in self._source.fields:
            if name in self._rules.ignore_source:
                continue
            target = self._rules.rename.get(name, name)
            if target in ignored or not self._destination.has_field(target):
                continue
            copies.append((name, target))
        return tuple(copies)

    def _validate(self) -> None:
        for source_field, target in self._rules.rename.items():
            if not self._destination.has_field(target):
                raise RecordTransformError(
                    self._destination.name,
                    target,
                    f"rename of '{source_field}' targets an unknown field",
                )
        for target in (*self._rules.values, *self._handlers):
            if not self._destination.has_field(target):
                raise RecordTransformError(self._destination.name, target, "unknown field")

    def transform(self, source: Record, destination: Record) -> None:
        for source_field, target in self._copies:
            destination[target] = source[source_field]
        for target, value in self._rules.values.items():
            destination[target] = value
        for target, handler in self._handlers.items():
            try:
                destination[target] = handler(source)
            except Exception as e:
                logger.error(
                    "Handler for %s.%s failed: %s",
                    self._destination.name,
                    target,
                    e,
                )
                raise RecordTransformError(self._destination.name, target, str(e)) from e


class FieldRuleTransformerFactory:
    """
    TransformerFactory building FieldRuleTransformers from migration settings.

    Args:
        settings: Supplies the FieldRules per destination relation.
        handlers: Optional destination relation -> {field: handler} mapping.
    """

    def __init__(
        self,
        settings: EavMigrationSettings,
        handlers: Mapping[str, Mapping[str, FieldHandler]] | None = None,
    ) -> None:
        self._settings = settings
        self._handlers = handlers or {}

    def __call__(self, source: Relation, destination: Relation) -> RecordTransformer:
        return FieldRuleTransformer(
            source,
            destination,
            self._settings.rules_for(destination.name),
            handlers=self._handlers.get(destination.name),
        )


__all__ = [
    "FieldHandler",
    "RecordTransformer",
    "TransformerFactory",
    "FieldRuleTransformer",
    "FieldRuleTransformerFactory",
]
