"""
Entity-type id translation.

Entity type ids are local to each system; the entity type code is the
stable identity. Translation looks the id up in the origin system to find
its code, then looks the code up in the target system.
"""

from __future__ import annotations

import enum
import logging

from eavmigrate.eav.snapshot import InitialData, System

logger = logging.getLogger(__name__)


class TranslationDirection(enum.Enum):
    SOURCE_TO_DEST = (System.SOURCE, System.DEST)
    DEST_TO_SOURCE = (System.DEST, System.SOURCE)

    @property
    def origin(self) -> System:
        return self.value[0]

    @property
    def target(self) -> System:
        return self.value[1]


class TranslationFallback(enum.Enum):
    """What ``translate`` returns when an id cannot be translated."""

    ORIGINAL = "original"
    NONE = "none"


class EntityTypeTranslator:
    """
    Maps entity type ids between the two systems by entity type code.

    Example:
        >>> translator = EntityTypeTranslator(initial_data)
        >>> translator.translate(4, TranslationDirection.SOURCE_TO_DEST)
        4
        >>> translator.resolve(99, TranslationDirection.SOURCE_TO_DEST) is None
        True
    """

    def __init__(self, initial_data: InitialData) -> None:
        self._initial_data = initial_data

    def resolve(self, entity_type_id: int | None, direction: TranslationDirection) -> int | None:
        """Return the target system's id, or None when either lookup misses."""
        if entity_type_id is None:
            return None
        origin = self._initial_data.entity_types_keyed_by(direction.origin, "entity_type_id")
        entity_type = origin.get(entity_type_id)
        if entity_type is None:
            logger.debug(
                "Entity type id %s unknown in %s system",
                entity_type_id,
                direction.origin.value,
            )
            return None
        target_id = self._initial_data.entity_type_id(direction.target, entity_type.entity_type_code)
        if target_id is None:
            logger.debug(
                "Entity type %s has no counterpart in %s system",
                entity_type.entity_type_code,
                direction.target.value,
            )
        return target_id

    def translate(
        self,
        entity_type_id: int | None,
        direction: TranslationDirection,
        fallback: TranslationFallback = TranslationFallback.ORIGINAL,
    ) -> int | None:
        """
        Translate an entity type id, applying ``fallback`` on a miss.

        With the default ORIGINAL fallback an untranslatable id is returned
        unchanged.
        """
        resolved = self.resolve(entity_type_id, direction)
        if resolved is None and fallback is TranslationFallback.ORIGINAL:
            return entity_type_id
        return resolved


__all__ = [
    "TranslationDirection",
    "TranslationFallback",
    "EntityTypeTranslator",
]
