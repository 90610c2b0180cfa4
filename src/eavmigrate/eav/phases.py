"""
The four phases of the EAV migration.

Phases run in strict dependency order, each one reading the results of the
phases before it:

    AttributeSetPhase      sets, then groups        -> set map, group map
    AttributePhase         attributes               -> attribute map
    EntityAttributePhase   set/group/attribute links   (terminal)
    MappedDocumentPhase    merge-by-key relations      (terminal)

Every destination relation is replaced wholesale: backup, clear, save the
full staged content. Rows that originate in the source keep their source
primary key; destination-only rows are saved with the key cleared and get a
fresh one. Id maps are then rebuilt by finding each pre-existing destination
row in the saved relation by its natural key.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass, field

from eavmigrate.config import (
    ATTRIBUTE,
    ATTRIBUTE_GROUP,
    ATTRIBUTE_SET,
    ENTITY_ATTRIBUTE,
    ENTITY_TYPE,
    EavMigrationSettings,
    MappedDocument,
)
from eavmigrate.eav.entity_types import EntityTypeTranslator, TranslationDirection
from eavmigrate.eav.id_maps import IdCorrespondenceMap, IdMaps
from eavmigrate.eav.merge import Key, merge_by_key
from eavmigrate.eav.patches import (
    ATTRIBUTE_ADDITIONS,
    ATTRIBUTE_MOVES,
    DesignAttributes,
    GroupIndex,
    add_attribute_to_group,
    add_supplemental_groups,
    apply_design_attributes,
    move_attribute_to_group,
)
from eavmigrate.eav.snapshot import InitialData, System
from eavmigrate.exceptions import NaturalKeyResolutionError
from eavmigrate.metrics import EavMigrationMetrics
from eavmigrate.observability import ATTR_RELATION, ATTR_ROW_COUNT, Tracer
from eavmigrate.records import Record, Relation
from eavmigrate.stores.interface import DestinationStore, RelationReader
from eavmigrate.transform import TransformerFactory

logger = logging.getLogger(__name__)

ATTRIBUTE_SET_KEY = ("entity_type_id", "attribute_set_name")
ATTRIBUTE_GROUP_KEY = ("attribute_set_id", "attribute_group_name")
ATTRIBUTE_KEY = ("entity_type_id", "attribute_code")
ASSIGNMENT_KEY = ("attribute_set_id", "attribute_id")


@dataclass(frozen=True)
class PhaseContext:
    """Collaborators shared by every phase of one run."""

    source: RelationReader
    destination: DestinationStore
    settings: EavMigrationSettings
    initial_data: InitialData
    translator: EntityTypeTranslator
    transformers: TransformerFactory
    metrics: EavMigrationMetrics
    tracer: Tracer
    advance: Callable[[str], None]


@dataclass(frozen=True)
class AttributeSetPhaseResult:
    """
    Output of the attribute set and group phase.

    Attributes:
        attribute_sets: Old destination set id -> new set id
        attribute_groups: Old destination group id -> new group id
        supplemental_groups: The supplemental group rows as saved
        product_set_ids: Saved attribute sets of the product entity type
    """

    attribute_sets: IdCorrespondenceMap
    attribute_groups: IdCorrespondenceMap
    supplemental_groups: tuple[Record, ...]
    product_set_ids: tuple[int, ...]


@dataclass(frozen=True)
class AttributePhaseResult:
    """
    Output of the attribute phase.

    Attributes:
        attributes: Old destination attribute id -> new attribute id
        ignored_ids: Source ids of attributes on the ignore list; rows
            referencing them are never migrated
    """

    attributes: IdCorrespondenceMap
    ignored_ids: frozenset[int] = frozenset()

    @property
    def ignored(self) -> int:
        return len(self.ignored_ids)


@dataclass(frozen=True)
class EntityAttributePhaseResult:
    saved: int
    orphans_dropped: int
    superseded: int = 0


@dataclass(frozen=True)
class MappedDocumentPhaseResult:
    saved: dict[str, int]
    dropped: dict[str, int] = field(default_factory=dict)


class Phase:
    """Shared plumbing: relation lookup, reads, and relation replacement."""

    name = "phase"

    def __init__(self, context: PhaseContext) -> None:
        self._ctx = context

    async def _relations(self, source_name: str) -> tuple[Relation, Relation]:
        source = await self._ctx.source.get_relation(source_name)
        destination = await self._destination_relation(source_name)
        return source, destination

    async def _destination_relation(self, source_name: str) -> Relation:
        return await self._ctx.destination.get_relation(
            self._ctx.settings.destination_name(source_name)
        )

    async def _read_source(self, relation: Relation) -> list[Record]:
        batch_size = self._ctx.settings.batch_size
        return [
            Record(relation, row)
            async for row in self._ctx.source.read_all(relation.name, batch_size)
        ]

    async def _read_destination(self, relation: Relation) -> list[Record]:
        batch_size = self._ctx.settings.batch_size
        return [
            Record(relation, row)
            async for row in self._ctx.destination.read_all(relation.name, batch_size)
        ]

    async def _replace(self, relation: Relation, *batches: Sequence[Record]) -> int:
        """Backup, clear and save ``relation``; batches are saved in order."""
        destination = self._ctx.destination
        saved = 0
        with self._ctx.tracer.span(
            "eavmigrate.phase.replace",
            {ATTR_RELATION: relation.name, ATTR_ROW_COUNT: sum(len(batch) for batch in batches)},
        ):
            await destination.backup(relation.name)
            await destination.clear(relation.name)
            for batch in batches:
                rows = [record.to_dict() for record in batch]
                saved += await destination.save(relation.name, rows)
        self._ctx.metrics.record_rows_saved(relation.name, saved)
        logger.info("Saved %d rows to %s", saved, relation.name)
        return saved

    def _to_dest(self, entity_type_id: int | None) -> int | None:
        return self._ctx.translator.translate(entity_type_id, TranslationDirection.SOURCE_TO_DEST)

    def _to_result(self, entity_type_id: int | None) -> int | None:
        """Renormalize a destination entity type id into result numbering."""
        return self._ctx.translator.translate(entity_type_id, TranslationDirection.DEST_TO_SOURCE)

    def _product_entity_type_ids(self) -> tuple[int | None, int | None]:
        """Product entity type id as (result numbering, pre-migration destination)."""
        code = self._ctx.settings.product_entity_type_code
        initial = self._ctx.initial_data
        dest_id = initial.entity_type_id(System.DEST, code)
        source_id = initial.entity_type_id(System.SOURCE, code)
        return (source_id if source_id is not None else dest_id), dest_id

    def _destination_attribute_id(self, source_attribute_id: int | None) -> int | None:
        """Find the pre-migration destination attribute matching a source attribute."""
        initial = self._ctx.initial_data
        attribute = initial.attributes(System.SOURCE).get(source_attribute_id)
        if attribute is None:
            return None
        key = (self._to_dest(attribute.entity_type_id), attribute.attribute_code)
        match = initial.attributes(System.DEST).get(key)
        return match.attribute_id if match is not None else None


def _index(records: Iterable[Record], fields: Sequence[str]) -> dict[Key, Record]:
    return {record.key(fields): record for record in records}


def _resolve(
    index: dict[Key, Record],
    relation: Relation,
    key: Key,
    old_id: int | None = None,
) -> Record:
    try:
        return index[key]
    except KeyError:
        logger.error("Natural key %r for %s id %s not found after save", key, relation.name, old_id)
        raise NaturalKeyResolutionError(relation.name, key, old_id) from None


class AttributeSetPhase(Phase):
    """
    Migrates attribute sets, then attribute groups.

    A destination set or group whose natural key matches a source row is
    replaced by the transformed source row; the others are carried over
    with a fresh id. Every product attribute set receives the configured
    supplemental groups.
    """

    name = "attribute_sets"

    async def run(self) -> AttributeSetPhaseResult:
        set_map, product_set_ids = await self._migrate_sets()
        self._ctx.advance(ATTRIBUTE_SET)
        group_map, supplemental = await self._migrate_groups(set_map, product_set_ids)
        self._ctx.advance(ATTRIBUTE_GROUP)
        return AttributeSetPhaseResult(
            attribute_sets=set_map,
            attribute_groups=group_map,
            supplemental_groups=supplemental,
            product_set_ids=product_set_ids,
        )

    async def _migrate_sets(self) -> tuple[IdCorrespondenceMap, tuple[int, ...]]:
        source_relation, relation = await self._relations(ATTRIBUTE_SET)
        transformer = self._ctx.transformers(source_relation, relation)
        existing = self._ctx.initial_data.attribute_sets(System.DEST)

        outcome = merge_by_key(
            await self._read_source(source_relation),
            {(s.entity_type_id, s.attribute_set_name): s for s in existing.values()},
            key_of=lambda record: (
                self._to_dest(record["entity_type_id"]),
                record["attribute_set_name"],
            ),
            seed=lambda _: Record(relation),
            transform=transformer.transform,
        )
        carried = []
        for attribute_set in outcome.remaining:
            record = Record(relation, attribute_set.to_record())
            record.clear_primary_key()
            record["entity_type_id"] = self._to_result(attribute_set.entity_type_id)
            carried.append(record)
        logger.info(
            "Staged %d source and %d destination-only attribute sets",
            len(outcome.merged),
            len(carried),
        )
        await self._replace(relation, [*outcome.merged, *carried])

        saved = await self._read_destination(relation)
        index = _index(saved, ATTRIBUTE_SET_KEY)
        pairs = []
        for old_id, attribute_set in existing.items():
            key = (self._to_result(attribute_set.entity_type_id), attribute_set.attribute_set_name)
            pairs.append((old_id, _resolve(index, relation, key, old_id).primary_key_value))
        set_map = IdCorrespondenceMap.build(relation.name, pairs)

        product_type_id, _ = self._product_entity_type_ids()
        product_set_ids: tuple[int, ...] = ()
        if product_type_id is not None:
            product_set_ids = tuple(
                record.primary_key_value
                for record in saved
                if record["entity_type_id"] == product_type_id
            )
        return set_map, product_set_ids

    async def _migrate_groups(
        self,
        set_map: IdCorrespondenceMap,
        product_set_ids: tuple[int, ...],
    ) -> tuple[IdCorrespondenceMap, tuple[Record, ...]]:
        source_relation, relation = await self._relations(ATTRIBUTE_GROUP)
        set_relation = await self._destination_relation(ATTRIBUTE_SET)
        transformer = self._ctx.transformers(source_relation, relation)
        existing = self._ctx.initial_data.attribute_groups(System.DEST)

        new_set_ids: dict[int, int] = {}
        for group in existing.values():
            new_set_id = set_map.get(group.attribute_set_id)
            if new_set_id is None:
                raise NaturalKeyResolutionError(
                    set_relation.name, (group.attribute_set_id,), group.attribute_group_id
                )
            new_set_ids[group.attribute_group_id] = new_set_id

        outcome = merge_by_key(
            await self._read_source(source_relation),
            {
                (new_set_ids[group.attribute_group_id], group.attribute_group_name): group
                for group in existing.values()
            },
            key_of=lambda record: record.key(ATTRIBUTE_GROUP_KEY),
            seed=lambda _: Record(relation),
            transform=transformer.transform,
        )
        carried = []
        for group in outcome.remaining:
            record = Record(relation, group.to_record())
            record.clear_primary_key()
            record["attribute_set_id"] = new_set_ids[group.attribute_group_id]
            carried.append(record)

        staged, added = add_supplemental_groups(
            [*outcome.merged, *carried],
            product_set_ids,
            self._ctx.settings.supplemental_groups,
            relation,
        )
        logger.info(
            "Staged %d source, %d destination-only and %d supplemental attribute groups",
            len(outcome.merged),
            len(carried),
            len(added),
        )
        await self._replace(relation, staged)

        index = _index(await self._read_destination(relation), ATTRIBUTE_GROUP_KEY)
        pairs = []
        for old_id, group in existing.items():
            key = (new_set_ids[old_id], group.attribute_group_name)
            pairs.append((old_id, _resolve(index, relation, key, old_id).primary_key_value))
        supplemental = tuple(
            _resolve(index, relation, record.key(ATTRIBUTE_GROUP_KEY))
            for record in added
        )
        return IdCorrespondenceMap.build(relation.name, pairs), supplemental


class AttributePhase(Phase):
    """
    Migrates attributes.

    A source attribute matching a destination attribute by (entity type,
    code) is seeded from it, so destination-only columns survive, and then
    overwritten by the transform.
    """

    name = "attributes"

    async def run(self) -> AttributePhaseResult:
        source_relation, relation = await self._relations(ATTRIBUTE)
        transformer = self._ctx.transformers(source_relation, relation)
        existing = self._ctx.initial_data.attributes(System.DEST)

        ignored_codes = self._ctx.settings.ignored_attributes
        source_records = await self._read_source(source_relation)
        kept = [record for record in source_records if record["attribute_code"] not in ignored_codes]
        ignored_ids = frozenset(
            record["attribute_id"]
            for record in source_records
            if record["attribute_code"] in ignored_codes
        )
        if ignored_ids:
            logger.info("Skipping %d ignored source attributes", len(ignored_ids))

        outcome = merge_by_key(
            kept,
            existing,
            key_of=lambda record: (
                self._to_dest(record["entity_type_id"]),
                record["attribute_code"],
            ),
            seed=lambda attribute: (
                Record(relation, attribute.to_record())
                if attribute is not None
                else Record(relation)
            ),
            transform=transformer.transform,
        )
        carried = []
        for attribute in outcome.remaining:
            record = Record(relation, attribute.to_record())
            record.clear_primary_key()
            record["entity_type_id"] = self._to_result(attribute.entity_type_id)
            carried.append(record)
        logger.info(
            "Staged %d source and %d destination-only attributes",
            len(outcome.merged),
            len(carried),
        )
        await self._replace(relation, [*outcome.merged, *carried])

        index = _index(await self._read_destination(relation), ATTRIBUTE_KEY)
        pairs = []
        for attribute in existing.values():
            key = (self._to_result(attribute.entity_type_id), attribute.attribute_code)
            resolved = _resolve(index, relation, key, attribute.attribute_id)
            pairs.append((attribute.attribute_id, resolved.primary_key_value))
        self._ctx.advance(ATTRIBUTE)
        return AttributePhaseResult(
            attributes=IdCorrespondenceMap.build(relation.name, pairs),
            ignored_ids=ignored_ids,
        )


class EntityAttributePhase(Phase):
    """
    Migrates entity-attribute assignments.

    Pre-existing destination assignments are remapped through the three id
    maps. One whose attribute, set or group has no mapping is an orphan and
    is dropped, as is any source assignment of an ignored attribute. The
    structural patches run on the staged result.
    """

    name = "entity_attributes"

    async def run(
        self,
        id_maps: IdMaps,
        sets_result: AttributeSetPhaseResult,
        ignored_attribute_ids: frozenset[int] = frozenset(),
    ) -> EntityAttributePhaseResult:
        source_relation, relation = await self._relations(ENTITY_ATTRIBUTE)
        transformer = self._ctx.transformers(source_relation, relation)

        orphans = 0
        superseded = 0
        staged: list[Record] = []
        for source_record in await self._read_source(source_relation):
            if source_record["attribute_id"] in ignored_attribute_ids:
                orphans += 1
                logger.debug(
                    "Dropping source assignment %s of ignored attribute %s",
                    source_record.primary_key_value,
                    source_record["attribute_id"],
                )
                continue
            record = Record(relation)
            transformer.transform(source_record, record)
            staged.append(record)

        migrated = {record.key(ASSIGNMENT_KEY) for record in staged}
        for existing in await self._read_destination(relation):
            remapped = self._remap(existing, id_maps)
            if remapped is None:
                orphans += 1
                logger.debug(
                    "Dropping orphaned assignment %s (attribute %s, set %s, group %s)",
                    existing.primary_key_value,
                    existing["attribute_id"],
                    existing["attribute_set_id"],
                    existing["attribute_group_id"],
                )
                continue
            if remapped.key(ASSIGNMENT_KEY) in migrated:
                superseded += 1
                continue
            staged.append(remapped)
        if orphans:
            logger.info("Dropped %d orphaned entity-attribute assignments", orphans)
        if superseded:
            logger.info("%d destination assignments superseded by source assignments", superseded)
        self._ctx.metrics.record_orphans_dropped(orphans)

        staged = await self._apply_patches(staged, relation, sets_result)
        saved = await self._replace(relation, staged)
        self._ctx.advance(ENTITY_ATTRIBUTE)
        return EntityAttributePhaseResult(
            saved=saved,
            orphans_dropped=orphans,
            superseded=superseded,
        )

    def _remap(self, record: Record, id_maps: IdMaps) -> Record | None:
        attribute_id = id_maps.attributes.get(record["attribute_id"])
        set_id = id_maps.attribute_sets.get(record["attribute_set_id"])
        group_id = id_maps.attribute_groups.get(record["attribute_group_id"])
        if attribute_id is None or set_id is None or group_id is None:
            return None
        remapped = record.copy()
        remapped["attribute_id"] = attribute_id
        remapped["attribute_set_id"] = set_id
        remapped["attribute_group_id"] = group_id
        remapped["entity_type_id"] = self._to_result(record["entity_type_id"])
        remapped.clear_primary_key()
        return remapped

    async def _apply_patches(
        self,
        staged: list[Record],
        relation: Relation,
        sets_result: AttributeSetPhaseResult,
    ) -> list[Record]:
        attributes = await self._read_destination(await self._destination_relation(ATTRIBUTE))
        groups = await self._read_destination(await self._destination_relation(ATTRIBUTE_GROUP))

        product_type_id, product_type_dest_id = self._product_entity_type_ids()
        design = DesignAttributes.resolve(attributes, product_type_id, product_type_dest_id)
        schedule_code = self._ctx.settings.design_group_code
        if schedule_code is not None:
            schedule_groups = [
                group
                for group in sets_result.supplemental_groups
                if group["attribute_group_code"] == schedule_code
            ]
            staged = apply_design_attributes(
                staged,
                design,
                schedule_groups,
                sets_result.product_set_ids,
                relation,
            )

        attribute_codes = {record["attribute_id"]: record["attribute_code"] for record in attributes}
        group_index = GroupIndex.from_records(groups)
        for attribute_code, group_code in ATTRIBUTE_MOVES:
            staged = move_attribute_to_group(
                staged,
                attribute_code,
                group_code,
                attribute_codes=attribute_codes,
                groups=group_index,
            )
        for attribute_code, group_code in ATTRIBUTE_ADDITIONS:
            staged = add_attribute_to_group(
                staged,
                attribute_code,
                group_code,
                attribute_codes=attribute_codes,
                groups=group_index,
            )
        return staged


class MappedDocumentPhase(Phase):
    """
    Merges relations keyed by a configured composite key.

    Source rows are merged onto destination rows with the same key. A key
    field named attribute_id is resolved through the attributes' natural
    keys, because source attribute ids mean nothing in the destination.
    Merged rows are saved first; destination rows no source row matched are
    saved in a second pass with their attribute_id remapped where the
    attribute id map knows it. Source rows of ignored attributes are dropped
    and counted per relation.
    """

    name = "mapped_documents"

    async def run(
        self,
        id_maps: IdMaps,
        ignored_attribute_ids: frozenset[int] = frozenset(),
    ) -> MappedDocumentPhaseResult:
        saved: dict[str, int] = {}
        dropped: dict[str, int] = {}
        for document in self._ctx.settings.mapped_documents:
            relation, count, skipped = await self._merge(document, id_maps, ignored_attribute_ids)
            saved[relation] = count
            if skipped:
                dropped[relation] = skipped
            self._ctx.advance(document.relation)
        self._ctx.metrics.record_orphans_dropped(sum(dropped.values()))
        return MappedDocumentPhaseResult(saved=saved, dropped=dropped)

    def _destination_key(self, record: Record, key_fields: Sequence[str]) -> Key:
        return tuple(
            self._destination_attribute_id(record[field])
            if field == "attribute_id"
            else record[field]
            for field in key_fields
        )

    async def _merge(
        self,
        document: MappedDocument,
        id_maps: IdMaps,
        ignored_attribute_ids: frozenset[int],
    ) -> tuple[str, int, int]:
        source_relation, relation = await self._relations(document.relation)
        transformer = self._ctx.transformers(source_relation, relation)

        source_records = await self._read_source(source_relation)
        if source_relation.has_field("attribute_id") and ignored_attribute_ids:
            kept = [
                record
                for record in source_records
                if record["attribute_id"] not in ignored_attribute_ids
            ]
        else:
            kept = source_records
        skipped = len(source_records) - len(kept)
        if skipped:
            logger.info(
                "Dropped %d %s rows of ignored attributes", skipped, source_relation.name
            )

        baseline: dict[Key, Record] = {}
        for position, record in enumerate(await self._read_destination(relation)):
            key: tuple[Hashable, ...] = record.key(document.key_fields)
            if None in key:
                # Unmatchable, but still carried over
                key = (None, position)
            baseline[key] = record

        outcome = merge_by_key(
            kept,
            baseline,
            key_of=lambda record: self._destination_key(record, document.key_fields),
            seed=lambda existing: existing.copy() if existing is not None else Record(relation),
            transform=transformer.transform,
        )
        merged = list(outcome.merged)
        remaining = []
        for existing in outcome.remaining:
            record = existing.copy()
            attribute_id = id_maps.attributes.get(record["attribute_id"])
            if attribute_id is not None:
                record["attribute_id"] = attribute_id
            remaining.append(record)

        if document.relation == ENTITY_TYPE:
            for record in (*merged, *remaining):
                default_set_id = id_maps.attribute_sets.get(record["default_attribute_set_id"])
                if default_set_id is not None:
                    record["default_attribute_set_id"] = default_set_id

        logger.info(
            "Merged %d rows into %s, %d destination rows carried over",
            len(merged),
            relation.name,
            len(remaining),
        )
        return relation.name, await self._replace(relation, merged, remaining), skipped


__all__ = [
    "PhaseContext",
    "AttributeSetPhaseResult",
    "AttributePhaseResult",
    "EntityAttributePhaseResult",
    "MappedDocumentPhaseResult",
    "Phase",
    "AttributeSetPhase",
    "AttributePhase",
    "EntityAttributePhase",
    "MappedDocumentPhase",
]
