"""
EAV migration pipeline.

EavMigrationPipeline runs the four phases in order against one source and
one destination, reports progress per relation, and can roll every
destination relation back to its latest backup.

Example:
    >>> pipeline = EavMigrationPipeline(
    ...     source=InMemoryRelationStore(),
    ...     destination=SQLAlchemyRelationStore(engine),
    ...     settings=EavMigrationSettings.from_file("eav.json"),
    ...     on_progress=lambda p: print(f"{p.relation}: {p.completed}/{p.total}"),
    ... )
    >>> try:
    ...     await pipeline.perform()
    ... except EavMigrationError:
    ...     await pipeline.rollback()
    ...     raise
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from eavmigrate.config import EavMigrationSettings
from eavmigrate.eav.entity_types import EntityTypeTranslator
from eavmigrate.eav.id_maps import IdMaps
from eavmigrate.eav.phases import (
    AttributePhase,
    AttributePhaseResult,
    AttributeSetPhase,
    AttributeSetPhaseResult,
    EntityAttributePhase,
    EntityAttributePhaseResult,
    MappedDocumentPhase,
    MappedDocumentPhaseResult,
    PhaseContext,
)
from eavmigrate.eav.snapshot import InitialData
from eavmigrate.metrics import EavMigrationMetrics
from eavmigrate.observability import (
    ATTR_ITERATION_COUNT,
    ATTR_PHASE,
    ATTR_RELATION,
    Tracer,
    create_tracer,
)
from eavmigrate.stores.interface import DestinationStore, RelationReader
from eavmigrate.transform import FieldRuleTransformerFactory, TransformerFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PipelineProgress:
    """
    Progress after one relation has been processed.

    Attributes:
        relation: Source name of the relation just saved
        completed: Relations processed so far, this one included
        total: Iteration count of the pipeline
    """

    relation: str
    completed: int
    total: int

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return min(100.0, self.completed * 100.0 / self.total)


ProgressCallback = Callable[[PipelineProgress], None]


@dataclass(frozen=True)
class EavMigrationResult:
    """Phase results of a completed run."""

    attribute_sets: AttributeSetPhaseResult
    attributes: AttributePhaseResult
    entity_attributes: EntityAttributePhaseResult
    mapped_documents: MappedDocumentPhaseResult

    @property
    def id_maps(self) -> IdMaps:
        return IdMaps(
            attribute_sets=self.attribute_sets.attribute_sets,
            attribute_groups=self.attribute_sets.attribute_groups,
            attributes=self.attributes.attributes,
        )


class EavMigrationPipeline:
    """
    Orchestrates the EAV migration step.

    perform() loads the initial data snapshot and runs, strictly in order:
    attribute sets and groups, attributes, entity-attribute assignments and
    the mapped documents. Any error aborts the run and propagates; the
    destination can then be restored with rollback().

    Args:
        source: Reader for the source system
        destination: Store for the destination system
        settings: Step configuration (defaults reproduce the standard step)
        transformers: Builds record transformers; defaults to field rules
            from ``settings``
        on_progress: Called once per relation processed
        metrics: Metrics container (a fresh one by default)
        tracer: Optional custom Tracer instance
        enable_tracing: Create an OpenTelemetry tracer when available
            (ignored if tracer is provided)
    """

    def __init__(
        self,
        source: RelationReader,
        destination: DestinationStore,
        settings: EavMigrationSettings | None = None,
        *,
        transformers: TransformerFactory | None = None,
        on_progress: ProgressCallback | None = None,
        metrics: EavMigrationMetrics | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._source = source
        self._destination = destination
        self._settings = settings or EavMigrationSettings()
        self._transformers = transformers or FieldRuleTransformerFactory(self._settings)
        self._on_progress = on_progress
        self._metrics = metrics or EavMigrationMetrics()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._initial_data = InitialData(source, destination, self._settings)
        self._completed = 0
        self._result: EavMigrationResult | None = None

    @property
    def settings(self) -> EavMigrationSettings:
        return self._settings

    @property
    def metrics(self) -> EavMigrationMetrics:
        return self._metrics

    @property
    def initial_data(self) -> InitialData:
        return self._initial_data

    @property
    def result(self) -> EavMigrationResult | None:
        """Phase results of the last successful perform(), if any."""
        return self._result

    def iteration_count(self) -> int:
        """Number of progress ticks of a run: one per declared document."""
        return len(self._settings.documents)

    def _advance(self, relation: str) -> None:
        self._completed += 1
        logger.debug("Processed %s (%d/%d)", relation, self._completed, self.iteration_count())
        if self._on_progress is not None:
            self._on_progress(
                PipelineProgress(
                    relation=relation,
                    completed=self._completed,
                    total=self.iteration_count(),
                )
            )

    async def _run_phase(self, name: str, phase: Callable[[], Awaitable[T]]) -> T:
        logger.info("Starting phase %s", name)
        with self._tracer.span(f"eavmigrate.pipeline.{name}", {ATTR_PHASE: name}):
            with self._metrics.time_phase(name):
                try:
                    result = await phase()
                except Exception as e:
                    logger.error("Phase %s failed: %s", name, e)
                    raise
        logger.info("Finished phase %s", name)
        return result

    async def perform(self) -> bool:
        """
        Run the migration.

        Returns:
            True once every phase has completed

        Raises:
            SnapshotLoadError: If the initial data cannot be loaded
            NaturalKeyResolutionError: If an id map cannot be rebuilt
            RecordTransformError: If a field rule fails
            StorageError: If a store operation fails
        """
        total = self.iteration_count()
        with self._tracer.span("eavmigrate.pipeline.perform", {ATTR_ITERATION_COUNT: total}):
            self._completed = 0
            self._result = None
            logger.info("Starting EAV migration over %d documents", total)
            await self._initial_data.load()

            context = PhaseContext(
                source=self._source,
                destination=self._destination,
                settings=self._settings,
                initial_data=self._initial_data,
                translator=EntityTypeTranslator(self._initial_data),
                transformers=self._transformers,
                metrics=self._metrics,
                tracer=self._tracer,
                advance=self._advance,
            )

            sets_result = await self._run_phase(
                AttributeSetPhase.name, AttributeSetPhase(context).run
            )
            attributes_result = await self._run_phase(
                AttributePhase.name, AttributePhase(context).run
            )
            id_maps = IdMaps(
                attribute_sets=sets_result.attribute_sets,
                attribute_groups=sets_result.attribute_groups,
                attributes=attributes_result.attributes,
            )
            entity_attributes_result = await self._run_phase(
                EntityAttributePhase.name,
                lambda: EntityAttributePhase(context).run(
                    id_maps, sets_result, attributes_result.ignored_ids
                ),
            )
            mapped_result = await self._run_phase(
                MappedDocumentPhase.name,
                lambda: MappedDocumentPhase(context).run(id_maps, attributes_result.ignored_ids),
            )

            self._result = EavMigrationResult(
                attribute_sets=sets_result,
                attributes=attributes_result,
                entity_attributes=entity_attributes_result,
                mapped_documents=mapped_result,
            )
            logger.info(
                "EAV migration finished: %d rows saved, %d orphaned assignments dropped",
                self._metrics.get_snapshot().total_rows_saved,
                entity_attributes_result.orphans_dropped,
            )
        return True

    async def rollback(self) -> bool:
        """
        Restore every declared document from its latest backup.

        Best effort: a relation that fails to restore is logged and the
        remaining ones are still attempted.

        Returns:
            True if every relation was restored, False otherwise
        """
        restored = True
        with self._tracer.span(
            "eavmigrate.pipeline.rollback",
            {ATTR_ITERATION_COUNT: self.iteration_count()},
        ):
            for document in self._settings.documents:
                name = self._settings.destination_name(document)
                with self._tracer.span("eavmigrate.pipeline.rollback_relation", {ATTR_RELATION: name}):
                    try:
                        await self._destination.rollback(name)
                    except Exception as e:
                        restored = False
                        self._metrics.record_rollback_failure(name)
                        logger.warning("Rollback of %s failed: %s", name, e)
        if restored:
            logger.info("Rolled back %d documents", self.iteration_count())
        return restored


__all__ = [
    "PipelineProgress",
    "ProgressCallback",
    "EavMigrationResult",
    "EavMigrationPipeline",
]
