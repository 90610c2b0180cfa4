"""
The EAV remapping engine.

- InitialData: pre-migration inventories of both systems
- EntityTypeTranslator: entity type ids across systems by code
- IdCorrespondenceMap / IdMaps: old destination id -> new id per relation
- merge_by_key: composite-key merge shared by the phases
- patches: structural patches for the destination schema generation
- phases: the four migration phases
- EavMigrationPipeline: runs the phases, reports progress, rolls back
"""

from eavmigrate.eav.entity_types import (
    EntityTypeTranslator,
    TranslationDirection,
    TranslationFallback,
)
from eavmigrate.eav.id_maps import IdCorrespondenceMap, IdMaps
from eavmigrate.eav.merge import MergeOutcome, merge_by_key
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
from eavmigrate.eav.pipeline import (
    EavMigrationPipeline,
    EavMigrationResult,
    PipelineProgress,
    ProgressCallback,
)
from eavmigrate.eav.snapshot import InitialData, System

__all__ = [
    # Snapshot
    "InitialData",
    "System",
    # Translation
    "EntityTypeTranslator",
    "TranslationDirection",
    "TranslationFallback",
    # Id maps
    "IdCorrespondenceMap",
    "IdMaps",
    # Merge
    "MergeOutcome",
    "merge_by_key",
    # Phases
    "PhaseContext",
    "AttributeSetPhase",
    "AttributeSetPhaseResult",
    "AttributePhase",
    "AttributePhaseResult",
    "EntityAttributePhase",
    "EntityAttributePhaseResult",
    "MappedDocumentPhase",
    "MappedDocumentPhaseResult",
    # Pipeline
    "EavMigrationPipeline",
    "EavMigrationResult",
    "PipelineProgress",
    "ProgressCallback",
]
