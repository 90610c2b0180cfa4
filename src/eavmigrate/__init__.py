"""
eavmigrate - EAV attribute metadata migration between schema generations.

This library provides:
- A four-phase pipeline remapping attribute sets, groups, attributes and
  their assignments between two independently numbered databases
- Id correspondence maps rebuilt from natural keys after every phase
- Composite-key merging of auxiliary attribute relations
- Per-relation backup and best-effort rollback
- In-memory and SQLAlchemy (PostgreSQL, SQLite) relation stores
- Optional OpenTelemetry tracing and metrics
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("eavmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from eavmigrate.config import (
    DEFAULT_MAPPED_DOCUMENTS,
    EavMigrationSettings,
    FieldRules,
    MappedDocument,
    SupplementalGroup,
)
from eavmigrate.eav import (
    EavMigrationPipeline,
    EavMigrationResult,
    EntityTypeTranslator,
    IdCorrespondenceMap,
    IdMaps,
    InitialData,
    MergeOutcome,
    PipelineProgress,
    System,
    TranslationDirection,
    TranslationFallback,
    merge_by_key,
)
from eavmigrate.exceptions import (
    BackupNotFoundError,
    ConfigurationError,
    EavMigrationError,
    NaturalKeyResolutionError,
    RecordTransformError,
    RelationNotFoundError,
    SnapshotLoadError,
    StorageError,
)
from eavmigrate.metrics import EavMetricSnapshot, EavMigrationMetrics
from eavmigrate.models import Attribute, AttributeGroup, AttributeSet, EntityType
from eavmigrate.records import Record, Relation
from eavmigrate.stores import (
    DestinationStore,
    InMemoryRelationStore,
    RelationReader,
    SQLAlchemyRelationStore,
)
from eavmigrate.transform import (
    FieldRuleTransformer,
    FieldRuleTransformerFactory,
    RecordTransformer,
    TransformerFactory,
)

__all__ = [
    "__version__",
    # Records and models
    "Relation",
    "Record",
    "EntityType",
    "Attribute",
    "AttributeSet",
    "AttributeGroup",
    # Configuration
    "EavMigrationSettings",
    "FieldRules",
    "MappedDocument",
    "SupplementalGroup",
    "DEFAULT_MAPPED_DOCUMENTS",
    # Exceptions
    "EavMigrationError",
    "ConfigurationError",
    "SnapshotLoadError",
    "NaturalKeyResolutionError",
    "RecordTransformError",
    "StorageError",
    "RelationNotFoundError",
    "BackupNotFoundError",
    # Transform
    "RecordTransformer",
    "TransformerFactory",
    "FieldRuleTransformer",
    "FieldRuleTransformerFactory",
    # Stores
    "RelationReader",
    "DestinationStore",
    "InMemoryRelationStore",
    "SQLAlchemyRelationStore",
    # Engine
    "InitialData",
    "System",
    "EntityTypeTranslator",
    "TranslationDirection",
    "TranslationFallback",
    "IdCorrespondenceMap",
    "IdMaps",
    "MergeOutcome",
    "merge_by_key",
    "EavMigrationPipeline",
    "EavMigrationResult",
    "PipelineProgress",
    # Metrics
    "EavMigrationMetrics",
    "EavMetricSnapshot",
]
