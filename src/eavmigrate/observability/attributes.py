"""
Standard span and metric attributes for eavmigrate.

This module defines attribute constants used across all eavmigrate components
for consistent span naming and metrics labeling. These follow OpenTelemetry
semantic conventions where applicable.

Example:
    >>> from eavmigrate.observability.attributes import (
    ...     ATTR_RELATION,
    ...     ATTR_ROW_COUNT,
    ... )
    >>>
    >>> with tracer.span(
    ...     "eavmigrate.store.save",
    ...     {ATTR_RELATION: "eav_attribute", ATTR_ROW_COUNT: len(rows)},
    ... ):
    ...     pass
"""

# =============================================================================
# Relation Attributes
# =============================================================================

ATTR_RELATION = "eavmigrate.relation.name"
"""Name of the relation an operation targets (string)."""

ATTR_ROW_COUNT = "eavmigrate.row.count"
"""Number of rows involved in an operation (integer)."""

ATTR_OFFSET = "eavmigrate.read.offset"
"""Offset of a paged read (integer)."""

ATTR_LIMIT = "eavmigrate.read.limit"
"""Page size of a paged read (integer)."""

# =============================================================================
# Pipeline Attributes
# =============================================================================

ATTR_PHASE = "eavmigrate.phase"
"""Pipeline phase name (e.g., 'attribute_sets', 'attributes')."""

ATTR_ITERATION_COUNT = "eavmigrate.iteration.count"
"""Total number of progress ticks of a pipeline run (integer)."""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'postgresql', 'sqlite')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name (e.g., 'INSERT', 'DELETE')."""

__all__ = [
    "ATTR_RELATION",
    "ATTR_ROW_COUNT",
    "ATTR_OFFSET",
    "ATTR_LIMIT",
    "ATTR_PHASE",
    "ATTR_ITERATION_COUNT",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
]
