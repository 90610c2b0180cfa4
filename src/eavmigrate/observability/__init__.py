"""
Observability utilities for eavmigrate.

Tracing and standard attribute definitions for consistent observability
across the stores and the migration pipeline.

Example:
    >>> from eavmigrate.observability import create_tracer, ATTR_RELATION
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...
    ...     async def clear(self, name: str) -> None:
    ...         with self._tracer.span("my_store.clear", {ATTR_RELATION: name}):
    ...             ...

Note:
    OpenTelemetry is an optional dependency. All utilities in this module
    gracefully handle the case where OpenTelemetry is not installed.
"""

from eavmigrate.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ITERATION_COUNT,
    ATTR_LIMIT,
    ATTR_OFFSET,
    ATTR_PHASE,
    ATTR_RELATION,
    ATTR_ROW_COUNT,
)
from eavmigrate.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanAttributes,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer (composition-based API)
    "OTEL_AVAILABLE",
    "SpanAttributes",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes - Relation
    "ATTR_RELATION",
    "ATTR_ROW_COUNT",
    "ATTR_OFFSET",
    "ATTR_LIMIT",
    # Attributes - Pipeline
    "ATTR_PHASE",
    "ATTR_ITERATION_COUNT",
    # Attributes - Database
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
]
