"""
Tracers used by the stores and the migration pipeline.

Tracing is composed, not inherited: every store, phase and pipeline takes a
``Tracer`` and wraps its relation reads, replacements and rollbacks in
spans. ``create_tracer`` picks OpenTelemetry when it can be imported and the
caller has not disabled tracing; otherwise spans are no-ops.

Example:
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("eavmigrate.phase.replace", {ATTR_RELATION: "eav_attribute"}):
    ...     await destination.clear("eav_attribute")
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator, Mapping
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    trace = None  # type: ignore[assignment]
    OTEL_AVAILABLE = False

SpanAttributes = Mapping[str, Any]


@runtime_checkable
class Tracer(Protocol):
    """
    Anything that can open a span around a migration operation.

    ``enabled`` is False when spans are discarded, letting callers skip
    building expensive span attributes.
    """

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]: ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Discards every span."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Attributes whose value is None are left out of the span, since
    OpenTelemetry only accepts primitive values. A relation without a
    primary key, for instance, simply has no key attribute.

    Args:
        tracer_name: Instrumentation scope (typically __name__)

    Raises:
        ImportError: If opentelemetry-api is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        if trace is None:
            raise ImportError("opentelemetry-api is required for OpenTelemetryTracer")
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(
            name,
            attributes={k: v for k, v in (attributes or {}).items() if v is not None},
        )

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Records spans so tests can assert on what a run traced.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("eavmigrate.pipeline.perform", {ATTR_ITERATION_COUNT: 7}):
        ...     pass
        >>> tracer.span_names
        ['eavmigrate.pipeline.perform']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, SpanAttributes | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def attributes_of(self, name: str) -> list[SpanAttributes | None]:
        """Return the attributes of every recorded span called ``name``."""
        return [attributes for span_name, attributes in self.spans if span_name == name]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Return an OpenTelemetryTracer when tracing is enabled and available.

    Example:
        >>> self._tracer = tracer or create_tracer(__name__, enable_tracing)
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "SpanAttributes",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]
