"""
OpenTelemetry metrics for EAV migration runs.

The metrics gracefully degrade when OpenTelemetry is not installed -
all operations become no-ops without raising errors.

Example:
    >>> from eavmigrate.metrics import EavMigrationMetrics
    >>>
    >>> metrics = EavMigrationMetrics(step="eav")
    >>> metrics.record_rows_saved("eav_attribute", 1200)
    >>> metrics.record_orphans_dropped(3)
    >>> with metrics.time_phase("attributes"):
    ...     ...

Metrics Exposed:
    - eav.rows.saved (Counter): Rows written to destination relations
    - eav.rows.orphaned (Counter): Assignments dropped for unresolved foreign keys
    - eav.phase.duration (Histogram): Time spent in each pipeline phase
    - eav.rollback.failures (Counter): Relations that could not be restored

All metrics include the 'step' attribute for filtering.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import metrics

    OTEL_METRICS_AVAILABLE = True
except ImportError:
    OTEL_METRICS_AVAILABLE = False
    metrics = None  # type: ignore[assignment]


# Module-level meter instance
_meter: Any = None


def _get_meter() -> Any:
    """
    Get or create the meter instance.

    Returns:
        OpenTelemetry Meter or None
    """
    global _meter
    if _meter is None and OTEL_METRICS_AVAILABLE and metrics is not None:
        _meter = metrics.get_meter("eavmigrate", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """Reset the global meter instance between tests."""
    global _meter
    _meter = None


class NoOpCounter:
    """No-op counter when OpenTelemetry is not available."""

    def add(
        self,
        amount: int | float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


class NoOpHistogram:
    """No-op histogram when OpenTelemetry is not available."""

    def record(
        self,
        value: float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


@dataclass(frozen=True)
class EavMetricSnapshot:
    """
    Snapshot of the values recorded for one run.

    Attributes:
        rows_saved: Rows written, per destination relation
        orphans_dropped: Rows dropped for unresolved foreign keys or
            ignored attributes
        rollback_failures: Relations whose rollback failed
        phase_durations: Phase name to total duration in seconds
    """

    rows_saved: dict[str, int] = field(default_factory=dict)
    orphans_dropped: int = 0
    rollback_failures: int = 0
    phase_durations: dict[str, float] = field(default_factory=dict)

    @property
    def total_rows_saved(self) -> int:
        return sum(self.rows_saved.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_saved": dict(self.rows_saved),
            "orphans_dropped": self.orphans_dropped,
            "rollback_failures": self.rollback_failures,
            "phase_durations": dict(self.phase_durations),
        }


@dataclass
class EavMigrationMetrics:
    """
    Container for migration metrics instruments.

    All methods are safe to call even when OpenTelemetry is not installed.

    Attributes:
        step: Step identifier used as the 'step' metric attribute
        enable_metrics: Whether metrics are enabled (default True)
    """

    step: str = "eav"
    enable_metrics: bool = True

    _meter: Any = field(default=None, init=False, repr=False)
    _rows_saved_counter: Any = field(default=None, init=False, repr=False)
    _orphans_counter: Any = field(default=None, init=False, repr=False)
    _phase_duration_histogram: Any = field(default=None, init=False, repr=False)
    _rollback_failures_counter: Any = field(default=None, init=False, repr=False)

    # Internal counters for snapshot
    _rows_saved: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _orphans_dropped: int = field(default=0, init=False, repr=False)
    _rollback_failures: int = field(default=0, init=False, repr=False)
    _phase_durations: dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.enable_metrics and OTEL_METRICS_AVAILABLE:
            self._setup_metrics()
        else:
            self._setup_noop()

    def _setup_metrics(self) -> None:
        self._meter = _get_meter()

        if self._meter is None:
            self._setup_noop()
            return

        self._rows_saved_counter = self._meter.create_counter(
            name="eav.rows.saved",
            unit="rows",
            description="Rows written to destination relations",
        )
        self._orphans_counter = self._meter.create_counter(
            name="eav.rows.orphaned",
            unit="rows",
            description="Assignments dropped because a foreign key could not be remapped",
        )
        self._phase_duration_histogram = self._meter.create_histogram(
            name="eav.phase.duration",
            unit="s",
            description="Time spent in each pipeline phase in seconds",
        )
        self._rollback_failures_counter = self._meter.create_counter(
            name="eav.rollback.failures",
            unit="relations",
            description="Relations that could not be restored from backup",
        )

    def _setup_noop(self) -> None:
        self._rows_saved_counter = NoOpCounter()
        self._orphans_counter = NoOpCounter()
        self._phase_duration_histogram = NoOpHistogram()
        self._rollback_failures_counter = NoOpCounter()

    def _base_attributes(self) -> dict[str, str]:
        return {"step": self.step}

    def record_rows_saved(self, relation: str, count: int) -> None:
        self._rows_saved_counter.add(count, {**self._base_attributes(), "relation": relation})
        self._rows_saved[relation] = self._rows_saved.get(relation, 0) + count

    def record_orphans_dropped(self, count: int) -> None:
        if count <= 0:
            return
        self._orphans_counter.add(count, self._base_attributes())
        self._orphans_dropped += count

    def record_rollback_failure(self, relation: str) -> None:
        self._rollback_failures_counter.add(1, {**self._base_attributes(), "relation": relation})
        self._rollback_failures += 1

    def record_phase_duration(self, phase: str, duration_seconds: float) -> None:
        attrs = {**self._base_attributes(), "phase": phase}
        self._phase_duration_histogram.record(duration_seconds, attrs)
        self._phase_durations[phase] = self._phase_durations.get(phase, 0.0) + duration_seconds

    @contextmanager
    def time_phase(self, phase: str) -> Generator[None, None, None]:
        """
        Context manager timing a pipeline phase.

        The duration is recorded even when the phase raises.
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_phase_duration(phase, time.perf_counter() - start)

    def get_snapshot(self) -> EavMetricSnapshot:
        return EavMetricSnapshot(
            rows_saved=dict(self._rows_saved),
            orphans_dropped=self._orphans_dropped,
            rollback_failures=self._rollback_failures,
            phase_durations=dict(self._phase_durations),
        )


__all__ = [
    "OTEL_METRICS_AVAILABLE",
    "NoOpCounter",
    "NoOpHistogram",
    "EavMetricSnapshot",
    "EavMigrationMetrics",
    "reset_meter",
]
