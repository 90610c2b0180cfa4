"""
Shared pytest fixtures for the eavmigrate tests.

This module provides:
- Sample EAV data fixtures (source_store, destination_store, settings)
- Transformer fixtures (transformers)
- OpenTelemetry metrics fixtures (metric_reader)
"""

from __future__ import annotations

from typing import Any

import pytest

from eavmigrate.config import ATTRIBUTE_GROUP, EavMigrationSettings
from eavmigrate.stores.in_memory import InMemoryRelationStore
from eavmigrate.transform import FieldRuleTransformerFactory
from tests.fixtures import group_code_from_name, make_destination_store, make_source_store

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


# ============================================================================
# OpenTelemetry Metrics Availability Check
# ============================================================================

OTEL_METRICS_AVAILABLE = False
try:
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import InMemoryMetricReader

    OTEL_METRICS_AVAILABLE = True
except ImportError:
    MeterProvider = None  # type: ignore[assignment, misc]
    InMemoryMetricReader = None  # type: ignore[assignment, misc]


# ============================================================================
# Skip Condition
# ============================================================================

skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")

skip_if_no_otel_metrics = pytest.mark.skipif(
    not OTEL_METRICS_AVAILABLE, reason="opentelemetry-sdk not installed"
)


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def source_store() -> InMemoryRelationStore:
    """
    Provide a source store holding the sample older-generation EAV data.

    Returns:
        A fresh InMemoryRelationStore with tracing disabled.
    """
    return make_source_store(enable_tracing=False)


@pytest.fixture
def destination_store() -> InMemoryRelationStore:
    """
    Provide a destination store holding the sample newer-generation EAV data.

    Returns:
        A fresh InMemoryRelationStore with tracing disabled.
    """
    return make_destination_store(enable_tracing=False)


@pytest.fixture
def settings() -> EavMigrationSettings:
    """Settings for the sample data: default documents, one ignored attribute."""
    return EavMigrationSettings(ignored_attributes=frozenset({"old_flag"}))


@pytest.fixture
def transformers(settings: EavMigrationSettings) -> FieldRuleTransformerFactory:
    """Field rule transformers deriving attribute group codes from group names."""
    return FieldRuleTransformerFactory(
        settings,
        handlers={ATTRIBUTE_GROUP: {"attribute_group_code": group_code_from_name}},
    )


# =============================================================================
# OpenTelemetry Metrics Fixtures
# =============================================================================


@pytest.fixture
def metric_reader() -> Any:
    """
    Provide an InMemoryMetricReader bound to the eavmigrate meter.

    The global meter provider can only be set once per process, so the
    fixture binds the metrics module's cached meter to a fresh provider
    instead and resets it afterwards.

    Yields:
        InMemoryMetricReader: Reader for inspecting collected metrics.
    """
    if not OTEL_METRICS_AVAILABLE:
        pytest.skip("opentelemetry-sdk not installed")

    from eavmigrate import metrics as metrics_module

    reader = InMemoryMetricReader()
    provider = MeterProvider(metric_readers=[reader])
    metrics_module._meter = provider.get_meter("eavmigrate")

    yield reader

    metrics_module.reset_meter()
    provider.shutdown()

