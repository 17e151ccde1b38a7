"""
Observability Module — Dependency health, metrics, and export.
"""

from .exporter import PROMETHEUS_CONTENT_TYPE, Exporter
from .health import (
    HealthAggregator,
    HealthStatus,
    OverallHealth,
    ServiceHealthRecord,
    rollup,
)
from .metrics import (
    MetricsCollector,
    MetricsStore,
    RequestCounter,
    ServiceMetric,
    percentile,
)

__all__ = [
    "Exporter",
    "PROMETHEUS_CONTENT_TYPE",
    "HealthAggregator",
    "HealthStatus",
    "OverallHealth",
    "ServiceHealthRecord",
    "rollup",
    "MetricsCollector",
    "MetricsStore",
    "RequestCounter",
    "ServiceMetric",
    "percentile",
]
