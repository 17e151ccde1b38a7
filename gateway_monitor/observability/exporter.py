"""
Exporter — Render collector and aggregator state for scraping.

Every export first refreshes the process and dependency gauges, so a GET on
the metrics endpoint updates ``process_memory_usage_bytes`` and friends as a
side effect. Counters and histograms are only read.

## Prometheus layout

    # HELP <family> <help>
    # TYPE <family> counter
    <family>{labels} <value>
    ...
    <blank line>
    gauges, same shape
    <blank line>
    histograms: <family>_sum{labels} and <family>_count{labels} only

No buckets or quantiles are emitted for histograms.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .health import HealthAggregator, HealthStatus
from .metrics import REQUEST_DURATION_METRIC, MetricsCollector, split_key
from .system import process_uptime_seconds, system_info

logger = logging.getLogger(__name__)

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

# Histogram families whose header is emitted even before the first sample
SEEDED_HISTOGRAMS = (REQUEST_DURATION_METRIC,)

DEPENDENCY_UP_VALUES = {
    HealthStatus.HEALTHY: 1,
    HealthStatus.DEGRADED: 0.5,
    HealthStatus.UNHEALTHY: 0,
}


def format_value(value: float) -> str:
    """Render a sample value; integral floats drop the fraction."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            return "0"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _group_by_family(keys: List[str]) -> Dict[str, List[str]]:
    families: Dict[str, List[str]] = {}
    for key in keys:
        families.setdefault(split_key(key)[0], []).append(key)
    return families


class Exporter:
    """Read-only renderer over a collector and an optional aggregator."""

    def __init__(
        self,
        collector: MetricsCollector,
        aggregator: Optional[HealthAggregator] = None,
    ):
        self.collector = collector
        self.aggregator = aggregator

    def refresh_system_metrics(self) -> None:
        """Write process, score and dependency gauges."""
        store = self.collector.store
        info = system_info()

        store.set("process_memory_usage_bytes", {"type": "rss"}, info["memory"]["rss"])
        store.set("process_memory_usage_bytes", {"type": "vms"}, info["memory"]["vms"])
        store.set("process_cpu_usage_seconds", {"type": "user"}, info["cpu"]["user"])
        store.set("process_cpu_usage_seconds", {"type": "system"}, info["cpu"]["system"])
        store.set("process_uptime_seconds", None, round(process_uptime_seconds(), 3))
        store.set("gateway_health_score", None, self.collector.get_health_score())

        if self.aggregator is not None:
            for name, record in self.aggregator.get_health().checks.items():
                store.set("dependency_up", {"service": name}, DEPENDENCY_UP_VALUES[record.status])

    # ── Prometheus ────────────────────────────────────────────────

    def export_prometheus(self) -> str:
        """Render Prometheus exposition text."""
        self.refresh_system_metrics()

        with self.collector.lock:
            snap = self.collector.store.snapshot()

        def help_for(family: str) -> str:
            return snap["help"].get(family, family.replace("_", " "))

        blocks: List[List[str]] = []

        counter_lines: List[str] = []
        for family, keys in _group_by_family(list(snap["counters"])).items():
            counter_lines.append(f"# HELP {family} {help_for(family)}")
            counter_lines.append(f"# TYPE {family} counter")
            for key in keys:
                counter_lines.append(f"{key} {format_value(snap['counters'][key])}")
        blocks.append(counter_lines)

        gauge_lines: List[str] = []
        for family, keys in _group_by_family(list(snap["gauges"])).items():
            gauge_lines.append(f"# HELP {family} {help_for(family)}")
            gauge_lines.append(f"# TYPE {family} gauge")
            for key in keys:
                gauge_lines.append(f"{key} {format_value(snap['gauges'][key])}")
        blocks.append(gauge_lines)

        histogram_lines: List[str] = []
        histogram_families: Dict[str, List[str]] = {family: [] for family in SEEDED_HISTOGRAMS}
        for family, keys in _group_by_family(list(snap["histograms"])).items():
            histogram_families.setdefault(family, []).extend(keys)
        for family, keys in histogram_families.items():
            histogram_lines.append(f"# HELP {family} {help_for(family)}")
            histogram_lines.append(f"# TYPE {family} histogram")
            for key in keys:
                values = snap["histograms"][key]
                labels = split_key(key)[1]
                histogram_lines.append(f"{family}_sum{labels} {format_value(float(sum(values)))}")
                histogram_lines.append(f"{family}_count{labels} {len(values)}")
        blocks.append(histogram_lines)

        return "\n\n".join("\n".join(block) for block in blocks) + "\n"

    # ── JSON ──────────────────────────────────────────────────────

    def export_json(self) -> Dict[str, Any]:
        """Full JSON view, including raw store values."""
        self.refresh_system_metrics()
        with self.collector.lock:
            result = self.collector.get_metrics()
            result["store"] = self.collector.store.to_json()
        return result

    def performance(self) -> Dict[str, Any]:
        self.refresh_system_metrics()
        collector = self.collector
        with collector.lock:
            requests = collector.get_request_metrics()
            uptime = collector.get_uptime_seconds()
            return {
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "responseTime": {
                    "average": requests["averageResponseTime"],
                    "p50": collector.get_percentile(50),
                    "p90": collector.get_percentile(90),
                    "p95": collector.get_percentile(95),
                    "p99": collector.get_percentile(99),
                },
                "throughput": {
                    "requestsPerSecond": requests["total"] / uptime if uptime > 0 else 0,
                },
                "errors": {
                    "rate": requests["errorRate"],
                    "count": requests["failed"],
                },
                "system": system_info(),
            }

    def detailed(self) -> Dict[str, Any]:
        self.refresh_system_metrics()
        with self.collector.lock:
            metrics = self.collector.get_metrics()
            result = {
                "timestamp": metrics["timestamp"],
                "uptime": metrics["uptime"],
                "healthScore": self.collector.get_health_score(),
                "requests": metrics["requests"],
                "services": metrics["services"],
                "performance": metrics["performance"],
                "system": metrics["system"],
            }
        if self.aggregator is not None:
            result["dependencies"] = self.aggregator.get_health().to_dict()
        return result
