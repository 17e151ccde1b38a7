"""
Metrics — Collect request and service metrics in process memory.

Two layers:

- ``MetricsStore``: flat counter/gauge/histogram maps keyed by
  ``name{label="value",...}`` (labels sorted). Histograms keep the most
  recent ``HISTOGRAM_MAX_SAMPLES`` observations; older samples are evicted
  first, so percentiles are biased toward recent traffic.
- ``MetricsCollector``: gateway roll-ups on top of the store — request
  counters, per-service running averages and error rates, and the composite
  health score.

## Usage

    from gateway_monitor.observability.metrics import MetricsCollector

    collector = MetricsCollector()
    collector.record_request("GET", "/api/v1/farms", 200, 42)
    collector.record_service_response("auth-service", 200, 35)

    collector.get_health_score()    # 0..100
    collector.get_percentile(95)    # nearest-rank p95 of request durations

State lives only in memory and is discarded on exit. Each process keeps its
own independent metrics.
"""

from __future__ import annotations

import logging
import math
import re
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock, RLock
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from .health import HealthStatus

logger = logging.getLogger(__name__)

HISTOGRAM_MAX_SAMPLES = 1000

REQUEST_DURATION_METRIC = "http_request_duration_ms"

SERVICE_STATUS_SCORES = {
    HealthStatus.HEALTHY: 100,
    HealthStatus.DEGRADED: 60,
    HealthStatus.UNHEALTHY: 20,
}

_ID_SEGMENT = re.compile(r"/\d+(?=/|$)")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def metric_key(name: str, labels: Optional[Dict[str, str]] = None) -> str:
    """Build the ``name{k="v",...}`` key with labels sorted by name."""
    if not labels:
        return name
    pairs = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
    return f"{name}{{{pairs}}}"


def split_key(key: str) -> Tuple[str, str]:
    """Split a metric key into (family, label block including braces)."""
    brace = key.find("{")
    if brace == -1:
        return key, ""
    return key[:brace], key[brace:]


def normalize_path(path: str) -> str:
    """Collapse numeric path segments so ``/farms/42`` becomes ``/farms/:id``."""
    return _ID_SEGMENT.sub("/:id", path)


def percentile(values: Iterable[float], p: float) -> float:
    """
    Nearest-rank percentile.

    Sorts ascending and picks index ``ceil(p/100 * n) - 1``, clamped to the
    valid range. Returns 0 for an empty series. No interpolation.
    """
    ordered = sorted(values)
    if not ordered:
        return 0
    index = math.ceil((p / 100) * len(ordered)) - 1
    index = max(0, min(index, len(ordered) - 1))
    return ordered[index]


class MetricsStore:
    """Flat counter, gauge and bounded-histogram maps."""

    def __init__(self, max_samples: int = HISTOGRAM_MAX_SAMPLES):
        self.max_samples = max_samples
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._histograms: Dict[str, Deque[float]] = {}
        self._help: Dict[str, str] = {}
        self._lock = Lock()

    def describe(self, name: str, help_text: str) -> None:
        """Set the HELP text for a metric family."""
        with self._lock:
            self._help[name] = help_text

    def help_text(self, name: str) -> str:
        return self._help.get(name, name.replace("_", " "))

    def increment(
        self,
        name: str,
        labels: Optional[Dict[str, str]] = None,
        value: float = 1,
    ) -> None:
        """Increment a counter (creating it at ``value``)."""
        key = metric_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def set(self, name: str, labels: Optional[Dict[str, str]], value: float) -> None:
        """Set a gauge."""
        key = metric_key(name, labels)
        with self._lock:
            self._gauges[key] = value

    def observe(self, name: str, labels: Optional[Dict[str, str]], value: float) -> None:
        """Append to a histogram series, evicting the oldest sample when full."""
        key = metric_key(name, labels)
        with self._lock:
            series = self._histograms.get(key)
            if series is None:
                series = deque(maxlen=self.max_samples)
                self._histograms[key] = series
            series.append(value)

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._counters.get(metric_key(name, labels), 0)

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._gauges.get(metric_key(name, labels), 0)

    def get_series(self, name: str, labels: Optional[Dict[str, str]] = None) -> List[float]:
        """Copy of a histogram series, oldest first."""
        with self._lock:
            return list(self._histograms.get(metric_key(name, labels), ()))

    def family_series(self, name: str) -> List[float]:
        """All samples of every label set in a histogram family."""
        with self._lock:
            values: List[float] = []
            for key, series in self._histograms.items():
                if split_key(key)[0] == name:
                    values.extend(series)
            return values

    def counter_total(self, name: str) -> float:
        """Sum of a counter family across label sets."""
        with self._lock:
            return sum(v for k, v in self._counters.items() if split_key(k)[0] == name)

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of all maps for rendering."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {k: list(v) for k, v in self._histograms.items()},
                "help": dict(self._help),
            }

    def reset(self) -> None:
        """Clear all values. HELP texts are kept."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()

    def histogram_summary(self, name: str, labels: Optional[Dict[str, str]] = None) -> Dict[str, float]:
        """count/sum/avg/min/max of one series; zeros when empty."""
        return self.summarize(self.get_series(name, labels))

    @staticmethod
    def summarize(values: List[float]) -> Dict[str, float]:
        if not values:
            return {"count": 0, "sum": 0, "avg": 0, "min": 0, "max": 0}
        total = sum(values)
        return {
            "count": len(values),
            "sum": total,
            "avg": total / len(values),
            "min": min(values),
            "max": max(values),
        }

    def to_json(self) -> Dict[str, Any]:
        snap = self.snapshot()
        return {
            "counters": snap["counters"],
            "gauges": snap["gauges"],
            "histograms": {
                key: self.summarize(values)
                for key, values in snap["histograms"].items()
            },
        }


@dataclass
class RequestCounter:
    """Totals for requests handled by this process."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    total_response_time_ms: float = 0.0
    slow: int = 0

    @property
    def average_response_time_ms(self) -> float:
        if self.total == 0:
            return 0
        return self.total_response_time_ms / self.total

    @property
    def error_rate(self) -> float:
        return self.failed / self.total if self.total > 0 else 0

    @property
    def success_rate(self) -> float:
        return self.successful / self.total if self.total > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "averageResponseTime": self.average_response_time_ms,
            "totalResponseTime": self.total_response_time_ms,
            "errorRate": self.error_rate,
            "successRate": self.success_rate,
        }


@dataclass
class ServiceMetric:
    """Running figures for one downstream service."""

    status: HealthStatus = HealthStatus.HEALTHY
    response_time_ms: float = 0.0
    error_rate: float = 0.0
    request_count: int = 0
    last_request_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "responseTime": self.response_time_ms,
            "errorRate": self.error_rate,
            "requestCount": self.request_count,
            "lastRequest": self.last_request_at,
        }


class MetricsCollector:
    """
    Gateway metrics collector.

    All record, read and reset operations run under one re-entrant lock, so
    a reset is never observed half-applied.
    """

    def __init__(
        self,
        store: Optional[MetricsStore] = None,
        slow_request_threshold_ms: float = 5000,
        degraded_latency_ms: float = 5000,
        unhealthy_latency_ms: float = 10000,
    ):
        self.store = store or MetricsStore()
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.degraded_latency_ms = degraded_latency_ms
        self.unhealthy_latency_ms = unhealthy_latency_ms
        self.lock = RLock()
        self._requests = RequestCounter()
        self._services: Dict[str, ServiceMetric] = {}
        self._start_time = time.monotonic()
        self._describe_defaults()
        self._seed_defaults()

    def _describe_defaults(self) -> None:
        describe = self.store.describe
        describe("http_requests_total", "Total number of HTTP requests")
        describe("http_slow_requests_total", "HTTP requests slower than the slow-request threshold")
        describe("service_requests_total", "Downstream service calls by outcome")
        describe("gateway_up", "Whether the gateway monitor is running")
        describe("gateway_health_score", "Composite health score (0-100)")
        describe("dependency_up", "Dependency health (1=healthy, 0.5=degraded, 0=unhealthy)")
        describe("process_memory_usage_bytes", "Process memory usage in bytes")
        describe("process_cpu_usage_seconds", "Process CPU time in seconds")
        describe("process_uptime_seconds", "Collector uptime in seconds")
        describe(REQUEST_DURATION_METRIC, "HTTP request duration in milliseconds")
        describe("service_response_time_ms", "Downstream service response time in milliseconds")

    def _seed_defaults(self) -> None:
        self.store.increment("http_requests_total", {"status": "success"}, 0)
        self.store.increment("http_requests_total", {"status": "error"}, 0)
        self.store.increment("http_slow_requests_total", None, 0)
        self.store.set("gateway_up", None, 1)

    # ── Recording ─────────────────────────────────────────────────

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        """Record one completed request/response cycle."""
        success = 200 <= status_code < 400
        slow = duration_ms > self.slow_request_threshold_ms

        with self.lock:
            req = self._requests
            req.total += 1
            req.total_response_time_ms += duration_ms
            if success:
                req.successful += 1
            else:
                req.failed += 1
            if slow:
                req.slow += 1

            self.store.increment(
                "http_requests_total", {"status": "success" if success else "error"}
            )
            self.store.observe(REQUEST_DURATION_METRIC, None, duration_ms)
            if slow:
                self.store.increment("http_slow_requests_total")

        extra = {
            "method": method,
            "path": normalize_path(path),
            "status_code": status_code,
            "duration_ms": duration_ms,
        }
        if slow:
            logger.warning("Slow request detected", extra=extra)
        if status_code >= 400:
            logger.warning("Error request", extra=extra)

    def record_service_response(
        self,
        service_name: str,
        status_code: int,
        duration_ms: Optional[float] = None,
    ) -> ServiceMetric:
        """
        Record one downstream call.

        Response time and error rate are exact running means over all calls
        (``(old * (n - 1) + sample) / n``), not decayed averages.
        """
        is_error = status_code >= 400

        with self.lock:
            metric = self._services.get(service_name) or ServiceMetric()
            metric.request_count += 1
            metric.last_request_at = _now_iso()
            n = metric.request_count

            if duration_ms is not None:
                metric.response_time_ms = (metric.response_time_ms * (n - 1) + duration_ms) / n

            error_count = math.floor(metric.error_rate * (n - 1)) + (1 if is_error else 0)
            metric.error_rate = error_count / n

            if metric.error_rate > 0.5 or (duration_ms and duration_ms > self.unhealthy_latency_ms):
                metric.status = HealthStatus.UNHEALTHY
            elif metric.error_rate > 0.1 or (duration_ms and duration_ms > self.degraded_latency_ms):
                metric.status = HealthStatus.DEGRADED
            else:
                metric.status = HealthStatus.HEALTHY

            self._services[service_name] = metric

            self.store.increment(
                "service_requests_total",
                {"service": service_name, "status": "error" if is_error else "success"},
            )
            if duration_ms is not None:
                self.store.observe("service_response_time_ms", {"service": service_name}, duration_ms)

            metric = ServiceMetric(**vars(metric))

        if metric.status != HealthStatus.HEALTHY:
            logger.debug(
                f"Service {service_name} is {metric.status.value} "
                f"(error_rate={metric.error_rate:.2f})",
                extra={"service": service_name, "status_code": status_code},
            )
        return metric

    def observe(self, name: str, labels: Optional[Dict[str, str]], value: float) -> None:
        self.store.observe(name, labels, value)

    # ── Reading ───────────────────────────────────────────────────

    def get_uptime_seconds(self) -> int:
        return int(time.monotonic() - self._start_time)

    def get_percentile(self, p: float, name: str = REQUEST_DURATION_METRIC) -> float:
        """Nearest-rank percentile over every series of a histogram family."""
        return percentile(self.store.family_series(name), p)

    def get_request_metrics(self) -> Dict[str, Any]:
        with self.lock:
            return self._requests.to_dict()

    def get_service_metrics(self, service_name: str) -> Optional[ServiceMetric]:
        with self.lock:
            metric = self._services.get(service_name)
            return ServiceMetric(**vars(metric)) if metric else None

    def service_metrics(self) -> Dict[str, ServiceMetric]:
        with self.lock:
            return {name: ServiceMetric(**vars(m)) for name, m in self._services.items()}

    def get_health_score(self) -> int:
        """
        Weighted composite score in [0, 100].

        40% request success rate, 30% average response-time band,
        30% mean of per-service status scores.
        """
        with self.lock:
            req = self._requests
            request_score = (req.successful / req.total) * 100 if req.total > 0 else 100

            avg = req.average_response_time_ms
            if avg < 1000:
                response_time_score = 100
            elif avg < 5000:
                response_time_score = 75
            else:
                response_time_score = 50

            service_scores = [
                SERVICE_STATUS_SCORES.get(m.status, 0) for m in self._services.values()
            ]
            service_score = (
                sum(service_scores) / len(service_scores) if service_scores else 100
            )

        weighted = request_score * 0.4 + response_time_score * 0.3 + service_score * 0.3
        # halves round up
        score = math.floor(weighted + 0.5)
        return max(0, min(100, score))

    def get_metrics(self) -> Dict[str, Any]:
        """Full JSON view of request, service and process metrics."""
        from .system import system_info

        with self.lock:
            req = self._requests
            return {
                "timestamp": _now_iso(),
                "uptime": self.get_uptime_seconds(),
                "requests": req.to_dict(),
                "services": {name: m.to_dict() for name, m in self._services.items()},
                "system": system_info(),
                "performance": {
                    "averageResponseTime": req.average_response_time_ms,
                    "slowRequestsCount": req.slow,
                    "errorRequestsCount": req.failed,
                },
            }

    def get_summary(self) -> Dict[str, Any]:
        """Dashboard summary."""
        score = self.get_health_score()
        if score >= 90:
            band = "excellent"
        elif score >= 70:
            band = "good"
        elif score >= 50:
            band = "warning"
        else:
            band = "critical"

        with self.lock:
            req = self._requests
            statuses = [m.status for m in self._services.values()]
            uptime = self.get_uptime_seconds()
            return {
                "healthScore": score,
                "status": band,
                "uptime": {"seconds": uptime, "human": format_uptime(uptime)},
                "requests": {
                    "total": req.total,
                    "errorRate": round(req.error_rate * 100),
                    "averageResponseTime": round(req.average_response_time_ms),
                },
                "services": {
                    "total": len(statuses),
                    "healthy": statuses.count(HealthStatus.HEALTHY),
                    "degraded": statuses.count(HealthStatus.DEGRADED),
                    "unhealthy": statuses.count(HealthStatus.UNHEALTHY),
                },
            }

    def reset_metrics(self) -> None:
        """Clear everything and restart the uptime anchor."""
        with self.lock:
            self._requests = RequestCounter()
            self._services.clear()
            self.store.reset()
            self._seed_defaults()
            self._start_time = time.monotonic()
        logger.info("Metrics reset")


def format_uptime(seconds: int) -> str:
    """Format seconds as ``1d 2h 3m``, ``2h 3m 4s``, ``3m 4s`` or ``4s``."""
    days, rest = divmod(int(seconds), 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
