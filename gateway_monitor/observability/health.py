"""
Health Check — Poll dependent services and roll up one status.

The aggregator probes ``GET <url>/health`` on every configured dependency,
caches one ``ServiceHealthRecord`` per dependency, and derives the overall
status from the cache on read. Reads never wait on the network.

## Usage

    from gateway_monitor.observability.health import HealthAggregator

    aggregator = HealthAggregator(dependencies)
    aggregator.start(poll_interval_ms=30000)

    health = aggregator.get_health()
    if health.status == HealthStatus.HEALTHY:
        print("All dependencies operational")

    aggregator.stop()

## Roll-up

1. No dependencies configured: healthy
2. Any critical dependency unhealthy: unhealthy
3. Reachable ratio (healthy + degraded) below ``unhealthy_below``: unhealthy
4. Ratio below ``degraded_below`` or any dependency degraded: degraded
5. Otherwise healthy

A dependency that has not been checked yet counts as unhealthy.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ..config.models import DependencyTarget, HealthPolicy

logger = logging.getLogger(__name__)

USER_AGENT = "DaorsAgro-HealthCheck/1.0"

HEALTHY_BODY_STATUSES = {"healthy", "ok", "up", "pass"}


class HealthStatus(str, Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ServiceHealthRecord:
    """Latest observed health of one dependency."""

    service_name: str
    status: HealthStatus
    message: str = ""
    last_checked_at: Optional[str] = None
    response_time_ms: Optional[float] = None
    critical: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.last_checked_at,
            "responseTime": self.response_time_ms,
            "critical": self.critical,
            "details": self.details,
        }


@dataclass
class OverallHealth:
    """Aggregate status derived from the current records."""

    status: HealthStatus
    timestamp: str
    version: str
    uptime_seconds: float
    checks: Dict[str, ServiceHealthRecord]
    healthy_count: int
    reachable_count: int
    total: int

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    @property
    def ratio(self) -> float:
        return self.reachable_count / self.total if self.total else 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "version": self.version,
            "uptime": self.uptime_seconds,
            "checks": {name: r.to_dict() for name, r in self.checks.items()},
            "summary": {
                "healthy": self.healthy_count,
                "reachable": self.reachable_count,
                "total": self.total,
                "ratio": self.ratio,
            },
        }


def rollup(records: List[ServiceHealthRecord], policy: HealthPolicy) -> HealthStatus:
    """Derive the overall status from dependency records."""
    if not records:
        return HealthStatus.HEALTHY

    statuses = [r.status for r in records]
    if any(r.critical and r.status == HealthStatus.UNHEALTHY for r in records):
        return HealthStatus.UNHEALTHY

    reachable = sum(1 for s in statuses if s != HealthStatus.UNHEALTHY)
    ratio = reachable / len(records)

    if ratio < policy.unhealthy_below:
        return HealthStatus.UNHEALTHY
    if ratio < policy.degraded_below or HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def classify_response(response: httpx.Response) -> tuple:
    """Map a health endpoint response to (status, message, details)."""
    if not response.is_success:
        return HealthStatus.UNHEALTHY, f"HTTP {response.status_code}", {}

    try:
        body = response.json()
    except ValueError:
        snippet = response.text.strip()[:80]
        return (
            HealthStatus.UNHEALTHY,
            f"Malformed health response: not JSON ({snippet!r})",
            {},
        )

    if not isinstance(body, dict):
        return (
            HealthStatus.UNHEALTHY,
            f"Malformed health response: expected object, got {type(body).__name__}",
            {},
        )

    reported = str(body.get("status", "healthy")).lower()
    if reported in HEALTHY_BODY_STATUSES:
        return HealthStatus.HEALTHY, f"HTTP {response.status_code}", body
    if reported == HealthStatus.DEGRADED.value:
        return HealthStatus.DEGRADED, "Service reports degraded", body
    return HealthStatus.UNHEALTHY, f"Service reports {reported}", body


class HealthAggregator:
    """
    Dependency health poller.

    Check passes run the probes concurrently, one worker per dependency, and
    replace each dependency's record as its probe completes. Passes are
    serialized so a timer pass and a manual pass never interleave.
    """

    def __init__(
        self,
        dependencies: List[DependencyTarget],
        policy: Optional[HealthPolicy] = None,
        timeout_ms: int = 5000,
        version: str = "1.0.0",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.dependencies = list(dependencies)
        self.policy = policy or HealthPolicy()
        self.timeout_ms = timeout_ms
        self.version = version
        self._transport = transport
        self._records: Dict[str, ServiceHealthRecord] = {}
        self._records_lock = threading.Lock()
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_time = time.time()

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, poll_interval_ms: int = 30000) -> None:
        """Run one check pass now, then keep polling in the background."""
        if self.running:
            logger.debug("Health polling already running")
            return

        logger.info(
            f"Starting health checks for {len(self.dependencies)} dependencies "
            f"(interval={poll_interval_ms}ms)"
        )
        # fresh event per poller thread
        self._stop_event = threading.Event()
        self.check_all()

        self._thread = threading.Thread(
            target=self._poll_loop,
            args=(poll_interval_ms / 1000, self._stop_event),
            name="health-poller",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop polling. Safe to call when not started."""
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.timeout_ms / 1000 + 1)
            logger.info("Stopped health checks")

    def _poll_loop(self, interval_seconds: float, stop_event: threading.Event) -> None:
        while not stop_event.wait(interval_seconds):
            try:
                self.check_all()
            except Exception:
                logger.exception("Health check pass failed")

    # ── Checks ────────────────────────────────────────────────────

    def check_all(self) -> Dict[str, ServiceHealthRecord]:
        """Probe every dependency concurrently and update the cache."""
        if not self.dependencies:
            return {}

        with self._pass_lock:
            with ThreadPoolExecutor(
                max_workers=len(self.dependencies),
                thread_name_prefix="health-check",
            ) as pool:
                results = list(pool.map(self._check_and_store, self.dependencies))

        unhealthy = [r.service_name for r in results if r.status != HealthStatus.HEALTHY]
        if unhealthy:
            logger.warning(f"Dependencies not healthy: {', '.join(unhealthy)}")
        else:
            logger.debug("All dependencies healthy")
        return {r.service_name: r for r in results}

    def _check_and_store(self, dependency: DependencyTarget) -> ServiceHealthRecord:
        record = self.check_dependency(dependency)
        with self._records_lock:
            self._records[dependency.name] = record
        return record

    def check_dependency(self, dependency: DependencyTarget) -> ServiceHealthRecord:
        """Probe one dependency. Never raises."""
        timeout_s = (dependency.timeout_ms or self.timeout_ms) / 1000
        checked_at = _now_iso()
        start = time.monotonic()
        deadline = start + timeout_s

        def record(status: HealthStatus, message: str, details: Optional[Dict] = None):
            return ServiceHealthRecord(
                service_name=dependency.name,
                status=status,
                message=message,
                last_checked_at=checked_at,
                response_time_ms=round((time.monotonic() - start) * 1000, 2),
                critical=dependency.critical,
                details=details or {},
            )

        try:
            with httpx.Client(
                timeout=httpx.Timeout(timeout_s),
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                },
            ) as client:
                response = self._fetch(client, dependency.health_url, deadline)
            status, message, details = classify_response(response)
            return record(status, message, details)
        except httpx.TimeoutException:
            logger.warning(
                f"Health check timed out for {dependency.name}",
                extra={"service": dependency.name},
            )
            return record(HealthStatus.UNHEALTHY, "timeout")
        except httpx.HTTPError as e:
            logger.warning(
                f"Health check failed for {dependency.name}: {e}",
                extra={"service": dependency.name},
            )
            return record(HealthStatus.UNHEALTHY, f"Health check failed: {str(e) or type(e).__name__}")
        except Exception as e:
            logger.error(
                f"Unexpected error checking {dependency.name}: {e}",
                extra={"service": dependency.name},
            )
            return record(HealthStatus.UNHEALTHY, f"Health check failed: {e}")

    @staticmethod
    def _fetch(client: httpx.Client, url: str, deadline: float) -> httpx.Response:
        """
        GET ``url``, giving up once ``deadline`` passes.

        httpx timeouts bound each network step, not the whole exchange, so
        a body that keeps trickling in is cut off here.
        """
        with client.stream("GET", url) as response:
            body = bytearray()
            for chunk in response.iter_bytes():
                body.extend(chunk)
                if time.monotonic() > deadline:
                    raise httpx.ReadTimeout("health check deadline exceeded", request=response.request)

        headers = {}
        if "content-type" in response.headers:
            headers["content-type"] = response.headers["content-type"]
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=bytes(body),
            request=response.request,
        )

    # ── Reads ─────────────────────────────────────────────────────

    def get_health(self) -> OverallHealth:
        """Aggregate status from cached records; never blocks on the network."""
        with self._records_lock:
            records = dict(self._records)

        checks: Dict[str, ServiceHealthRecord] = {}
        for dep in self.dependencies:
            checks[dep.name] = records.get(dep.name) or ServiceHealthRecord(
                service_name=dep.name,
                status=HealthStatus.UNHEALTHY,
                message="unknown: not yet checked",
                critical=dep.critical,
            )
        # Records injected for names outside the configured list still count
        for name, rec in records.items():
            checks.setdefault(name, rec)

        values = list(checks.values())
        return OverallHealth(
            status=rollup(values, self.policy),
            timestamp=_now_iso(),
            version=self.version,
            uptime_seconds=round(time.time() - self._start_time, 3),
            checks=checks,
            healthy_count=sum(1 for r in values if r.status == HealthStatus.HEALTHY),
            reachable_count=sum(1 for r in values if r.status != HealthStatus.UNHEALTHY),
            total=len(values),
        )

    def get_service_status(self, service_name: str) -> Optional[ServiceHealthRecord]:
        with self._records_lock:
            return self._records.get(service_name)

    def set_service_status(self, record: ServiceHealthRecord) -> None:
        """Replace a record directly (testing and manual overrides)."""
        with self._records_lock:
            self._records[record.service_name] = record

    def is_healthy(self) -> bool:
        return self.get_health().status == HealthStatus.HEALTHY

    def get_uptime(self) -> Dict[str, Any]:
        uptime = time.time() - self._start_time
        hours, rest = divmod(int(uptime), 3600)
        minutes, seconds = divmod(rest, 60)
        return {
            "uptime": uptime,
            "uptimeHuman": f"{hours}h {minutes}m {seconds}s",
        }
