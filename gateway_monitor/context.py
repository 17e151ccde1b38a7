"""
Monitor Context — The collector, aggregator and exporter for one process.

Request handlers receive the context explicitly (Flask keeps it in
``app.extensions``) instead of reaching for module-level singletons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config.loader import MonitorSettings, load_settings
from .observability.exporter import Exporter
from .observability.health import HealthAggregator
from .observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class MonitorContext:
    """Everything a request handler needs to record and report."""

    settings: MonitorSettings
    collector: MetricsCollector
    aggregator: HealthAggregator
    exporter: Exporter

    def start(self) -> None:
        """Begin dependency polling."""
        self.aggregator.start(self.settings.poll_interval_ms)

    def shutdown(self) -> None:
        """Stop dependency polling. Safe to call more than once."""
        self.aggregator.stop()


def create_context(
    settings: Optional[MonitorSettings] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> MonitorContext:
    """Build a context from settings (loaded from the environment if omitted)."""
    settings = settings or load_settings()

    collector = MetricsCollector(
        slow_request_threshold_ms=settings.slow_request_threshold_ms,
    )
    aggregator = HealthAggregator(
        settings.dependencies,
        policy=settings.policy,
        timeout_ms=settings.check_timeout_ms,
        version=settings.version,
        transport=transport,
    )
    exporter = Exporter(collector, aggregator)

    logger.debug(
        f"Monitor context created ({len(settings.dependencies)} dependencies)"
    )
    return MonitorContext(
        settings=settings,
        collector=collector,
        aggregator=aggregator,
        exporter=exporter,
    )
