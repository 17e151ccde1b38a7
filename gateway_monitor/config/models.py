"""
Config Models — Pydantic schemas for the monitor configuration file.

The optional YAML file (``MONITOR_CONFIG``) lists the dependencies whose
``/health`` endpoint is polled and may override the roll-up policy:

    poll_interval_ms: 15000
    policy:
      unhealthy_below: 0.5
      degraded_below: 1.0
    dependencies:
      - name: auth-service
        url: http://auth:3001
        critical: true
      - name: subsidy-service
        url: http://subsidy:3003
        timeout_ms: 2000
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class DependencyTarget(BaseModel):
    """A dependent service probed via ``GET <url>/health``."""

    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    critical: bool = False
    timeout_ms: Optional[int] = Field(default=None, gt=0)

    @property
    def health_url(self) -> str:
        return f"{self.url.rstrip('/')}/health"


class HealthPolicy(BaseModel):
    """Thresholds on the reachable-dependency ratio."""

    unhealthy_below: float = Field(default=0.5, ge=0.0, le=1.0)
    degraded_below: float = Field(default=1.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "HealthPolicy":
        if self.unhealthy_below > self.degraded_below:
            raise ValueError("unhealthy_below must not exceed degraded_below")
        return self


class MonitorFileConfig(BaseModel):
    """The monitor YAML schema."""

    version: int = 1
    poll_interval_ms: Optional[int] = Field(default=None, gt=0)
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    policy: Optional[HealthPolicy] = None
    dependencies: List[DependencyTarget] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> "MonitorFileConfig":
        names = [d.name for d in self.dependencies]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate dependency names: {duplicates}")
        return self
