"""
Config Loader — Build monitor settings from environment and YAML.

Settings come from environment variables (a ``.env`` file is loaded by the
CLI before this runs). When ``MONITOR_CONFIG`` points at a YAML file, its
dependency list replaces the built-in gateway dependencies and its values
override the environment.

## Environment Variables

- HEALTH_CHECK_INTERVAL: Poll interval in ms (default: 30000)
- HEALTH_CHECK_TIMEOUT: Per-check timeout in ms (default: 5000)
- SLOW_REQUEST_THRESHOLD_MS: Slow request log threshold (default: 5000)
- HEALTH_UNHEALTHY_BELOW: Reachable ratio below which status is unhealthy (default: 0.5)
- HEALTH_DEGRADED_BELOW: Reachable ratio below which status is degraded (default: 1.0)
- SERVICE_VERSION: Version reported by /health (default: npm_package_version or 1.0.0)
- AUTH_SERVICE_URL, FINANCIAL_SERVICE_URL, SUBSIDY_SERVICE_URL, INSURANCE_SERVICE_URL
- MONITOR_CONFIG: Path to a YAML config file
- HOST, PORT: Bind address for ``serve`` (default: 0.0.0.0:3000)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import DependencyTarget, HealthPolicy, MonitorFileConfig

logger = logging.getLogger(__name__)

# (name, env var, default base url)
DEFAULT_DEPENDENCIES = (
    ("auth-service", "AUTH_SERVICE_URL", "http://localhost:3001"),
    ("financial-service", "FINANCIAL_SERVICE_URL", "http://localhost:3002"),
    ("subsidy-service", "SUBSIDY_SERVICE_URL", "http://localhost:3003"),
    ("insurance-service", "INSURANCE_SERVICE_URL", "http://localhost:3004"),
)


@dataclass
class MonitorSettings:
    """Effective monitor configuration."""

    poll_interval_ms: int = 30000
    check_timeout_ms: int = 5000
    slow_request_threshold_ms: float = 5000
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3000
    policy: HealthPolicy = field(default_factory=HealthPolicy)
    dependencies: List[DependencyTarget] = field(default_factory=list)
    config_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "poll_interval_ms": self.poll_interval_ms,
            "check_timeout_ms": self.check_timeout_ms,
            "slow_request_threshold_ms": self.slow_request_threshold_ms,
            "version": self.version,
            "host": self.host,
            "port": self.port,
            "policy": self.policy.model_dump(),
            "dependencies": [d.model_dump() for d in self.dependencies],
            "config_path": str(self.config_path) if self.config_path else None,
        }


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"expected an integer, got {raw!r}", variable=name)
    if value <= 0:
        raise ConfigurationError(f"must be positive, got {value}", variable=name)
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"expected a number, got {raw!r}", variable=name)


def default_dependencies(env: Mapping[str, str]) -> List[DependencyTarget]:
    """The gateway's downstream services, with URLs from the environment."""
    return [
        DependencyTarget(name=name, url=env.get(var) or url)
        for name, var, url in DEFAULT_DEPENDENCIES
    ]


def load_file_config(path: Path) -> MonitorFileConfig:
    """Load and validate a monitor YAML file."""
    if not path.exists():
        raise ConfigurationError(f"config file not found: {path}", variable="MONITOR_CONFIG")

    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}: {e}", variable="MONITOR_CONFIG")

    if not isinstance(data, dict):
        raise ConfigurationError(f"expected a mapping in {path}", variable="MONITOR_CONFIG")

    try:
        return MonitorFileConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid config in {path}: {e}", variable="MONITOR_CONFIG")


def load_settings(
    env: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> MonitorSettings:
    """
    Build settings from the environment and an optional YAML file.

    Args:
        env: Environment mapping (defaults to ``os.environ``)
        config_path: YAML file; defaults to ``MONITOR_CONFIG`` if set

    Returns:
        MonitorSettings

    Raises:
        ConfigurationError: If a value is malformed
    """
    env = os.environ if env is None else env

    try:
        policy = HealthPolicy(
            unhealthy_below=_get_float(env, "HEALTH_UNHEALTHY_BELOW", 0.5),
            degraded_below=_get_float(env, "HEALTH_DEGRADED_BELOW", 1.0),
        )
    except ValidationError as e:
        raise ConfigurationError(f"invalid health policy: {e}", variable="HEALTH_UNHEALTHY_BELOW")

    settings = MonitorSettings(
        poll_interval_ms=_get_int(env, "HEALTH_CHECK_INTERVAL", 30000),
        check_timeout_ms=_get_int(env, "HEALTH_CHECK_TIMEOUT", 5000),
        slow_request_threshold_ms=_get_float(env, "SLOW_REQUEST_THRESHOLD_MS", 5000),
        version=env.get("SERVICE_VERSION") or env.get("npm_package_version") or "1.0.0",
        host=env.get("HOST") or "0.0.0.0",
        port=_get_int(env, "PORT", 3000),
        policy=policy,
        dependencies=default_dependencies(env),
    )

    if config_path is None and env.get("MONITOR_CONFIG"):
        config_path = Path(env["MONITOR_CONFIG"])

    if config_path is not None:
        file_config = load_file_config(Path(config_path))
        settings.config_path = Path(config_path)
        if file_config.dependencies:
            settings.dependencies = list(file_config.dependencies)
        if file_config.poll_interval_ms:
            settings.poll_interval_ms = file_config.poll_interval_ms
        if file_config.timeout_ms:
            settings.check_timeout_ms = file_config.timeout_ms
        if file_config.policy is not None:
            settings.policy = file_config.policy
        logger.info(
            f"Loaded monitor config from {config_path} "
            f"({len(settings.dependencies)} dependencies)"
        )

    return settings
