"""
Health API — Aggregate and per-dependency health.

Blueprint: health_bp
Routes:
    /health                           (GET, cached aggregate)
    /health/check                     (POST, run a check pass now)
    /health/dependencies/<name>       (GET, one cached record)
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from ..errors import ErrorKind, MonitorError
from ..observability.health import HealthStatus
from .helpers import monitor

health_bp = Blueprint("health", __name__)


def _health_response(health):
    # degraded still answers 200
    status_code = 503 if health.status == HealthStatus.UNHEALTHY else 200
    return jsonify(health.to_dict()), status_code


@health_bp.route("/health")
def get_health():
    """Last-known aggregate health. Never waits on dependencies."""
    return _health_response(monitor().aggregator.get_health())


@health_bp.route("/health/check", methods=["POST"])
def run_check():
    """Probe every dependency now and return the refreshed aggregate."""
    aggregator = monitor().aggregator
    aggregator.check_all()
    return _health_response(aggregator.get_health())


@health_bp.route("/health/dependencies/<name>")
def get_dependency(name: str):
    """Cached record for one dependency."""
    health = monitor().aggregator.get_health()
    record = health.checks.get(name)
    if record is None:
        raise MonitorError(ErrorKind.NOT_FOUND, f"Unknown dependency: {name}")
    return jsonify({"name": name, **record.to_dict()})
