"""
Core API — Service identity endpoints.

Blueprint: core_bp
Routes:
    /                 (service banner)
    /api/version
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from .helpers import monitor

core_bp = Blueprint("core", __name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@core_bp.route("/")
def index():
    return jsonify({
        "message": "DaorsAgro API Gateway",
        "version": monitor().settings.version,
        "endpoints": ["/health", "/metrics", "/metrics/performance", "/metrics/detailed"],
        "timestamp": _now_iso(),
    })


@core_bp.route("/api/version")
def api_version():
    return jsonify({
        "service": current_app.config["SERVICE_NAME"],
        "version": monitor().settings.version,
        "timestamp": _now_iso(),
    })
