"""
Metrics API — Prometheus scrape target and JSON summaries.

Blueprint: metrics_bp
Prefix: /metrics
Routes:
    /metrics                          (GET, Prometheus text or ?format=json)
    /metrics/performance              (GET)
    /metrics/detailed                 (GET)
    /metrics/summary                  (GET)
    /metrics/services/<name>          (GET one service, POST record a call)
    /metrics/reset                    (POST)
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, jsonify, request

from ..errors import ErrorKind, MonitorError
from ..observability.exporter import PROMETHEUS_CONTENT_TYPE
from .helpers import monitor

logger = logging.getLogger(__name__)

metrics_bp = Blueprint("metrics", __name__)


def _render(name: str, fn):
    try:
        return fn()
    except MonitorError:
        raise
    except Exception as e:
        logger.exception(f"Failed to generate {name} metrics")
        raise MonitorError(
            ErrorKind.INTERNAL, f"Failed to generate {name} metrics"
        ) from e


@metrics_bp.route("")
@metrics_bp.route("/")
def get_metrics():
    """Prometheus text by default; JSON with ``?format=json``."""
    output_format = request.args.get("format", "prometheus").lower()
    exporter = monitor().exporter

    if output_format == "json":
        return jsonify(_render("json", exporter.export_json))
    if output_format != "prometheus":
        raise MonitorError(
            ErrorKind.VALIDATION,
            f"Unsupported format: {output_format}",
            details={"allowed": ["prometheus", "json"]},
        )

    body = _render("prometheus", exporter.export_prometheus)
    return Response(body, status=200, content_type=PROMETHEUS_CONTENT_TYPE)


@metrics_bp.route("/performance")
def get_performance():
    return jsonify(_render("performance", monitor().exporter.performance))


@metrics_bp.route("/detailed")
def get_detailed():
    return jsonify(_render("detailed", monitor().exporter.detailed))


@metrics_bp.route("/summary")
def get_summary():
    return jsonify(_render("summary", monitor().collector.get_summary))


@metrics_bp.route("/services/<name>", methods=["GET"])
def get_service(name: str):
    metric = monitor().collector.get_service_metrics(name)
    if metric is None:
        raise MonitorError(ErrorKind.NOT_FOUND, f"No metrics for service: {name}")
    return jsonify({"service": name, **metric.to_dict()})


@metrics_bp.route("/services/<name>", methods=["POST"])
def record_service(name: str):
    """
    Record one outbound call made by an external proxy.

    Body: {"statusCode": 200, "durationMs": 35}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise MonitorError(ErrorKind.VALIDATION, "Expected a JSON object body")

    status_code = data.get("statusCode")
    if not isinstance(status_code, int) or isinstance(status_code, bool) or not 100 <= status_code <= 599:
        raise MonitorError(
            ErrorKind.VALIDATION,
            "statusCode must be an integer between 100 and 599",
            details={"field": "statusCode"},
        )

    duration_ms = data.get("durationMs")
    if duration_ms is not None:
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)) or duration_ms < 0:
            raise MonitorError(
                ErrorKind.VALIDATION,
                "durationMs must be a non-negative number",
                details={"field": "durationMs"},
            )

    metric = monitor().collector.record_service_response(name, status_code, duration_ms)
    return jsonify({"service": name, **metric.to_dict()}), 201


@metrics_bp.route("/reset", methods=["POST"])
def reset_metrics():
    monitor().collector.reset_metrics()
    return jsonify({"success": True})
