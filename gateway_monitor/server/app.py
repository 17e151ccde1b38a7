"""
Monitor Server — Flask app exposing health and metrics.

Every request is timed and fed to the collector once its response is ready.
Errors are returned as JSON envelopes built from ``errors.ERROR_TABLE``;
stack traces are logged, never sent.
"""

from __future__ import annotations

import atexit
import logging
import time
from typing import Optional
from uuid import uuid4

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from ..context import MonitorContext, create_context
from ..errors import ErrorKind, MonitorError, error_body, kind_for_status
from .helpers import EXTENSION_KEY, request_id
from .routes_core import core_bp
from .routes_health import health_bp
from .routes_metrics import metrics_bp

logger = logging.getLogger(__name__)


def create_app(context: Optional[MonitorContext] = None) -> Flask:
    """Create the Flask application bound to a monitor context."""
    app = Flask(__name__)

    context = context or create_context()
    app.extensions[EXTENSION_KEY] = context
    app.config["SERVICE_NAME"] = "api-gateway"
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024

    # ── Register Blueprints ───────────────────────────────────────
    app.register_blueprint(core_bp)                                  # /, /api/version
    app.register_blueprint(health_bp)                                # /health/*
    app.register_blueprint(metrics_bp, url_prefix="/metrics")        # /metrics/*

    # ── Error Handlers ────────────────────────────────────────────

    @app.errorhandler(MonitorError)
    def handle_monitor_error(e: MonitorError):
        if e.kind == ErrorKind.INTERNAL:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        return jsonify(error_body(e, request_id())), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        status = e.code or 500
        error = MonitorError(kind_for_status(status), e.description)
        return jsonify(error_body(error, request_id())), status

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        error = MonitorError(ErrorKind.INTERNAL)
        return jsonify(error_body(error, request_id())), error.status_code

    # ── Request Metrics ───────────────────────────────────────────

    @app.before_request
    def start_timer():
        g.start_time = time.monotonic()
        g.request_id = request.headers.get("X-Request-ID") or str(uuid4())

    @app.after_request
    def record_request(response):
        duration_ms = 0.0
        if hasattr(g, "start_time"):
            duration_ms = round((time.monotonic() - g.start_time) * 1000, 3)

        context.collector.record_request(
            request.method, request.path, response.status_code, duration_ms
        )
        response.headers["X-Request-ID"] = request_id()

        logger.debug(
            f"{request.method} {request.path} → {response.status_code} ({duration_ms:.0f}ms)",
            extra={"request_id": request_id()},
        )
        return response

    logger.info(f"Monitor server initialized ({len(context.settings.dependencies)} dependencies)")

    return app


def run_server(
    context: MonitorContext,
    host: str = "0.0.0.0",
    port: int = 3000,
    poll: bool = True,
    debug: bool = False,
) -> None:
    """
    Run the monitor server until interrupted.

    Args:
        context: Monitor context to serve
        host: Bind address
        port: Port to run on
        poll: Start background dependency polling
        debug: Enable Flask debug mode
    """
    app = create_app(context)

    if poll:
        context.start()
    atexit.register(context.shutdown)

    logger.info(f"Serving health and metrics on http://{host}:{port}")
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False, threaded=True)
    finally:
        context.shutdown()
