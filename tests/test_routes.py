"""
Tests for the Flask HTTP surface.
"""

import pytest

from gateway_monitor.context import create_context
from gateway_monitor.server.app import create_app

from conftest import SERVICE_NAMES, host_transport, ok, server_error


class TestHealthRoutes:
    """Tests for /health endpoints."""

    def test_unchecked_is_unhealthy(self, client):
        """Test /health before any check."""
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.get_json()["status"] == "unhealthy"

    def test_healthy_after_check(self, client, context):
        """Test /health after a check pass."""
        context.aggregator.check_all()

        resp = client.get("/health")
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["status"] == "healthy"
        assert data["version"] == "9.9.9"
        assert set(data["checks"]) == set(SERVICE_NAMES)
        assert data["summary"]["healthy"] == 4

    def test_post_check_runs_pass(self, client):
        """Test POST /health/check."""
        resp = client.post("/health/check")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_degraded_answers_200(self, settings):
        """Test degraded answers 200."""
        handlers = {name: ok for name in SERVICE_NAMES}
        handlers["insurance"] = server_error
        ctx = create_context(settings, transport=host_transport(handlers))
        client = create_app(ctx).test_client()

        resp = client.post("/health/check")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"

    def test_mostly_down_answers_503(self, settings):
        """Test unhealthy answers 503."""
        ctx = create_context(settings, transport=host_transport({"auth": ok}))
        client = create_app(ctx).test_client()

        resp = client.post("/health/check")
        assert resp.status_code == 503
        assert resp.get_json()["checks"]["financial"]["status"] == "unhealthy"

    def test_single_dependency(self, client, context):
        """Test one dependency record."""
        context.aggregator.check_all()

        resp = client.get("/health/dependencies/auth")
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["name"] == "auth"
        assert data["status"] == "healthy"

    def test_unknown_dependency(self, client):
        """Test an unknown dependency."""
        resp = client.get("/health/dependencies/nope")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND"


class TestMetricsRoutes:
    """Tests for /metrics endpoints."""

    def test_prometheus_default(self, client):
        """Test Prometheus is the default format."""
        client.get("/")
        resp = client.get("/metrics")

        assert resp.status_code == 200
        assert resp.content_type.startswith("text/plain")
        text = resp.get_data(as_text=True)
        assert "# TYPE http_requests_total counter" in text
        assert 'http_requests_total{status="success"} 1' in text
        assert 'dependency_up{service="auth"}' in text

    def test_json_format(self, client):
        """Test ?format=json."""
        resp = client.get("/metrics?format=json")
        data = resp.get_json()

        assert resp.status_code == 200
        assert "requests" in data
        assert "store" in data

    def test_unsupported_format(self, client):
        """Test an unsupported format."""
        resp = client.get("/metrics?format=xml")
        error = resp.get_json()["error"]

        assert resp.status_code == 400
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["allowed"] == ["prometheus", "json"]

    def test_performance(self, client):
        """Test /metrics/performance."""
        data = client.get("/metrics/performance").get_json()
        assert set(data["responseTime"]) == {"average", "p50", "p90", "p95", "p99"}

    def test_detailed(self, client):
        """Test /metrics/detailed."""
        data = client.get("/metrics/detailed").get_json()
        assert "healthScore" in data
        assert "dependencies" in data

    def test_summary(self, client):
        """Test /metrics/summary."""
        data = client.get("/metrics/summary").get_json()
        assert data["status"] in ("excellent", "good", "warning", "critical")

    def test_render_failure_is_500(self, client, context, monkeypatch):
        """Test a rendering failure returns a 500 envelope."""
        def boom():
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(context.exporter, "performance", boom)
        resp = client.get("/metrics/performance")
        error = resp.get_json()["error"]

        assert resp.status_code == 500
        assert error["message"] == "Failed to generate performance metrics"
        assert "disk on fire" not in resp.get_data(as_text=True)

    def test_requests_are_recorded(self, client, context):
        """Test every request is recorded."""
        client.get("/")
        client.get("/api/version")
        client.get("/does-not-exist")

        requests = context.collector.get_request_metrics()
        assert requests["total"] == 3
        assert requests["successful"] == 2
        assert requests["failed"] == 1


class TestServiceRoutes:
    """Tests for /metrics/services endpoints."""

    def test_record_and_read(self, client):
        """Test recording and reading a service call."""
        resp = client.post("/metrics/services/auth", json={"statusCode": 200, "durationMs": 35})
        assert resp.status_code == 201
        assert resp.get_json()["requestCount"] == 1

        data = client.get("/metrics/services/auth").get_json()
        assert data["service"] == "auth"
        assert data["status"] == "healthy"
        assert data["responseTime"] == 35

    def test_duration_optional(self, client):
        """Test durationMs may be omitted."""
        resp = client.post("/metrics/services/auth", json={"statusCode": 503})
        assert resp.status_code == 201
        assert resp.get_json()["errorRate"] == 1

    @pytest.mark.parametrize(
        "body",
        [
            {"statusCode": "200"},
            {"statusCode": 99},
            {"statusCode": 600},
            {"statusCode": True},
            {"statusCode": 200, "durationMs": -1},
            {"statusCode": 200, "durationMs": "fast"},
            ["statusCode", 200],
        ],
    )
    def test_invalid_body(self, client, body):
        """Test body validation."""
        resp = client.post("/metrics/services/auth", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_service(self, client):
        """Test an unknown service."""
        resp = client.get("/metrics/services/nope")
        assert resp.status_code == 404

    def test_reset(self, client, context):
        """Test POST /metrics/reset."""
        client.post("/metrics/services/auth", json={"statusCode": 200})

        resp = client.post("/metrics/reset")
        assert resp.get_json() == {"success": True}
        assert context.collector.service_metrics() == {}


class TestCoreRoutes:
    """Tests for core endpoints."""

    def test_index(self, client):
        """Test the banner."""
        data = client.get("/").get_json()
        assert data["version"] == "9.9.9"
        assert "/health" in data["endpoints"]

    def test_version(self, client):
        """Test /api/version."""
        data = client.get("/api/version").get_json()
        assert data["service"] == "api-gateway"

    def test_request_id_echoed(self, client):
        """Test X-Request-ID is echoed."""
        resp = client.get("/", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"

    def test_request_id_generated(self, client):
        """Test X-Request-ID is generated."""
        assert client.get("/").headers["X-Request-ID"]

    def test_not_found_is_json(self, client):
        """Test unknown routes return a JSON 404."""
        resp = client.get("/missing", headers={"X-Request-ID": "r-1"})
        error = resp.get_json()["error"]

        assert resp.status_code == 404
        assert error["code"] == "NOT_FOUND"
        assert error["requestId"] == "r-1"

    def test_method_not_allowed(self, client):
        """Test a wrong method."""
        resp = client.delete("/health")
        assert resp.status_code == 405
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"
