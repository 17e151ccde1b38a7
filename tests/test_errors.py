"""
Tests for the error taxonomy.
"""

import pytest

from gateway_monitor.errors import (
    ERROR_TABLE,
    ConfigurationError,
    ErrorKind,
    MonitorError,
    error_body,
    kind_for_status,
)


class TestErrorTable:
    """Tests for the error kind table."""

    def test_every_kind_mapped(self):
        """Test every kind has a table entry."""
        assert set(ERROR_TABLE) == set(ErrorKind)

    @pytest.mark.parametrize(
        "kind,status,code",
        [
            (ErrorKind.VALIDATION, 400, "VALIDATION_ERROR"),
            (ErrorKind.NOT_FOUND, 404, "NOT_FOUND"),
            (ErrorKind.RATE_LIMITED, 429, "RATE_LIMIT_EXCEEDED"),
            (ErrorKind.SERVICE_UNAVAILABLE, 503, "SERVICE_UNAVAILABLE"),
            (ErrorKind.INTERNAL, 500, "INTERNAL_ERROR"),
        ],
    )
    def test_kind_decides_status_and_code(self, kind, status, code):
        """Test status and wire code come from the kind."""
        error = MonitorError(kind)
        assert error.status_code == status
        assert error.code == code

    def test_default_message(self):
        """Test default and custom messages."""
        assert MonitorError(ErrorKind.NOT_FOUND).message == "Resource not found"
        assert str(MonitorError(ErrorKind.NOT_FOUND, "Unknown service: x")) == "Unknown service: x"


class TestKindForStatus:
    """Tests for mapping HTTP statuses to kinds."""

    def test_known_statuses(self):
        """Test statuses present in the table."""
        assert kind_for_status(404) == ErrorKind.NOT_FOUND
        assert kind_for_status(405) == ErrorKind.VALIDATION
        assert kind_for_status(503) == ErrorKind.SERVICE_UNAVAILABLE

    def test_fallbacks(self):
        """Test unmapped 4xx and 5xx statuses."""
        assert kind_for_status(418) == ErrorKind.VALIDATION
        assert kind_for_status(502) == ErrorKind.INTERNAL


class TestErrorBody:
    """Tests for the JSON error envelope."""

    def test_envelope(self):
        """Test envelope fields."""
        body = error_body(MonitorError(ErrorKind.CONFLICT, "taken"), request_id="req-1")

        error = body["error"]
        assert error["code"] == "CONFLICT"
        assert error["message"] == "taken"
        assert error["requestId"] == "req-1"
        assert error["timestamp"].endswith("Z")
        assert "details" not in error

    def test_details_included(self):
        """Test details are included when present."""
        error = MonitorError(ErrorKind.VALIDATION, details={"field": "statusCode"})
        body = error_body(error)

        assert body["error"]["details"] == {"field": "statusCode"}
        assert "requestId" not in body["error"]


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_names_variable(self):
        """Test the variable name prefixes the message."""
        error = ConfigurationError("expected an integer", variable="PORT")
        assert error.variable == "PORT"
        assert str(error) == "PORT: expected an integer"

    def test_without_variable(self):
        """Test the message without a variable."""
        assert str(ConfigurationError("broken")) == "broken"
