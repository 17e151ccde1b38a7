"""
Tests for log formatting and setup.
"""

import json
import logging

import pytest

from gateway_monitor.logging_config import HumanFormatter, JSONFormatter, setup_logging


def _record(msg="Slow request detected", level=logging.WARNING, **extra):
    record = logging.LogRecord(
        "gateway_monitor.observability.metrics", level, __file__, 1, msg, None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_structured_fields(self):
        """Test structured extras are emitted."""
        line = JSONFormatter().format(_record(method="GET", path="/x/:id", duration_ms=6200))
        entry = json.loads(line)

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "gateway_monitor.observability.metrics"
        assert entry["message"] == "Slow request detected"
        assert entry["method"] == "GET"
        assert entry["duration_ms"] == 6200
        assert "status_code" not in entry

    def test_exception(self):
        """Test exception text is included."""
        try:
            raise ValueError("bad")
        except ValueError:
            import sys
            record = _record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]


class TestHumanFormatter:
    """Tests for HumanFormatter."""

    def test_appends_fields(self):
        """Test extras are appended as key=value."""
        line = HumanFormatter().format(_record(msg="Error request", status_code=500))

        assert "[metrics        ]" in line
        assert line.endswith("Error request status_code=500")


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers = list(root.handlers)
        level = root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_format(self):
        """Test ?format=json."""
        setup_logging("debug", "json")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_env_defaults(self, monkeypatch):
        """Test LOG_LEVEL and LOG_FORMAT defaults."""
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        setup_logging()

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, HumanFormatter)

    def test_unknown_level_falls_back_to_info(self):
        """Test an unknown level falls back to INFO."""
        setup_logging("chatty", "text")
        assert logging.getLogger().level == logging.INFO

    def test_quiets_http_loggers(self):
        """Test HTTP library loggers are quieted."""
        setup_logging("DEBUG", "text")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("werkzeug").level == logging.WARNING
