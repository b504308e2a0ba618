# backend/tests/test_correlation_id.py
"""
Tests for correlation ID middleware, context management and log formatting.
"""

import json
import logging

import pytest

from portfolio_engine.utils.context import clear_correlation_id, get_correlation_id, set_correlation_id
from portfolio_engine.utils.logging import (
    NO_CORRELATION_ID,
    CorrelationIdFilter,
    JsonFormatter,
    _get_log_level,
)


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("portfolio_engine.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationIdContext:
    """Tests for correlation ID context functions."""

    def test_get_returns_none_when_not_set(self):
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_set_and_get_correlation_id(self):
        set_correlation_id("test-correlation-123")
        assert get_correlation_id() == "test-correlation-123"
        clear_correlation_id()

    def test_clear_correlation_id(self):
        set_correlation_id("test-correlation-456")
        clear_correlation_id()
        assert get_correlation_id() is None


class TestCorrelationIdMiddleware:
    """Tests for correlation ID middleware."""

    def test_generates_correlation_id_when_not_provided(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        correlation_id = response.headers["X-Correlation-ID"]
        assert len(correlation_id) == 36
        assert correlation_id.count("-") == 4

    def test_uses_provided_correlation_id(self, client):
        response = client.get("/health/live", headers={"X-Correlation-ID": "my-trace-123"})

        assert response.headers["X-Correlation-ID"] == "my-trace-123"

    def test_uses_request_id_header_as_fallback(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "my-request-456"})

        assert response.headers["X-Correlation-ID"] == "my-request-456"

    def test_prefers_correlation_id_over_request_id(self, client):
        response = client.get(
            "/health/live",
            headers={"X-Correlation-ID": "correlation-123", "X-Request-ID": "request-456"},
        )

        assert response.headers["X-Correlation-ID"] == "correlation-123"

    def test_error_responses_carry_correlation_id(self, client):
        response = client.get("/portfolio")

        assert response.status_code == 401
        assert "X-Correlation-ID" in response.headers

    def test_different_requests_get_different_ids(self, client):
        id1 = client.get("/health/live").headers["X-Correlation-ID"]
        id2 = client.get("/health/live").headers["X-Correlation-ID"]

        assert id1 != id2


class TestLogging:

    def test_filter_adds_current_id(self):
        set_correlation_id("abc-123")
        record = _record()

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "abc-123"
        clear_correlation_id()

    def test_filter_placeholder_outside_request(self):
        clear_correlation_id()
        record = _record()

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == NO_CORRELATION_ID

    def test_json_formatter(self):
        record = _record("Snapshot recorded", correlation_id="abc-123", user_id=7, amount=object())

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "portfolio_engine.test"
        assert entry["correlation_id"] == "abc-123"
        assert entry["message"] == "Snapshot recorded"
        assert entry["extra"]["user_id"] == 7
        assert isinstance(entry["extra"]["amount"], str)

    @pytest.mark.parametrize("name,expected", [
        ("debug", logging.DEBUG),
        (" WARN ", logging.WARNING),
        ("ERROR", logging.ERROR),
    ])
    def test_log_level_names(self, name, expected):
        assert _get_log_level(name) == expected

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            _get_log_level("LOUD")
