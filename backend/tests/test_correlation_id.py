# backend/tests/test_correlation_id.py
"""
Tests for correlation ID middleware and context management.
"""

import uuid

from fundledger.utils.context import clear_correlation_id, get_correlation_id, set_correlation_id


class TestCorrelationIdContext:
    """Tests for correlation ID context functions."""

    def test_get_returns_none_when_not_set(self):
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_set_and_get_correlation_id(self):
        set_correlation_id("subscribe-123")
        assert get_correlation_id() == "subscribe-123"
        clear_correlation_id()

    def test_clear_correlation_id(self):
        set_correlation_id("transfer-456")
        clear_correlation_id()
        assert get_correlation_id() is None


class TestCorrelationIdMiddleware:
    """Tests for correlation ID middleware."""

    def test_echoes_correlation_header(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "client-supplied-id"})

        assert response.headers["X-Correlation-ID"] == "client-supplied-id"

    def test_falls_back_to_request_id(self, client):
        response = client.get("/health", headers={"X-Request-ID": "gateway-id"})

        assert response.headers["X-Correlation-ID"] == "gateway-id"

    def test_correlation_header_wins_over_request_id(self, client):
        response = client.get(
            "/health",
            headers={"X-Correlation-ID": "primary", "X-Request-ID": "secondary"},
        )

        assert response.headers["X-Correlation-ID"] == "primary"

    def test_generates_uuid_when_missing(self, client):
        response = client.get("/health")

        generated = response.headers["X-Correlation-ID"]
        assert str(uuid.UUID(generated)) == generated

    def test_each_request_gets_its_own_id(self, client):
        first = client.get("/health").headers["X-Correlation-ID"]
        second = client.get("/health").headers["X-Correlation-ID"]

        assert first != second

    def test_present_on_error_responses(self, client):
        response = client.get("/accounts/999", headers={"X-Correlation-ID": "lost-account"})

        assert response.status_code == 404
        assert response.headers["X-Correlation-ID"] == "lost-account"

    def test_context_cleared_after_request(self, client):
        client.get("/health", headers={"X-Correlation-ID": "short-lived"})

        assert get_correlation_id() is None
