# backend/tests/routers/test_error_handling.py
"""
Integration tests for error handling across the API.

These tests verify:
- Consistent error response format (ErrorDetail schema)
- Correct HTTP status codes for framework errors
- Validation error details
- Health endpoints
"""

import pytest


ERROR_KEYS = {"error", "message", "details"}


@pytest.fixture
def portfolio_id(client) -> int:
    owner = client.post("/accounts", json={"name": "Owner"}).json()["id"]
    return client.post("/portfolios", json={"account_id": owner, "name": "Main"}).json()["id"]


class TestErrorFormat:

    def test_service_error_shape(self, client):
        response = client.get("/portfolios/424242")

        assert response.status_code == 404
        body = response.json()
        assert set(body) == ERROR_KEYS
        assert body["error"] == "PortfolioNotFoundError"
        assert body["details"] == {"resource_type": "Portfolio", "resource_id": 424242}

    def test_unknown_route(self, client):
        response = client.get("/no-such-endpoint")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_wrong_method(self, client):
        response = client.patch("/accounts")

        assert response.status_code == 405
        assert response.json()["error"] == "MethodNotAllowedError"

    def test_validation_error_details(self, client, portfolio_id):
        response = client.post(
            f"/portfolios/{portfolio_id}/cash-flow/deposit",
            json={"amount": "not-a-number"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "RequestValidationError"
        assert isinstance(body["details"], list)
        fields = {d["field"] for d in body["details"]}
        assert "body.amount" in fields
        assert all({"field", "message", "type"} <= set(d) for d in body["details"])

    def test_missing_body(self, client, portfolio_id):
        response = client.post(f"/portfolios/{portfolio_id}/investors/subscribe")

        assert response.status_code == 422

    def test_bad_path_parameter(self, client):
        response = client.get("/portfolios/abc")

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "path.portfolio_id"


class TestHealthEndpoints:

    def test_liveness(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"
        assert "version" in response.json()

    def test_readiness(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"
