# backend/tests/routers/test_deposits_api.py
"""
API tests for the term deposit endpoints.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def portfolio(client: TestClient) -> dict:
    """A portfolio with 1,000,000 of cash recorded on 2024-01-01."""
    owner = client.post("/accounts", json={"name": "Owner"}).json()["id"]
    portfolio_id = client.post("/portfolios", json={"account_id": owner, "name": "Savings"}).json()["id"]
    response = client.post(
        f"/portfolios/{portfolio_id}/cash-flow/deposit",
        json={"amount": "1000000", "flow_date": "2024-01-01"},
    )
    assert response.status_code == 201
    return {"id": portfolio_id, "owner": owner}


def open_deposit(client: TestClient, portfolio_id: int, **overrides) -> dict:
    body = {
        "bank_name": "Bank A",
        "principal": "400000",
        "interest_rate": "5.5",
        "start_date": "2024-01-02",
        "end_date": "2024-07-02",
    } | overrides
    response = client.post(f"/portfolios/{portfolio_id}/deposits", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def balance(client: TestClient, portfolio_id: int) -> Decimal:
    return Decimal(client.get(f"/portfolios/{portfolio_id}/cash-flow/balance").json()["balance"])


class TestDepositsApi:

    def test_open_deposit(self, client, portfolio):
        deposit = open_deposit(client, portfolio["id"])

        assert deposit["status"] == "ACTIVE"
        assert Decimal(deposit["principal"]) == Decimal("400000")
        assert deposit["settlement_cash_flow_id"] is None
        assert balance(client, portfolio["id"]) == Decimal("600000")

    def test_end_before_start_rejected_by_schema(self, client, portfolio):
        response = client.post(
            f"/portfolios/{portfolio['id']}/deposits",
            json={"bank_name": "Bank A", "principal": "1", "start_date": "2024-05-01", "end_date": "2024-01-01"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "RequestValidationError"

    def test_term_too_long(self, client, portfolio):
        response = client.post(
            f"/portfolios/{portfolio['id']}/deposits",
            json={"bank_name": "Bank A", "principal": "1", "start_date": "2024-01-01", "end_date": "2035-01-01"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "end_date"}

    def test_settle(self, client, portfolio):
        deposit = open_deposit(client, portfolio["id"])

        response = client.post(
            f"/portfolios/{portfolio['id']}/deposits/{deposit['id']}/settle",
            json={"actual_interest": "11000", "settlement_date": "2024-07-02"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "SETTLED"
        assert Decimal(body["actual_interest"]) == Decimal("11000")
        assert balance(client, portfolio["id"]) == Decimal("1011000")

    def test_settle_twice_conflicts(self, client, portfolio):
        deposit = open_deposit(client, portfolio["id"])
        url = f"/portfolios/{portfolio['id']}/deposits/{deposit['id']}/settle"
        client.post(url, json={"settlement_date": "2024-07-02"})

        response = client.post(url, json={"settlement_date": "2024-07-03"})

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidStateError"

    def test_list_and_get(self, client, portfolio):
        first = open_deposit(client, portfolio["id"])
        second = open_deposit(client, portfolio["id"], bank_name="Bank B", start_date="2024-02-01",
                              end_date="2024-08-01")
        client.post(
            f"/portfolios/{portfolio['id']}/deposits/{first['id']}/settle",
            json={"settlement_date": "2024-07-02"},
        )

        listed = client.get(f"/portfolios/{portfolio['id']}/deposits").json()
        active = client.get(f"/portfolios/{portfolio['id']}/deposits", params={"status": "ACTIVE"}).json()
        one = client.get(f"/portfolios/{portfolio['id']}/deposits/{second['id']}")

        assert [d["id"] for d in listed] == [second["id"], first["id"]]
        assert [d["id"] for d in active] == [second["id"]]
        assert one.status_code == 200
        assert one.json()["bank_name"] == "Bank B"

    def test_unknown_deposit(self, client, portfolio):
        response = client.get(f"/portfolios/{portfolio['id']}/deposits/999")

        assert response.status_code == 404
        assert response.json()["error"] == "DepositNotFoundError"

    def test_delete_restores_cash(self, client, portfolio):
        deposit = open_deposit(client, portfolio["id"])

        response = client.delete(f"/portfolios/{portfolio['id']}/deposits/{deposit['id']}")

        assert response.status_code == 204
        assert balance(client, portfolio["id"]) == Decimal("1000000")
        history = client.get(f"/portfolios/{portfolio['id']}/cash-flow/history").json()
        assert [item["type"] for item in history["items"]] == ["DEPOSIT"]

    def test_non_owner_cannot_open(self, client, portfolio):
        outsider = client.post("/accounts", json={"name": "Outsider"}).json()["id"]

        response = client.post(
            f"/portfolios/{portfolio['id']}/deposits",
            params={"account_id": outsider},
            json={"bank_name": "Bank A", "principal": "1", "start_date": "2024-01-02", "end_date": "2024-02-02"},
        )

        assert response.status_code == 403

    def test_ledger_endpoint_rejects_deposit_type(self, client, portfolio):
        response = client.post(
            f"/portfolios/{portfolio['id']}/cash-flow/deposit_creation", json={"amount": "100"}
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "type"}

    def test_ledger_cannot_cancel_deposit_entry(self, client, portfolio):
        deposit = open_deposit(client, portfolio["id"])

        response = client.put(
            f"/portfolios/{portfolio['id']}/cash-flow/{deposit['creation_cash_flow_id']}/cancel"
        )

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidStateError"
