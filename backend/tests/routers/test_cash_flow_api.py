# backend/tests/routers/test_cash_flow_api.py
"""
API tests for the cash-flow ledger endpoints.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def portfolio_id(client: TestClient) -> int:
    owner = client.post("/accounts", json={"name": "Owner"}).json()["id"]
    return client.post("/portfolios", json={"account_id": owner, "name": "Cash"}).json()["id"]


def post_entry(client: TestClient, portfolio_id: int, flow_type: str, **body) -> dict:
    response = client.post(f"/portfolios/{portfolio_id}/cash-flow/{flow_type}", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def balance(client: TestClient, portfolio_id: int, **params) -> Decimal:
    response = client.get(f"/portfolios/{portfolio_id}/cash-flow/balance", params=params)
    assert response.status_code == 200
    return Decimal(response.json()["balance"])


class TestCreateEntry:

    def test_deposit(self, client, portfolio_id):
        entry = post_entry(
            client, portfolio_id, "deposit",
            amount="1500000", flow_date="2024-03-01", funding_source=" VCB ",
        )

        assert entry["type"] == "DEPOSIT"
        assert entry["direction"] == "IN"
        assert entry["status"] == "COMPLETED"
        assert entry["funding_source"] == "VCB"
        assert entry["currency"] == "VND"
        assert entry["version"] == 1
        assert Decimal(entry["amount"]) == Decimal("1500000")

    def test_unknown_type(self, client, portfolio_id):
        response = client.post(f"/portfolios/{portfolio_id}/cash-flow/bonus", json={"amount": "1"})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert response.json()["details"] == {"field": "type"}

    def test_zero_amount_rejected_by_schema(self, client, portfolio_id):
        response = client.post(f"/portfolios/{portfolio_id}/cash-flow/deposit", json={"amount": "0"})

        assert response.status_code == 422

    def test_adjustment_needs_direction(self, client, portfolio_id):
        response = client.post(f"/portfolios/{portfolio_id}/cash-flow/adjustment", json={"amount": "10"})
        assert response.status_code == 400

        entry = post_entry(client, portfolio_id, "adjustment", amount="10", direction="OUT")
        assert entry["direction"] == "OUT"

    def test_unknown_portfolio(self, client):
        response = client.post("/portfolios/999/cash-flow/deposit", json={"amount": "1"})

        assert response.status_code == 404
        assert response.json()["error"] == "PortfolioNotFoundError"

    def test_other_account_forbidden(self, client, portfolio_id):
        stranger = client.post("/accounts", json={"name": "Stranger"}).json()["id"]

        response = client.post(
            f"/portfolios/{portfolio_id}/cash-flow/deposit",
            params={"account_id": stranger},
            json={"amount": "1"},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "PermissionDeniedError"


class TestBalanceAndHistory:

    def test_balance_counts_completed_only(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="1000")
        post_entry(client, portfolio_id, "fee", amount="50")
        post_entry(client, portfolio_id, "deposit", amount="700", status="PENDING")

        assert balance(client, portfolio_id) == Decimal("950")

    def test_balance_as_of(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="1000", flow_date="2024-01-01")
        post_entry(client, portfolio_id, "withdrawal", amount="400", flow_date="2024-02-01")

        assert balance(client, portfolio_id, as_of="2024-01-31") == Decimal("1000")

    def test_set_balance(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="1000")

        response = client.put(f"/portfolios/{portfolio_id}/cash-flow/balance", json={"balance": "600"})

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["balance"]) == Decimal("600")
        assert body["adjustment"]["type"] == "WITHDRAWAL"
        assert Decimal(body["adjustment"]["amount"]) == Decimal("400")

    def test_set_balance_unchanged(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="1000")

        body = client.put(f"/portfolios/{portfolio_id}/cash-flow/balance", json={"balance": "1000"}).json()

        assert body["adjustment"] is None

    def test_history_paging_and_order(self, client, portfolio_id):
        for day in ("2024-01-01", "2024-01-03", "2024-01-02"):
            post_entry(client, portfolio_id, "deposit", amount="1", flow_date=day)

        body = client.get(
            f"/portfolios/{portfolio_id}/cash-flow/history", params={"page": 1, "limit": 2}
        ).json()

        assert [e["flow_date"] for e in body["items"]] == ["2024-01-03", "2024-01-02"]
        assert body["pagination"]["total"] == 3
        assert body["pagination"]["total_pages"] == 2
        assert body["pagination"]["has_next"] is True

    def test_history_type_filter(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="100")
        post_entry(client, portfolio_id, "dividend", amount="5")
        post_entry(client, portfolio_id, "fee", amount="1")

        body = client.get(
            f"/portfolios/{portfolio_id}/cash-flow/history", params={"types": "dividend,FEE"}
        ).json()

        assert sorted(e["type"] for e in body["items"]) == ["DIVIDEND", "FEE"]

    def test_history_unknown_type_filter(self, client, portfolio_id):
        response = client.get(f"/portfolios/{portfolio_id}/cash-flow/history", params={"types": "BONUS"})

        assert response.status_code == 400

    def test_funding_sources(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="100", funding_source="VCB")
        post_entry(client, portfolio_id, "withdrawal", amount="30", funding_source="VCB")
        post_entry(client, portfolio_id, "deposit", amount="10")

        summaries = {
            s["funding_source"]: s
            for s in client.get(f"/portfolios/{portfolio_id}/cash-flow/funding-sources").json()
        }

        assert set(summaries) == {"VCB", "UNKNOWN"}
        assert Decimal(summaries["VCB"]["total_inflow"]) == Decimal("100")
        assert Decimal(summaries["VCB"]["total_outflow"]) == Decimal("30")
        assert summaries["VCB"]["transaction_count"] == 2


class TestEntryLifecycle:

    def test_update_bumps_version(self, client, portfolio_id):
        entry = post_entry(client, portfolio_id, "deposit", amount="100")

        response = client.put(
            f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}",
            json={"amount": "120", "version": 1},
        )

        assert response.status_code == 200
        assert response.json()["version"] == 2
        assert balance(client, portfolio_id) == Decimal("120")

    def test_update_with_stale_version(self, client, portfolio_id):
        entry = post_entry(client, portfolio_id, "deposit", amount="100")
        client.put(f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}", json={"description": "first"})

        response = client.put(
            f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}",
            json={"description": "second", "version": 1},
        )

        assert response.status_code == 409
        assert response.json()["error"] == "ConflictError"

    def test_cancel_is_idempotent(self, client, portfolio_id):
        entry = post_entry(client, portfolio_id, "deposit", amount="100")
        url = f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}/cancel"

        first = client.put(url)
        second = client.put(url)

        assert first.status_code == second.status_code == 200
        assert second.json()["status"] == "CANCELLED"
        assert balance(client, portfolio_id) == 0

    def test_cancelled_entry_not_editable(self, client, portfolio_id):
        entry = post_entry(client, portfolio_id, "deposit", amount="100")
        client.put(f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}/cancel")

        response = client.put(f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}", json={"amount": "5"})

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidStateError"

    def test_delete(self, client, portfolio_id):
        entry = post_entry(client, portfolio_id, "deposit", amount="100")

        response = client.delete(f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}")

        assert response.status_code == 204
        again = client.delete(f"/portfolios/{portfolio_id}/cash-flow/{entry['id']}")
        assert again.status_code == 404
        assert again.json()["error"] == "CashFlowNotFoundError"


class TestTransferApi:

    def test_transfer(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="1000", funding_source="SAVINGS")

        response = client.post(
            f"/portfolios/{portfolio_id}/cash-flow/transfer",
            json={"from_source": "SAVINGS", "to_source": "BROKERAGE", "amount": "400"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["withdrawal_entry"]["reference"] == body["deposit_entry"]["reference"] == body["reference"]
        assert body["warnings"] == []
        assert balance(client, portfolio_id, funding_source="BROKERAGE") == Decimal("400")
        assert balance(client, portfolio_id) == Decimal("1000")

    def test_overdraft_rejected(self, client, portfolio_id):
        post_entry(client, portfolio_id, "deposit", amount="100", funding_source="SAVINGS")

        response = client.post(
            f"/portfolios/{portfolio_id}/cash-flow/transfer",
            json={"from_source": "SAVINGS", "to_source": "BROKERAGE", "amount": "400"},
        )

        assert response.status_code == 400
        history = client.get(f"/portfolios/{portfolio_id}/cash-flow/history").json()
        assert history["pagination"]["total"] == 1
