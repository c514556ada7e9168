# backend/tests/services/test_transfer.py
"""
Tests for transfers between funding sources.
"""

from datetime import date
from decimal import Decimal

import pytest

from fundledger.models import CashFlow, CashFlowType
from fundledger.services.exceptions import PortfolioNotFoundError, ValidationError


@pytest.fixture
def funded(db, portfolio, cash_flow_service):
    """Portfolio with 1,000,000 on SAVINGS."""
    cash_flow_service.create(db, portfolio.id, "DEPOSIT", "1000000", date(2024, 1, 1), funding_source="SAVINGS")
    return portfolio


class TestTransfer:
    """Tests for TransferService.transfer."""

    def test_two_legs_share_reference(self, db, funded, transfer_service):
        result = transfer_service.transfer(
            db, funded.id, "SAVINGS", "BROKERAGE", Decimal("400000"), date(2024, 1, 15)
        )

        assert result.withdrawal_entry.type == CashFlowType.WITHDRAWAL
        assert result.withdrawal_entry.funding_source == "SAVINGS"
        assert result.deposit_entry.type == CashFlowType.DEPOSIT
        assert result.deposit_entry.funding_source == "BROKERAGE"
        assert result.withdrawal_entry.reference == result.deposit_entry.reference == result.reference
        assert result.reference.startswith("TRF-20240115-")
        assert result.withdrawal_entry.flow_date == result.deposit_entry.flow_date == date(2024, 1, 15)

    def test_total_balance_unchanged(self, db, funded, transfer_service, cash_flow_service):
        before = cash_flow_service.get_balance(db, funded.id)

        transfer_service.transfer(db, funded.id, "SAVINGS", "BROKERAGE", Decimal("400000"))

        assert cash_flow_service.get_balance(db, funded.id) == before
        assert cash_flow_service.get_balance(db, funded.id, funding_source="SAVINGS") == Decimal("600000.00")
        assert cash_flow_service.get_balance(db, funded.id, funding_source="BROKERAGE") == Decimal("400000.00")

    def test_same_source_rejected(self, db, funded, transfer_service):
        with pytest.raises(ValidationError):
            transfer_service.transfer(db, funded.id, "SAVINGS", " SAVINGS ", Decimal("1"))

    def test_missing_source_rejected(self, db, funded, transfer_service):
        with pytest.raises(ValidationError):
            transfer_service.transfer(db, funded.id, "  ", "BROKERAGE", Decimal("1"))

    def test_non_positive_amount_rejected(self, db, funded, transfer_service):
        with pytest.raises(ValidationError):
            transfer_service.transfer(db, funded.id, "SAVINGS", "BROKERAGE", Decimal("0"))

    def test_overdraft_rejected_and_nothing_written(self, db, funded, transfer_service):
        with pytest.raises(ValidationError):
            transfer_service.transfer(db, funded.id, "SAVINGS", "BROKERAGE", Decimal("1000001"))

        assert db.query(CashFlow).count() == 1

    def test_overdraft_allowed_with_warning(self, db, funded, transfer_service, cash_flow_service):
        result = transfer_service.transfer(
            db, funded.id, "SAVINGS", "BROKERAGE", Decimal("1500000"), allow_overdraft=True
        )

        assert result.withdrawal_entry.amount == Decimal("1500000.00")
        assert len(result.warnings) == 1
        assert cash_flow_service.get_balance(db, funded.id, funding_source="SAVINGS") == Decimal("-500000.00")

    def test_unknown_portfolio(self, db, transfer_service):
        with pytest.raises(PortfolioNotFoundError):
            transfer_service.transfer(db, 404, "A", "B", Decimal("1"), allow_overdraft=True)
