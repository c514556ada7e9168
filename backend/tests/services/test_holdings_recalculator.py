# backend/tests/services/test_holdings_recalculator.py
"""
Tests for rebuilding investor holdings from the unit transaction log.
"""

from decimal import Decimal

import pytest

from fundledger.models import InvestorHolding
from fundledger.services.exceptions import InvalidStateError, PortfolioNotFoundError


@pytest.fixture
def active_fund(db, empty_fund, investor, second_investor, fund_service, cash_flow_service):
    """Two investors, one partial redemption at NAV 12,000."""
    fund_service.subscribe(db, empty_fund.id, investor.id, amount=Decimal("1000000"))
    fund_service.subscribe(db, empty_fund.id, second_investor.id, amount=Decimal("500000"))
    cash_flow_service.create(db, empty_fund.id, "DIVIDEND", "300000")
    fund_service.redeem(db, empty_fund.id, investor.id, units=Decimal("20"))
    db.refresh(empty_fund)
    return empty_fund


def holding_rows(db, portfolio_id):
    return [
        (h.account_id, h.total_units, h.avg_cost_per_unit, h.total_investment, h.realized_pnl)
        for h in db.query(InvestorHolding).filter_by(portfolio_id=portfolio_id).order_by(InvestorHolding.id)
    ]


class TestRecalculateAllHoldings:

    def test_matches_incremental_updates(self, db, active_fund, holdings_recalculator):
        """Replaying the log reproduces what subscribe/redeem stored."""
        before = holding_rows(db, active_fund.id)

        result = holdings_recalculator.recalculate_all_holdings(db, active_fund.id)

        db.expire_all()
        assert holding_rows(db, active_fund.id) == before
        assert result.updated_holdings_count == 2
        assert result.total_outstanding_units == Decimal("130")

    def test_idempotent(self, db, active_fund, holdings_recalculator):
        first = holdings_recalculator.recalculate_all_holdings(db, active_fund.id)
        rows = holding_rows(db, active_fund.id)

        second = holdings_recalculator.recalculate_all_holdings(db, active_fund.id)

        assert first == second
        db.expire_all()
        assert holding_rows(db, active_fund.id) == rows

    def test_repairs_drifted_holding(self, db, active_fund, second_investor, holdings_recalculator):
        holding = db.query(InvestorHolding).filter_by(account_id=second_investor.id).one()
        holding.total_units = Decimal("999")
        active_fund.total_outstanding_units = Decimal("1079")
        db.commit()

        holdings_recalculator.recalculate_all_holdings(db, active_fund.id)

        db.refresh(holding)
        db.refresh(active_fund)
        assert holding.total_units == Decimal("50")
        assert active_fund.total_outstanding_units == Decimal("130")
        assert active_fund.number_of_investors == 2

    def test_realized_pnl_replayed(self, db, active_fund, investor, holdings_recalculator):
        holdings_recalculator.recalculate_all_holdings(db, active_fund.id)

        holding = db.query(InvestorHolding).filter_by(account_id=investor.id).one()
        db.refresh(holding)
        assert holding.realized_pnl == Decimal("40000")
        assert holding.total_investment == Decimal("800000")

    def test_not_a_fund(self, db, portfolio, holdings_recalculator):
        with pytest.raises(InvalidStateError):
            holdings_recalculator.recalculate_all_holdings(db, portfolio.id)

    def test_unknown_portfolio(self, db, holdings_recalculator):
        with pytest.raises(PortfolioNotFoundError):
            holdings_recalculator.recalculate_all_holdings(db, 404)
