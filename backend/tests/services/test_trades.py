# backend/tests/services/test_trades.py
"""
Tests for trade recording and its ledger entries.
"""

from datetime import date
from decimal import Decimal

import pytest

from fundledger.models import CashFlow, CashFlowType
from fundledger.services.exceptions import (
    AssetNotFoundError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

from conftest import create_asset


@pytest.fixture
def asset(db):
    return create_asset(db, "FPT")


class TestRecordTrade:
    """Tests for TradeService.record_trade."""

    def test_buy_writes_cash_flow_with_fee(self, db, portfolio, asset, trade_service):
        trade = trade_service.record_trade(
            db, portfolio.id, asset.id, "BUY", Decimal("100"), Decimal("95000"),
            fee=Decimal("14250"), trade_date=date(2024, 1, 10),
        )

        cash_flow = db.get(CashFlow, trade.cash_flow_id)
        assert cash_flow.type == CashFlowType.BUY_TRADE
        assert cash_flow.amount == Decimal("9514250.00")
        assert cash_flow.reference == f"TRD-{trade.id}"
        assert cash_flow.flow_date == date(2024, 1, 10)

    def test_sell_proceeds_net_of_fee(self, db, portfolio, asset, trade_service):
        trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 100, 95000, trade_date=date(2024, 1, 10))

        sell = trade_service.record_trade(
            db, portfolio.id, asset.id, "sell", 40, 100000, fee=4000, trade_date=date(2024, 2, 1)
        )

        cash_flow = db.get(CashFlow, sell.cash_flow_id)
        assert cash_flow.type == CashFlowType.SELL_TRADE
        assert cash_flow.amount == Decimal("3996000.00")
        assert trade_service.quantity_held(db, portfolio.id, asset.id) == Decimal("60")

    def test_sell_more_than_held_rejected(self, db, portfolio, asset, trade_service):
        trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 10, 1000, trade_date=date(2024, 1, 10))

        with pytest.raises(ValidationError) as exc_info:
            trade_service.record_trade(db, portfolio.id, asset.id, "SELL", 11, 1000, trade_date=date(2024, 1, 11))
        assert exc_info.value.field == "quantity"

    def test_sell_before_buy_date_rejected(self, db, portfolio, asset, trade_service):
        """The held quantity is taken as of the sell date."""
        trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 10, 1000, trade_date=date(2024, 1, 10))

        with pytest.raises(ValidationError):
            trade_service.record_trade(db, portfolio.id, asset.id, "SELL", 5, 1000, trade_date=date(2024, 1, 9))

    def test_unknown_side(self, db, portfolio, asset, trade_service):
        with pytest.raises(ValidationError):
            trade_service.record_trade(db, portfolio.id, asset.id, "SHORT", 1, 1)

    def test_unknown_asset(self, db, portfolio, trade_service):
        with pytest.raises(AssetNotFoundError):
            trade_service.record_trade(db, portfolio.id, 999, "BUY", 1, 1)

    def test_trade_on_fund_marks_nav_stale(self, db, empty_fund, asset, trade_service):
        trade_service.record_trade(db, empty_fund.id, asset.id, "BUY", 1, 1000)
        db.refresh(empty_fund)
        assert empty_fund.nav_is_stale is True


class TestTradeLifecycle:
    """Listing and deleting trades."""

    def test_list_newest_first(self, db, portfolio, asset, trade_service):
        first = trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 1, 10, trade_date=date(2024, 1, 1))
        second = trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 1, 10, trade_date=date(2024, 2, 1))

        trades = trade_service.list_trades(db, portfolio.id)

        assert [t.id for t in trades] == [second.id, first.id]

    def test_delete_removes_cash_flow(self, db, portfolio, asset, trade_service, cash_flow_service):
        trade = trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 10, 100)

        trade_service.delete_trade(db, portfolio.id, trade.id)

        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("0.00")
        assert trade_service.list_trades(db, portfolio.id) == []

    def test_delete_buy_backing_a_sell_rejected(self, db, portfolio, asset, trade_service):
        buy = trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 10, 100, trade_date=date(2024, 1, 1))
        trade_service.record_trade(db, portfolio.id, asset.id, "SELL", 10, 120, trade_date=date(2024, 1, 2))

        with pytest.raises(ValidationError):
            trade_service.delete_trade(db, portfolio.id, buy.id)

    def test_delete_unknown_trade(self, db, portfolio, trade_service):
        with pytest.raises(NotFoundError):
            trade_service.delete_trade(db, portfolio.id, 12345)

    def test_trade_cash_flow_cannot_be_cancelled(self, db, portfolio, asset, trade_service, cash_flow_service):
        trade = trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 10, 100)

        with pytest.raises(InvalidStateError):
            cash_flow_service.cancel(db, portfolio.id, trade.cash_flow_id)

    def test_trade_cash_flow_amount_cannot_be_edited(self, db, portfolio, asset, trade_service, cash_flow_service):
        trade = trade_service.record_trade(db, portfolio.id, asset.id, "BUY", 10, 100)

        with pytest.raises(InvalidStateError):
            cash_flow_service.update(db, portfolio.id, trade.cash_flow_id, {"amount": "1"})

        updated = cash_flow_service.update(db, portfolio.id, trade.cash_flow_id, {"description": "broker note"})
        assert updated.description == "broker note"
