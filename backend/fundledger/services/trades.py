# backend/fundledger/services/trades.py
"""
Trade recording.

A trade and its cash movement are written in one database transaction:

    BUY  -> Trade + BUY_TRADE cash flow  (quantity × price + fee)
    SELL -> Trade + SELL_TRADE cash flow (quantity × price - fee)

Sells are checked against the quantity held as of the trade date so a
portfolio never holds a negative position.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from fundledger.models import Asset, CashFlow, CashFlowStatus, CashFlowType, Trade, TradeSide
from fundledger.services.cash_flow.service import CashFlowService, parse_flow_date
from fundledger.services.constants import QUANTITY_PRECISION, ROUNDING, TRADE_REFERENCE_PREFIX, ZERO
from fundledger.services.exceptions import AssetNotFoundError, NotFoundError, ValidationError
from fundledger.services.fund.calculators import quantize_money
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks

logger = logging.getLogger(__name__)


def _parse_decimal(value: Any, field: str, allow_zero: bool = False) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        parsed = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field) from None
    if not parsed.is_finite() or parsed < ZERO or (parsed == ZERO and not allow_zero):
        raise ValidationError(f"{field} must be greater than 0, got {value}", field=field)
    return parsed


class TradeService:
    """
    Records trades together with their ledger entries.

    Usage:
        trade = TradeService().record_trade(
            db, portfolio_id=1, asset_id=3, side="BUY",
            quantity=Decimal("10"), price=Decimal("25000"),
        )
    """

    def __init__(
            self,
            cash_flow_service: CashFlowService | None = None,
            locks: PortfolioLockRegistry | None = None,
    ) -> None:
        self._locks = locks or portfolio_locks
        self._cash_flows = cash_flow_service or CashFlowService(locks=self._locks)

    @staticmethod
    def quantity_held(db: Session, portfolio_id: int, asset_id: int, as_of: date | None = None) -> Decimal:
        """Net quantity of an asset: bought minus sold, trades up to as_of."""
        query = (
            select(Trade.side, func.coalesce(func.sum(Trade.quantity), 0))
            .where(Trade.portfolio_id == portfolio_id, Trade.asset_id == asset_id)
            .group_by(Trade.side)
        )
        if as_of is not None:
            query = query.where(Trade.trade_date <= as_of)

        bought = sold = ZERO
        for side, total in db.execute(query).all():
            if side == TradeSide.BUY:
                bought = Decimal(str(total))
            else:
                sold = Decimal(str(total))
        return bought - sold

    def record_trade(
            self,
            db: Session,
            portfolio_id: int,
            asset_id: int,
            side: TradeSide | str,
            quantity: Any,
            price: Any,
            fee: Any = ZERO,
            trade_date: Any = None,
            funding_source: str | None = None,
            description: str | None = None,
    ) -> Trade:
        """
        Record a trade and its cash flow atomically.

        Raises:
            PortfolioNotFoundError / AssetNotFoundError: Unknown ids
            ValidationError: Bad side, quantity, price or fee; a sell above
                the quantity held; sell proceeds not covering the fee
        """
        try:
            trade_side = TradeSide(str(side.value if isinstance(side, TradeSide) else side).upper())
        except ValueError:
            raise ValidationError(f"Unknown trade side: {side!r}. Valid: BUY, SELL", field="side") from None
        qty = _parse_decimal(quantity, "quantity").quantize(QUANTITY_PRECISION, rounding=ROUNDING)
        unit_price = _parse_decimal(price, "price")
        trade_fee = quantize_money(_parse_decimal(fee or ZERO, "fee", allow_zero=True))
        executed_on = parse_flow_date(trade_date, field="trade_date")

        asset = db.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)

        with self._locks.hold(db, portfolio_id) as portfolio:
            if trade_side == TradeSide.SELL:
                held = self.quantity_held(db, portfolio_id, asset_id, as_of=executed_on)
                if qty > held:
                    raise ValidationError(
                        f"Cannot sell {qty} {asset.symbol}: only {held} held as of {executed_on}",
                        field="quantity",
                    )

            gross = quantize_money(qty * unit_price)
            if trade_side == TradeSide.BUY:
                cash_amount = gross + trade_fee
                flow_type = CashFlowType.BUY_TRADE
            else:
                cash_amount = gross - trade_fee
                flow_type = CashFlowType.SELL_TRADE
                if cash_amount <= ZERO:
                    raise ValidationError("Sell proceeds must exceed the fee", field="fee")

            try:
                cash_flow = self._cash_flows.build_entry(
                    portfolio,
                    flow_type=flow_type,
                    amount=cash_amount,
                    flow_date=executed_on,
                    description=description or f"{trade_side.value} {qty} {asset.symbol} at {unit_price}",
                    funding_source=funding_source,
                    status=CashFlowStatus.COMPLETED,
                )
                db.add(cash_flow)
                db.flush()

                trade = Trade(
                    portfolio_id=portfolio_id,
                    asset_id=asset_id,
                    side=trade_side,
                    quantity=qty,
                    price=unit_price,
                    fee=trade_fee,
                    trade_date=executed_on,
                    cash_flow_id=cash_flow.id,
                )
                db.add(trade)
                db.flush()
                cash_flow.reference = f"{TRADE_REFERENCE_PREFIX}-{trade.id}"
                if portfolio.is_fund:
                    portfolio.nav_is_stale = True
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(trade)
        logger.info(
            "Recorded %s trade %s: %s %s at %s in portfolio %s (cash flow %s)",
            trade_side.value, trade.id, qty, asset.symbol, unit_price, portfolio_id, cash_flow.id,
        )
        return trade

    def list_trades(
            self,
            db: Session,
            portfolio_id: int,
            asset_id: int | None = None,
            start_date: date | None = None,
            end_date: date | None = None,
    ) -> list[Trade]:
        """Trades of a portfolio, newest first."""
        self._cash_flows.get_portfolio(db, portfolio_id)
        query = (
            select(Trade)
            .options(joinedload(Trade.asset))
            .where(Trade.portfolio_id == portfolio_id)
        )
        if asset_id is not None:
            query = query.where(Trade.asset_id == asset_id)
        if start_date is not None:
            query = query.where(Trade.trade_date >= start_date)
        if end_date is not None:
            query = query.where(Trade.trade_date <= end_date)
        return list(db.scalars(query.order_by(Trade.trade_date.desc(), Trade.id.desc())).all())

    def delete_trade(self, db: Session, portfolio_id: int, trade_id: int) -> None:
        """
        Remove a trade and its cash flow.

        Raises:
            NotFoundError: Unknown trade in this portfolio
            ValidationError: Removing a buy would leave a later sell uncovered
        """
        with self._locks.hold(db, portfolio_id) as portfolio:
            trade = db.get(Trade, trade_id)
            if trade is None or trade.portfolio_id != portfolio_id:
                raise NotFoundError(f"Trade {trade_id} not found", resource_type="Trade", resource_id=trade_id)

            if trade.side == TradeSide.BUY:
                remaining = self.quantity_held(db, portfolio_id, trade.asset_id) - trade.quantity
                if remaining < ZERO:
                    raise ValidationError(
                        f"Deleting trade {trade_id} would leave a negative position of {remaining}",
                        field="trade_id",
                    )

            try:
                cash_flow = db.get(CashFlow, trade.cash_flow_id) if trade.cash_flow_id else None
                db.delete(trade)
                if cash_flow is not None:
                    db.delete(cash_flow)
                if portfolio.is_fund:
                    portfolio.nav_is_stale = True
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info("Deleted trade %s of portfolio %s", trade_id, portfolio_id)
