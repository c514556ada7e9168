# backend/fundledger/services/fund/valuation.py
"""
Fund valuation as of a date.

    positions      = Σ BUY quantity - Σ SELL quantity per asset, trades up to the date
    asset value    = Σ quantity × latest price on or before the date
    cash balance   = ledger balance (COMPLETED entries) up to the date
    deposits       = principal of term deposits opened and not yet settled on the date
    total value    = asset value + cash balance + deposits

Prices come through PriceService, so a valuation either prices every open
position or fails (timeout, provider down, missing price). It never returns
a partial value.
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fundledger.models import Asset, Trade, TradeSide
from fundledger.services.cash_flow.service import CashFlowService
from fundledger.services.constants import ZERO
from fundledger.services.deposits import DepositService
from fundledger.services.fund.calculators import quantize_money
from fundledger.services.fund.types import FundValuation, PositionValue
from fundledger.services.pricing import PriceService

logger = logging.getLogger(__name__)


class FundValuationService:
    """
    Values portfolios from trades, prices and the cash ledger.

    Usage:
        valuation = FundValuationService(price_service).value_portfolio(db, 1)
        valuation.total_value
    """

    def __init__(
            self,
            price_service: PriceService,
            cash_flow_service: CashFlowService | None = None,
    ) -> None:
        self.price_service = price_service
        self._cash_flows = cash_flow_service or CashFlowService()

    def positions(self, db: Session, portfolio_id: int, as_of: date) -> dict[int, Decimal]:
        """Open quantity per asset id from trades dated on or before as_of."""
        quantities: dict[int, Decimal] = defaultdict(lambda: ZERO)
        trades = db.scalars(
            select(Trade)
            .where(Trade.portfolio_id == portfolio_id, Trade.trade_date <= as_of)
            .order_by(Trade.trade_date, Trade.id)
        ).all()
        for trade in trades:
            sign = 1 if trade.side == TradeSide.BUY else -1
            quantities[trade.asset_id] += sign * trade.quantity
        return {asset_id: qty for asset_id, qty in quantities.items() if qty > ZERO}

    def value_portfolio(self, db: Session, portfolio_id: int, as_of: date | None = None) -> FundValuation:
        """
        Value a portfolio as of a date (today when omitted).

        Raises:
            PriceLookupTimeoutError / PriceProviderUnavailableError /
            PriceNotAvailableError: Prices could not be obtained
        """
        valuation_date = as_of or date.today()
        quantities = self.positions(db, portfolio_id, valuation_date)

        positions: list[PositionValue] = []
        if quantities:
            prices = self.price_service.get_prices(list(quantities), valuation_date)
            assets = {
                asset.id: asset
                for asset in db.scalars(select(Asset).where(Asset.id.in_(list(quantities)))).all()
            }
            for asset_id in sorted(quantities):
                quantity = quantities[asset_id]
                asset = assets[asset_id]
                positions.append(PositionValue(
                    asset_id=asset_id,
                    symbol=asset.symbol,
                    asset_type=asset.asset_type,
                    quantity=quantity,
                    price=prices[asset_id],
                    market_value=quantize_money(quantity * prices[asset_id]),
                ))

        cash_balance = self._cash_flows.get_balance(db, portfolio_id, as_of=valuation_date)
        open_deposits = DepositService.open_principal(db, portfolio_id, valuation_date)

        valuation = FundValuation(
            portfolio_id=portfolio_id,
            as_of=valuation_date,
            positions=positions,
            cash_balance=cash_balance,
            term_deposit_value=open_deposits,
        )
        logger.debug(
            "Valued portfolio %s as of %s: assets=%s cash=%s deposits=%s total=%s",
            portfolio_id, valuation_date, valuation.asset_value, valuation.cash_balance,
            valuation.term_deposit_value, valuation.total_value,
        )
        return valuation
