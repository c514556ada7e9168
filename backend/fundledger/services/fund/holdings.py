# backend/fundledger/services/fund/holdings.py
"""
Holdings recalculation.

Investor holdings are a cache over the fund-unit transaction log. This
module rebuilds that cache from scratch: it replays every non-voided
transaction of a fund, ordered by (created_at, id), starting each investor
from an empty position. It never reads the stored holding values, so
running it repeatedly cannot compound rounding drift, and running it twice
in a row yields identical rows.

It is the reconciliation path after a corrected or voided transaction and
after a cancelled or deleted subscription/redemption cash flow.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from fundledger.models import FundUnitTransaction, FundUnitTransactionType, InvestorHolding, Portfolio
from fundledger.services.constants import ZERO
from fundledger.services.exceptions import InsufficientUnitsError, InvalidStateError
from fundledger.services.fund.calculators import (
    HoldingState,
    apply_redemption,
    apply_subscription,
    quantize_units,
)
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalculationResult:
    portfolio_id: int
    updated_holdings_count: int
    total_outstanding_units: Decimal


def replay(transactions: Iterable[FundUnitTransaction]) -> dict[int, HoldingState]:
    """
    Fold an ordered transaction log into one HoldingState per holding.

    The caller supplies the transactions already ordered by (created_at, id).
    Voided transactions are skipped.

    Returns:
        {holding_id: HoldingState}

    Raises:
        InsufficientUnitsError: A redemption exceeds the units held at that
            point of the log
    """
    states: dict[int, HoldingState] = {}
    for tx in transactions:
        if tx.is_voided:
            continue
        state = states.get(tx.holding_id, HoldingState.empty())
        if tx.type == FundUnitTransactionType.SUBSCRIBE:
            state = apply_subscription(state, units=tx.units, amount=tx.amount)
        else:
            try:
                state, _ = apply_redemption(state, units=-tx.units, nav_per_unit=tx.nav_per_unit)
            except InsufficientUnitsError as exc:
                exc.account_id = tx.account_id
                raise
        states[tx.holding_id] = state
    return states


class HoldingsRecalculator:
    """
    Rebuilds every investor holding of a fund from its transaction log.

    Usage:
        recalculator = HoldingsRecalculator()
        result = recalculator.recalculate_all_holdings(db, portfolio_id)
    """

    def __init__(self, locks: PortfolioLockRegistry | None = None) -> None:
        self._locks = locks or portfolio_locks

    def recalculate_all_holdings(self, db: Session, portfolio_id: int) -> RecalculationResult:
        """
        Rebuild all holdings of a fund under the portfolio lock and commit.

        Raises:
            PortfolioNotFoundError: Unknown portfolio
            InvalidStateError: Portfolio is not in fund mode
            InsufficientUnitsError: The log itself is inconsistent
        """
        with self._locks.hold(db, portfolio_id) as portfolio:
            if not portfolio.is_fund:
                raise InvalidStateError(
                    f"Portfolio {portfolio_id} is not a fund",
                    resource_type="Portfolio",
                    resource_id=portfolio_id,
                )
            try:
                result = self.rebuild(db, portfolio)
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info(
            "Recalculated %d holding(s) for fund %s, outstanding units %s",
            result.updated_holdings_count, portfolio_id, result.total_outstanding_units,
        )
        return result

    def rebuild(
            self,
            db: Session,
            portfolio: Portfolio,
            exclude_transaction_ids: set[int] | None = None,
    ) -> RecalculationResult:
        """
        Rebuild holdings and fund unit totals without locking or committing.

        The caller must hold the portfolio lock. When the replay fails,
        nothing has been written yet.

        Args:
            exclude_transaction_ids: Transactions to leave out of the replay
                (used to check a void before flagging it)
        """
        excluded = exclude_transaction_ids or set()
        transactions = [
            tx for tx in db.scalars(
                select(FundUnitTransaction)
                .where(FundUnitTransaction.portfolio_id == portfolio.id)
                .order_by(FundUnitTransaction.created_at, FundUnitTransaction.id)
            ).all()
            if tx.id not in excluded
        ]
        states = replay(transactions)

        holdings = db.scalars(
            select(InvestorHolding)
            .where(InvestorHolding.portfolio_id == portfolio.id)
            .order_by(InvestorHolding.id)
        ).all()

        total_units = ZERO
        investors = 0
        for holding in holdings:
            state = states.get(holding.id, HoldingState.empty())
            holding.total_units = state.total_units
            holding.avg_cost_per_unit = state.avg_cost_per_unit
            holding.total_investment = state.total_investment
            holding.realized_pnl = state.realized_pnl
            total_units += state.total_units
            if state.total_units > ZERO:
                investors += 1

        portfolio.total_outstanding_units = quantize_units(total_units)
        portfolio.number_of_investors = investors
        db.flush()

        return RecalculationResult(
            portfolio_id=portfolio.id,
            updated_holdings_count=len(holdings),
            total_outstanding_units=portfolio.total_outstanding_units,
        )
