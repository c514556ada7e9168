# backend/fundledger/services/fund/service.py
"""
Fund unit engine.

State machine per portfolio:

    PORTFOLIO_MODE --convert_to_fund--> FUND_MODE
    FUND_MODE --convert_to_portfolio--> PORTFOLIO_MODE   (single holder or no units)

In fund mode:
    nav_per_unit = total fund value / total outstanding units
    subscribe: units = amount / nav   (6 dp, ROUND_HALF_EVEN), DEPOSIT recorded
    redeem:    amount = units × nav   (2 dp, ROUND_HALF_EVEN), WITHDRAWAL recorded
               realized P&L = (nav - avg cost) × units

Every operation that reads and then writes fund aggregates runs under the
per-portfolio lock, computes NAV from live prices inside the lock, and
commits before releasing it. Two concurrent subscriptions therefore never
price units off the same stale NAV.

Mutations are never retried here. Only the price lookup (a read) retries.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fundledger.models import (
    Account,
    CashFlow,
    CashFlowStatus,
    CashFlowType,
    FundUnitTransaction,
    FundUnitTransactionType,
    InvestorHolding,
    Portfolio,
)
from fundledger.services.cash_flow.service import CashFlowService, parse_amount, parse_flow_date
from fundledger.services.constants import (
    FULL_OWNERSHIP_TOLERANCE,
    INITIAL_NAV_PER_UNIT,
    REDEMPTION_REFERENCE_PREFIX,
    SUBSCRIPTION_REFERENCE_PREFIX,
    ZERO,
)
from fundledger.services.exceptions import (
    AccountNotFoundError,
    ConflictError,
    FundUnitTransactionNotFoundError,
    InsufficientUnitsError,
    InvalidStateError,
    InvestorHoldingNotFoundError,
    NavUndefinedError,
    PortfolioNotFoundError,
    ValidationError,
)
from fundledger.services.fund.calculators import (
    HoldingState,
    amount_for_units,
    apply_redemption,
    apply_subscription,
    calculate_nav_per_unit,
    initial_fund_units,
    quantize_nav,
    quantize_units,
    units_for_amount,
)
from fundledger.services.fund.holdings import HoldingsRecalculator, RecalculationResult
from fundledger.services.fund.types import (
    ConversionResult,
    FundValuation,
    HoldingDetail,
    HoldingSummary,
    NavRefreshResult,
    RedemptionResult,
    SubscriptionResult,
)
from fundledger.services.fund.valuation import FundValuationService
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks

logger = logging.getLogger(__name__)


def _parse_units(value: Any, field: str = "units") -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        units = quantize_units(Decimal(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field) from None
    if not units.is_finite() or units <= ZERO:
        raise ValidationError(f"{field} must be greater than 0, got {value}", field=field)
    return units


def _state_of(holding: InvestorHolding) -> HoldingState:
    return HoldingState(
        total_units=holding.total_units,
        avg_cost_per_unit=holding.avg_cost_per_unit,
        total_investment=holding.total_investment,
        realized_pnl=holding.realized_pnl,
    )


def _store_state(holding: InvestorHolding, state: HoldingState) -> None:
    holding.total_units = state.total_units
    holding.avg_cost_per_unit = state.avg_cost_per_unit
    holding.total_investment = state.total_investment
    holding.realized_pnl = state.realized_pnl


def _exactly_one(amount: Any, units: Any) -> None:
    if (amount is None) == (units is None):
        raise ValidationError("Provide exactly one of amount or units", field="amount")


class FundService:
    """
    Converts portfolios to funds and moves units between investors and funds.

    Usage:
        service = FundService(FundValuationService(price_service))
        result = service.subscribe(db, portfolio_id=1, account_id=7, amount=Decimal("500"))
    """

    def __init__(
            self,
            valuation_service: FundValuationService,
            cash_flow_service: CashFlowService | None = None,
            holdings_recalculator: HoldingsRecalculator | None = None,
            locks: PortfolioLockRegistry | None = None,
    ) -> None:
        self._locks = locks or portfolio_locks
        self._valuation = valuation_service
        self._holdings = holdings_recalculator or HoldingsRecalculator(self._locks)
        self._cash_flows = cash_flow_service or CashFlowService(self._holdings, self._locks)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _require_fund(portfolio: Portfolio) -> None:
        if not portfolio.is_fund:
            raise InvalidStateError(
                f"Portfolio {portfolio.id} is not a fund",
                resource_type="Portfolio",
                resource_id=portfolio.id,
            )

    @staticmethod
    def _get_investor(db: Session, account_id: int) -> Account:
        account = db.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        if not account.is_investor:
            raise ValidationError(f"Account {account_id} is not enabled as an investor", field="account_id")
        return account

    @staticmethod
    def _find_holding(db: Session, portfolio_id: int, account_id: int) -> InvestorHolding | None:
        return db.scalars(
            select(InvestorHolding).where(
                InvestorHolding.portfolio_id == portfolio_id,
                InvestorHolding.account_id == account_id,
            )
        ).first()

    def _get_or_create_holding(self, db: Session, portfolio_id: int, account_id: int) -> InvestorHolding:
        holding = self._find_holding(db, portfolio_id, account_id)
        if holding is None:
            state = HoldingState.empty()
            holding = InvestorHolding(portfolio_id=portfolio_id, account_id=account_id)
            _store_state(holding, state)
            db.add(holding)
            db.flush()
        return holding

    @staticmethod
    def _count_investors(db: Session, portfolio_id: int) -> int:
        return db.scalar(
            select(func.count(InvestorHolding.id)).where(
                InvestorHolding.portfolio_id == portfolio_id,
                InvestorHolding.total_units > 0,
            )
        ) or 0

    def _live_nav(self, db: Session, portfolio: Portfolio) -> tuple[Decimal, FundValuation]:
        """
        NAV per unit from today's fund value.

        Raises:
            NavUndefinedError: No units outstanding
        """
        valuation = self._valuation.value_portfolio(db, portfolio.id)
        nav = calculate_nav_per_unit(valuation.total_value, portfolio.total_outstanding_units)
        if nav is None:
            raise NavUndefinedError(portfolio.id, last_known_nav=portfolio.nav_per_unit)
        if nav <= ZERO:
            raise InvalidStateError(
                f"Fund {portfolio.id} has non-positive NAV per unit {nav}",
                resource_type="Portfolio",
                resource_id=portfolio.id,
            )
        return nav, valuation

    @staticmethod
    def _mark_nav(portfolio: Portfolio, nav: Decimal) -> None:
        portfolio.nav_per_unit = nav
        portfolio.last_nav_date = datetime.now(timezone.utc)
        portfolio.nav_is_stale = False

    # =========================================================================
    # MODE CONVERSION
    # =========================================================================

    def convert_to_fund(
            self,
            db: Session,
            portfolio_id: int,
            snapshot_date: Any,
            initial_units: Any = None,
    ) -> ConversionResult:
        """
        Unitize a portfolio.

        The portfolio is valued as of snapshot_date. With a positive value the
        owner receives the initial units (initial_units, or one per 10,000 of
        value with a floor of 1,000) at NAV = value / units; no cash flow is
        recorded because the value is already in the portfolio. Without value
        the fund starts with no units at the par NAV.

        Raises:
            InvalidStateError: Already a fund
            ValidationError: Bad snapshot date or initial_units
            PriceLookupError: Positions could not be priced
        """
        valuation_date = parse_flow_date(snapshot_date, field="snapshot_date")
        if valuation_date > date.today():
            raise ValidationError("snapshot_date cannot be in the future", field="snapshot_date")
        requested_units = _parse_units(initial_units, field="initial_units") if initial_units is not None else None

        with self._locks.hold(db, portfolio_id) as portfolio:
            if portfolio.is_fund:
                raise InvalidStateError(
                    f"Portfolio {portfolio_id} is already a fund",
                    resource_type="Portfolio",
                    resource_id=portfolio_id,
                )

            valuation = self._valuation.value_portfolio(db, portfolio_id, as_of=valuation_date)
            total_value = valuation.total_value
            transaction = None

            try:
                if total_value > ZERO:
                    units = requested_units or initial_fund_units(total_value)
                    nav = quantize_nav(total_value / units)

                    owner = portfolio.owner
                    if not owner.is_investor:
                        owner.is_investor = True
                    holding = self._get_or_create_holding(db, portfolio_id, owner.id)
                    _store_state(holding, apply_subscription(HoldingState.empty(), units, total_value))
                    transaction = FundUnitTransaction(
                        portfolio_id=portfolio_id,
                        account_id=owner.id,
                        holding_id=holding.id,
                        type=FundUnitTransactionType.SUBSCRIBE,
                        units=units,
                        nav_per_unit=nav,
                        amount=total_value,
                        transaction_date=valuation_date,
                        description=f"Initial units on conversion to fund - {units} units at {nav} per unit",
                    )
                    db.add(transaction)
                    investors = 1
                else:
                    if requested_units is not None:
                        raise ValidationError(
                            "initial_units requires a portfolio with positive value",
                            field="initial_units",
                        )
                    units = quantize_units(ZERO)
                    nav = INITIAL_NAV_PER_UNIT
                    investors = 0

                portfolio.is_fund = True
                portfolio.total_outstanding_units = units
                portfolio.number_of_investors = investors
                self._mark_nav(portfolio, quantize_nav(nav))
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info(
            "Converted portfolio %s to fund: value=%s units=%s nav=%s",
            portfolio_id, total_value, units, nav,
        )
        return ConversionResult(
            portfolio_id=portfolio_id,
            is_fund=True,
            nav_per_unit=quantize_nav(nav),
            total_outstanding_units=units,
            total_value=total_value,
            initial_transaction=transaction,
        )

    def convert_to_portfolio(self, db: Session, portfolio_id: int, account_id: int) -> ConversionResult:
        """
        Return a fund to direct ownership.

        Permitted when no units are outstanding or `account_id` holds all of
        them. Unit transactions and holdings are removed; the ledger entries
        of past subscriptions and redemptions stay, since that cash really
        moved.

        Raises:
            InvalidStateError: Not a fund
            ConflictError: Units are held by another or by several investors
        """
        with self._locks.hold(db, portfolio_id) as portfolio:
            self._require_fund(portfolio)

            holders = db.scalars(
                select(InvestorHolding).where(
                    InvestorHolding.portfolio_id == portfolio_id,
                    InvestorHolding.total_units > 0,
                )
            ).all()
            outstanding = portfolio.total_outstanding_units
            sole_owner = (
                len(holders) == 1
                and holders[0].account_id == account_id
                and abs(holders[0].total_units - outstanding) <= FULL_OWNERSHIP_TOLERANCE
            )
            if holders and not sole_owner:
                logger.warning(
                    "Rejected conversion of fund %s to portfolio: %d holder(s)", portfolio_id, len(holders)
                )
                raise ConflictError(
                    f"Fund {portfolio_id} cannot be converted: account {account_id} does not hold "
                    f"100% of {outstanding} outstanding units ({len(holders)} holder(s))"
                )

            try:
                transactions = db.scalars(
                    select(FundUnitTransaction).where(FundUnitTransaction.portfolio_id == portfolio_id)
                ).all()
                for transaction in transactions:
                    db.delete(transaction)
                for holding in db.scalars(
                    select(InvestorHolding).where(InvestorHolding.portfolio_id == portfolio_id)
                ).all():
                    db.delete(holding)

                portfolio.is_fund = False
                portfolio.nav_per_unit = None
                portfolio.total_outstanding_units = quantize_units(ZERO)
                portfolio.number_of_investors = 0
                portfolio.last_nav_date = None
                portfolio.nav_is_stale = False
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info("Converted fund %s back to portfolio (%d unit transactions removed)", portfolio_id, len(transactions))
        return ConversionResult(
            portfolio_id=portfolio_id,
            is_fund=False,
            nav_per_unit=None,
            total_outstanding_units=quantize_units(ZERO),
            total_value=ZERO,
        )

    # =========================================================================
    # NAV
    # =========================================================================

    def refresh_nav_per_unit(self, db: Session, portfolio_id: int) -> NavRefreshResult:
        """
        Recompute NAV per unit from current prices and the cash ledger.

        Raises:
            InvalidStateError: Not a fund
            NavUndefinedError: No units outstanding (stored NAV left as is)
            PriceLookupTimeoutError: Prices not returned in time; nothing is stored
        """
        with self._locks.hold(db, portfolio_id) as portfolio:
            self._require_fund(portfolio)
            if portfolio.total_outstanding_units <= ZERO:
                raise NavUndefinedError(portfolio_id, last_known_nav=portfolio.nav_per_unit)

            try:
                nav, valuation = self._live_nav(db, portfolio)
                self._mark_nav(portfolio, nav)
                units = portfolio.total_outstanding_units
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info(
            "Refreshed NAV of fund %s: nav=%s value=%s units=%s",
            portfolio_id, nav, valuation.total_value, units,
        )
        return NavRefreshResult(
            portfolio_id=portfolio_id,
            nav_per_unit=nav,
            total_fund_value=valuation.total_value,
            total_outstanding_units=units,
            as_of=valuation.as_of,
        )

    # =========================================================================
    # SUBSCRIBE / REDEEM
    # =========================================================================

    def subscribe(
            self,
            db: Session,
            portfolio_id: int,
            account_id: int,
            amount: Any = None,
            units: Any = None,
            subscription_date: Any = None,
            description: str | None = None,
            funding_source: str | None = None,
    ) -> SubscriptionResult:
        """
        Buy fund units for an investor.

        Exactly one of amount (cash contributed) or units (units wanted)
        is given. A fund without outstanding units sells at its last NAV, or
        at par when it never had one.

        Raises:
            ValidationError: Bad amount/units, or account is not an investor
            AccountNotFoundError / PortfolioNotFoundError: Unknown ids
            InvalidStateError: Portfolio is not a fund
            PriceLookupError: NAV could not be priced
        """
        _exactly_one(amount, units)
        cash_amount = parse_amount(amount) if amount is not None else None
        wanted_units = _parse_units(units) if units is not None else None
        flow_date = parse_flow_date(subscription_date, field="subscription_date")
        self._get_investor(db, account_id)

        with self._locks.hold(db, portfolio_id) as portfolio:
            self._require_fund(portfolio)
            try:
                if portfolio.total_outstanding_units > ZERO:
                    nav, _ = self._live_nav(db, portfolio)
                else:
                    nav = portfolio.nav_per_unit or INITIAL_NAV_PER_UNIT

                if cash_amount is not None:
                    bought_units = units_for_amount(cash_amount, nav)
                    if bought_units <= ZERO:
                        raise ValidationError(
                            f"Amount {cash_amount} buys no units at NAV {nav}", field="amount"
                        )
                else:
                    bought_units = wanted_units
                    cash_amount = parse_amount(amount_for_units(bought_units, nav))

                holding = self._get_or_create_holding(db, portfolio_id, account_id)
                _store_state(holding, apply_subscription(_state_of(holding), bought_units, cash_amount))

                cash_flow = self._cash_flows.build_entry(
                    portfolio,
                    flow_type=CashFlowType.DEPOSIT,
                    amount=cash_amount,
                    flow_date=flow_date,
                    description=description or f"Fund subscription - {bought_units} units at {nav} per unit",
                    funding_source=funding_source,
                    status=CashFlowStatus.COMPLETED,
                )
                db.add(cash_flow)
                db.flush()
                cash_flow.reference = f"{SUBSCRIPTION_REFERENCE_PREFIX}-{cash_flow.id}"

                transaction = FundUnitTransaction(
                    portfolio_id=portfolio_id,
                    account_id=account_id,
                    holding_id=holding.id,
                    type=FundUnitTransactionType.SUBSCRIBE,
                    units=bought_units,
                    nav_per_unit=nav,
                    amount=cash_amount,
                    transaction_date=flow_date,
                    description=description,
                    cash_flow_id=cash_flow.id,
                )
                db.add(transaction)

                portfolio.total_outstanding_units = quantize_units(portfolio.total_outstanding_units + bought_units)
                db.flush()
                portfolio.number_of_investors = self._count_investors(db, portfolio_id)
                self._mark_nav(portfolio, nav)
                total_units = portfolio.total_outstanding_units
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(transaction)
        db.refresh(holding)
        db.refresh(cash_flow)
        logger.info(
            "Account %s subscribed %s units of fund %s at %s for %s",
            account_id, bought_units, portfolio_id, nav, cash_amount,
            extra={"portfolio_id": portfolio_id, "units": bought_units, "amount": cash_amount},
        )
        return SubscriptionResult(
            portfolio_id=portfolio_id,
            account_id=account_id,
            units=bought_units,
            nav_per_unit=nav,
            amount=cash_amount,
            total_outstanding_units=total_units,
            transaction=transaction,
            holding=holding,
            cash_flow=cash_flow,
        )

    def redeem(
            self,
            db: Session,
            portfolio_id: int,
            account_id: int,
            units: Any = None,
            amount: Any = None,
            redemption_date: Any = None,
            description: str | None = None,
            funding_source: str | None = None,
    ) -> RedemptionResult:
        """
        Sell an investor's units back to the fund at the current NAV.

        Exactly one of units or amount (cash wanted) is given.

        Raises:
            ValidationError: Bad units/amount
            InvalidStateError: Not a fund
            NavUndefinedError: Fund has no outstanding units
            InsufficientUnitsError: More units than the investor holds;
                nothing is changed
            PriceLookupError: NAV could not be priced
        """
        _exactly_one(amount, units)
        wanted_units = _parse_units(units) if units is not None else None
        wanted_amount = parse_amount(amount) if amount is not None else None
        flow_date = parse_flow_date(redemption_date, field="redemption_date")
        if db.get(Account, account_id) is None:
            raise AccountNotFoundError(account_id)

        with self._locks.hold(db, portfolio_id) as portfolio:
            self._require_fund(portfolio)
            if portfolio.total_outstanding_units <= ZERO:
                raise NavUndefinedError(portfolio_id, last_known_nav=portfolio.nav_per_unit)

            holding = self._find_holding(db, portfolio_id, account_id)
            available = holding.total_units if holding is not None else quantize_units(ZERO)
            if wanted_units is not None and wanted_units > available:
                logger.warning(
                    "Rejected redemption of %s units by account %s from fund %s: holds %s",
                    wanted_units, account_id, portfolio_id, available,
                )
                raise InsufficientUnitsError(requested=wanted_units, available=available, account_id=account_id)

            try:
                nav, _ = self._live_nav(db, portfolio)
                sold_units = wanted_units if wanted_units is not None else units_for_amount(wanted_amount, nav)
                if sold_units <= ZERO:
                    raise ValidationError(f"Amount {wanted_amount} redeems no units at NAV {nav}", field="amount")
                if holding is None or sold_units > available:
                    raise InsufficientUnitsError(requested=sold_units, available=available, account_id=account_id)

                proceeds = amount_for_units(sold_units, nav)
                new_state, realized = apply_redemption(_state_of(holding), sold_units, nav)
                _store_state(holding, new_state)

                cash_flow = self._cash_flows.build_entry(
                    portfolio,
                    flow_type=CashFlowType.WITHDRAWAL,
                    amount=proceeds,
                    flow_date=flow_date,
                    description=description or f"Fund redemption - {sold_units} units at {nav} per unit",
                    funding_source=funding_source,
                    status=CashFlowStatus.COMPLETED,
                )
                db.add(cash_flow)
                db.flush()
                cash_flow.reference = f"{REDEMPTION_REFERENCE_PREFIX}-{cash_flow.id}"

                transaction = FundUnitTransaction(
                    portfolio_id=portfolio_id,
                    account_id=account_id,
                    holding_id=holding.id,
                    type=FundUnitTransactionType.REDEEM,
                    units=-sold_units,
                    nav_per_unit=nav,
                    amount=proceeds,
                    transaction_date=flow_date,
                    description=description,
                    cash_flow_id=cash_flow.id,
                )
                db.add(transaction)

                portfolio.total_outstanding_units = quantize_units(portfolio.total_outstanding_units - sold_units)
                db.flush()
                portfolio.number_of_investors = self._count_investors(db, portfolio_id)
                self._mark_nav(portfolio, nav)
                total_units = portfolio.total_outstanding_units
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(transaction)
        db.refresh(holding)
        db.refresh(cash_flow)
        logger.info(
            "Account %s redeemed %s units of fund %s at %s for %s (realized %s)",
            account_id, sold_units, portfolio_id, nav, proceeds, realized,
            extra={"portfolio_id": portfolio_id, "units": sold_units, "amount": proceeds},
        )
        return RedemptionResult(
            portfolio_id=portfolio_id,
            account_id=account_id,
            units=sold_units,
            nav_per_unit=nav,
            amount=proceeds,
            realized_pnl=realized,
            remaining_units=holding.total_units,
            total_outstanding_units=total_units,
            transaction=transaction,
            holding=holding,
            cash_flow=cash_flow,
        )

    # =========================================================================
    # INVESTORS
    # =========================================================================

    def _get_fund(self, db: Session, portfolio_id: int) -> Portfolio:
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)
        self._require_fund(portfolio)
        return portfolio

    def list_investors(self, db: Session, portfolio_id: int) -> list[HoldingSummary]:
        """Holdings of a fund, largest first, valued at the stored NAV."""
        portfolio = self._get_fund(db, portfolio_id)
        holdings = db.scalars(
            select(InvestorHolding)
            .where(InvestorHolding.portfolio_id == portfolio_id)
            .order_by(InvestorHolding.total_units.desc(), InvestorHolding.id)
        ).all()
        return [
            HoldingSummary(holding, portfolio.nav_per_unit, portfolio.total_outstanding_units)
            for holding in holdings
        ]

    def get_investor_holding(self, db: Session, portfolio_id: int, account_id: int) -> HoldingSummary:
        portfolio = self._get_fund(db, portfolio_id)
        holding = self._find_holding(db, portfolio_id, account_id)
        if holding is None:
            raise InvestorHoldingNotFoundError(f"portfolio={portfolio_id},account={account_id}")
        return HoldingSummary(holding, portfolio.nav_per_unit, portfolio.total_outstanding_units)

    def get_holding_detail(self, db: Session, holding_id: int) -> HoldingDetail:
        """
        A holding with its transaction history and subscription/redemption totals.

        Voided transactions are listed but excluded from the totals.
        """
        holding = db.get(InvestorHolding, holding_id)
        if holding is None:
            raise InvestorHoldingNotFoundError(holding_id)
        portfolio = holding.portfolio

        transactions = db.scalars(
            select(FundUnitTransaction)
            .where(FundUnitTransaction.holding_id == holding_id)
            .order_by(FundUnitTransaction.created_at, FundUnitTransaction.id)
        ).all()

        subscribed_amount = subscribed_units = redeemed_amount = redeemed_units = ZERO
        for tx in transactions:
            if tx.is_voided:
                continue
            if tx.type == FundUnitTransactionType.SUBSCRIBE:
                subscribed_amount += tx.amount
                subscribed_units += tx.units
            else:
                redeemed_amount += tx.amount
                redeemed_units += -tx.units

        return HoldingDetail(
            summary=HoldingSummary(holding, portfolio.nav_per_unit, portfolio.total_outstanding_units),
            transactions=list(transactions),
            total_subscribed_amount=subscribed_amount,
            total_subscribed_units=quantize_units(subscribed_units),
            total_redeemed_amount=redeemed_amount,
            total_redeemed_units=quantize_units(redeemed_units),
        )

    # =========================================================================
    # CORRECTIONS
    # =========================================================================

    def correct_transaction(
            self,
            db: Session,
            transaction_id: int,
            units: Any = None,
            nav_per_unit: Any = None,
            void: bool = False,
    ) -> tuple[FundUnitTransaction, RecalculationResult]:
        """
        Correct a settled unit transaction and rebuild the fund's holdings.

        Either void the transaction (its cash flow is cancelled) or replace
        its unit count and/or NAV; the amount and the linked cash flow amount
        follow. The replay must keep every holding non-negative.

        Raises:
            FundUnitTransactionNotFoundError: Unknown transaction
            InvalidStateError: Transaction already voided
            ValidationError: Nothing to correct, or bad values
            InsufficientUnitsError: The corrected log would overdraw a holding
        """
        transaction = db.get(FundUnitTransaction, transaction_id)
        if transaction is None:
            raise FundUnitTransactionNotFoundError(transaction_id)
        if not void and units is None and nav_per_unit is None:
            raise ValidationError("Nothing to correct: give units, nav_per_unit or void", field="units")

        new_units = _parse_units(units) if units is not None else None
        new_nav = quantize_nav(_parse_units(nav_per_unit, field="nav_per_unit")) if nav_per_unit is not None else None

        with self._locks.hold(db, transaction.portfolio_id) as portfolio:
            if transaction.is_voided:
                raise InvalidStateError(
                    f"Fund unit transaction {transaction_id} is voided",
                    resource_type="FundUnitTransaction",
                    resource_id=transaction_id,
                )
            cash_flow = db.get(CashFlow, transaction.cash_flow_id) if transaction.cash_flow_id else None

            try:
                if void:
                    transaction.is_voided = True
                    if cash_flow is not None and cash_flow.status != CashFlowStatus.CANCELLED:
                        cash_flow.status = CashFlowStatus.CANCELLED
                else:
                    magnitude = new_units if new_units is not None else abs(transaction.units)
                    nav = new_nav if new_nav is not None else transaction.nav_per_unit
                    sign = 1 if transaction.type == FundUnitTransactionType.SUBSCRIBE else -1
                    transaction.units = sign * magnitude
                    transaction.nav_per_unit = nav
                    transaction.amount = amount_for_units(magnitude, nav)
                    if cash_flow is not None:
                        cash_flow.amount = parse_amount(transaction.amount)

                db.flush()
                result = self._holdings.rebuild(db, portfolio)
                if portfolio.total_outstanding_units > ZERO:
                    portfolio.nav_is_stale = True
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(transaction)
        logger.info(
            "Corrected fund unit transaction %s (void=%s units=%s nav=%s); %d holding(s) rebuilt",
            transaction_id, void, new_units, new_nav, result.updated_holdings_count,
        )
        return transaction, result
