# backend/fundledger/services/deposits.py
"""
Term deposit lifecycle.

A bank deposit moves cash out of the ledger and later brings it back with
interest:

    open   -> TermDeposit (ACTIVE) + DEPOSIT_CREATION cash flow   (principal, OUT)
    settle -> TermDeposit (SETTLED) + DEPOSIT_SETTLEMENT cash flow (principal + interest, IN)
    delete -> removes the deposit and both of its cash flows

These are the only writers of the two deposit entry types. The ledger refuses
to record, retype, cancel or delete them on its own, so every deposit entry
belongs to exactly one deposit. Valuation reads the principal of deposits
still open on the valuation date from here.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from fundledger.models import CashFlow, CashFlowStatus, CashFlowType, DepositStatus, TermDeposit
from fundledger.services.cash_flow.service import CashFlowService, parse_amount, parse_flow_date
from fundledger.services.constants import DEPOSIT_REFERENCE_PREFIX, MAX_DEPOSIT_TERM_DAYS, ZERO
from fundledger.services.exceptions import DepositNotFoundError, InvalidStateError, ValidationError
from fundledger.services.fund.calculators import quantize_money
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks

logger = logging.getLogger(__name__)


def _parse_non_negative(value: Any, field: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        parsed = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field) from None
    if not parsed.is_finite() or parsed < ZERO:
        raise ValidationError(f"{field} cannot be negative, got {value}", field=field)
    return parsed


class DepositService:
    """
    Opens, settles and removes term deposits together with their ledger entries.

    Usage:
        deposit = DepositService().create_deposit(
            db, portfolio_id=1, bank_name="Bank A", principal="100000000",
            interest_rate="5.5", start_date="2024-01-01", end_date="2024-07-01",
        )
        DepositService().settle_deposit(db, 1, deposit.id, actual_interest="2750000")
    """

    def __init__(
            self,
            cash_flow_service: CashFlowService | None = None,
            locks: PortfolioLockRegistry | None = None,
    ) -> None:
        self._locks = locks or portfolio_locks
        self._cash_flows = cash_flow_service or CashFlowService(locks=self._locks)

    # =========================================================================
    # READ
    # =========================================================================

    def get_deposit(self, db: Session, portfolio_id: int, deposit_id: int) -> TermDeposit:
        deposit = db.get(TermDeposit, deposit_id)
        if deposit is None or deposit.portfolio_id != portfolio_id:
            raise DepositNotFoundError(deposit_id)
        return deposit

    def list_deposits(
            self,
            db: Session,
            portfolio_id: int,
            status: DepositStatus | str | None = None,
    ) -> list[TermDeposit]:
        """Deposits of a portfolio, latest start date first."""
        self._cash_flows.get_portfolio(db, portfolio_id)
        query = select(TermDeposit).where(TermDeposit.portfolio_id == portfolio_id)
        if status is not None:
            try:
                query = query.where(TermDeposit.status == DepositStatus(str(getattr(status, "value", status)).upper()))
            except ValueError:
                raise ValidationError(f"Unknown deposit status: {status!r}", field="status") from None
        return list(db.scalars(query.order_by(TermDeposit.start_date.desc(), TermDeposit.id.desc())).all())

    @staticmethod
    def open_principal(db: Session, portfolio_id: int, as_of: date) -> Decimal:
        """
        Principal of the deposits held on as_of.

        A deposit counts from its start date until the day before it is
        settled. Interest is not accrued: it enters the value only when the
        settlement brings it into the cash balance.
        """
        total = db.scalar(
            select(func.coalesce(func.sum(TermDeposit.principal), 0)).where(
                TermDeposit.portfolio_id == portfolio_id,
                TermDeposit.start_date <= as_of,
                or_(TermDeposit.settlement_date.is_(None), TermDeposit.settlement_date > as_of),
            )
        )
        return quantize_money(Decimal(str(total)))

    # =========================================================================
    # OPEN
    # =========================================================================

    def create_deposit(
            self,
            db: Session,
            portfolio_id: int,
            bank_name: str,
            principal: Any,
            start_date: Any,
            end_date: Any,
            interest_rate: Any = ZERO,
            account_number: str | None = None,
            notes: str | None = None,
            funding_source: str | None = None,
    ) -> TermDeposit:
        """
        Open a deposit and record the principal leaving the cash balance.

        Raises:
            PortfolioNotFoundError: Unknown portfolio
            ValidationError: Blank bank name, non-positive principal, negative
                rate, end date not after the start date, or a term above
                MAX_DEPOSIT_TERM_DAYS
        """
        bank = (bank_name or "").strip()
        if not bank:
            raise ValidationError("Bank name is required", field="bank_name")
        amount = parse_amount(principal, field="principal")
        rate = _parse_non_negative(interest_rate, "interest_rate")
        opened_on = parse_flow_date(start_date, field="start_date")
        matures_on = parse_flow_date(end_date, field="end_date")
        if matures_on <= opened_on:
            raise ValidationError("End date must be after the start date", field="end_date")
        if (matures_on - opened_on).days > MAX_DEPOSIT_TERM_DAYS:
            raise ValidationError(
                f"Deposit term cannot exceed {MAX_DEPOSIT_TERM_DAYS} days", field="end_date"
            )

        with self._locks.hold(db, portfolio_id) as portfolio:
            try:
                cash_flow = self._cash_flows.build_entry(
                    portfolio,
                    flow_type=CashFlowType.DEPOSIT_CREATION,
                    amount=amount,
                    flow_date=opened_on,
                    description=f"Term deposit at {bank}",
                    funding_source=funding_source,
                    status=CashFlowStatus.COMPLETED,
                )
                db.add(cash_flow)
                db.flush()

                deposit = TermDeposit(
                    portfolio_id=portfolio_id,
                    bank_name=bank,
                    account_number=account_number,
                    principal=amount,
                    interest_rate=rate,
                    start_date=opened_on,
                    end_date=matures_on,
                    status=DepositStatus.ACTIVE,
                    notes=notes,
                    creation_cash_flow_id=cash_flow.id,
                )
                db.add(deposit)
                db.flush()
                cash_flow.reference = f"{DEPOSIT_REFERENCE_PREFIX}-{deposit.id}"
                if portfolio.is_fund:
                    portfolio.nav_is_stale = True
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(deposit)
        logger.info(
            "Opened term deposit %s at %s: %s from %s to %s in portfolio %s (cash flow %s)",
            deposit.id, bank, amount, opened_on, matures_on, portfolio_id, cash_flow.id,
        )
        return deposit

    # =========================================================================
    # SETTLE
    # =========================================================================

    def settle_deposit(
            self,
            db: Session,
            portfolio_id: int,
            deposit_id: int,
            actual_interest: Any = ZERO,
            settlement_date: Any = None,
    ) -> TermDeposit:
        """
        Close an active deposit with the interest the bank actually paid.

        The settlement entry carries principal + interest. settlement_date
        defaults to today and may fall before the maturity date (early
        withdrawal) but not before the start date.

        Raises:
            DepositNotFoundError: Unknown deposit in this portfolio
            InvalidStateError: Deposit already settled
            ValidationError: Negative interest or a date before the start date
        """
        interest = quantize_money(_parse_non_negative(actual_interest or ZERO, "actual_interest"))
        settled_on = parse_flow_date(settlement_date, field="settlement_date")

        with self._locks.hold(db, portfolio_id) as portfolio:
            deposit = self.get_deposit(db, portfolio_id, deposit_id)
            if deposit.status != DepositStatus.ACTIVE:
                raise InvalidStateError(
                    f"Term deposit {deposit_id} is already settled",
                    resource_type="TermDeposit",
                    resource_id=deposit_id,
                )
            if settled_on < deposit.start_date:
                raise ValidationError(
                    f"Settlement date {settled_on} is before the start date {deposit.start_date}",
                    field="settlement_date",
                )

            try:
                cash_flow = self._cash_flows.build_entry(
                    portfolio,
                    flow_type=CashFlowType.DEPOSIT_SETTLEMENT,
                    amount=deposit.principal + interest,
                    flow_date=settled_on,
                    description=f"Term deposit at {deposit.bank_name} settled",
                    reference=f"{DEPOSIT_REFERENCE_PREFIX}-{deposit.id}",
                    status=CashFlowStatus.COMPLETED,
                )
                db.add(cash_flow)
                db.flush()

                deposit.status = DepositStatus.SETTLED
                deposit.actual_interest = interest
                deposit.settlement_date = settled_on
                deposit.settlement_cash_flow_id = cash_flow.id
                if portfolio.is_fund:
                    portfolio.nav_is_stale = True
                db.commit()
            except Exception:
                db.rollback()
                raise

        db.refresh(deposit)
        logger.info(
            "Settled term deposit %s of portfolio %s on %s: principal %s, interest %s (cash flow %s)",
            deposit_id, portfolio_id, settled_on, deposit.principal, interest, cash_flow.id,
        )
        return deposit

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete_deposit(self, db: Session, portfolio_id: int, deposit_id: int) -> None:
        """
        Remove a deposit and both of its cash flows.

        Raises:
            DepositNotFoundError: Unknown deposit in this portfolio
        """
        with self._locks.hold(db, portfolio_id) as portfolio:
            deposit = self.get_deposit(db, portfolio_id, deposit_id)
            linked_ids = [
                cash_flow_id
                for cash_flow_id in (deposit.creation_cash_flow_id, deposit.settlement_cash_flow_id)
                if cash_flow_id is not None
            ]
            try:
                db.delete(deposit)
                for cash_flow_id in linked_ids:
                    cash_flow = db.get(CashFlow, cash_flow_id)
                    if cash_flow is not None:
                        db.delete(cash_flow)
                if portfolio.is_fund:
                    portfolio.nav_is_stale = True
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info("Deleted term deposit %s of portfolio %s", deposit_id, portfolio_id)
