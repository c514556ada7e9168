# backend/fundledger/services/cash_flow/service.py
"""
Cash-flow ledger service.

The ledger is the source of truth for portfolio cash. Each entry carries a
positive amount, a type from the closed taxonomy and a direction derived
from it; the cash balance is the sum of COMPLETED inflows minus COMPLETED
outflows.

Lifecycle:
    create  -> PENDING or COMPLETED
    update  -> allowed while not CANCELLED (PENDING may become COMPLETED)
    cancel  -> CANCELLED, idempotent, entry kept for audit
    delete  -> physical removal

Entries created by the fund engine (subscriptions/redemptions) and by trades
are linked to those records. Their money fields cannot be edited here:
- cancelling or deleting a subscription/redemption entry voids the unit
  transaction and rebuilds holdings under the portfolio lock
- trade entries are removed together with their trade

Concurrency:
    Entries are versioned (SQLAlchemy version_id_col). An edit or cancel that
    lost a race with another writer fails with ConflictError instead of
    overwriting the other change.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fundledger.models import (
    CashFlow,
    CashFlowStatus,
    CashFlowType,
    FlowDirection,
    FundUnitTransaction,
    Portfolio,
    TermDeposit,
    Trade,
)
from fundledger.services.constants import MAX_LIST_LIMIT, UNKNOWN_FUNDING_SOURCE, ZERO
from fundledger.services.exceptions import (
    CashFlowNotFoundError,
    ConflictError,
    InvalidStateError,
    PortfolioNotFoundError,
    ValidationError,
)
from fundledger.services.cash_flow.types import (
    DEPOSIT_LIFECYCLE_TYPES,
    CashFlowPage,
    FundingSourceSummary,
    affects_balance,
    resolve_direction,
)
from fundledger.services.fund.calculators import quantize_money
from fundledger.services.fund.holdings import HoldingsRecalculator
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks

logger = logging.getLogger(__name__)

# Fields a caller may change through update()
EDITABLE_FIELDS = frozenset({
    "type", "direction", "amount", "currency", "status",
    "flow_date", "description", "reference", "funding_source",
})

# Fields that stay editable on entries owned by a trade or fund transaction
LINKED_EDITABLE_FIELDS = frozenset({"description", "reference", "funding_source"})


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a positive money amount.

    Raises:
        ValidationError: Not a number, or not > 0 after rounding to money precision
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = quantize_money(Decimal(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field) from None
    if not amount.is_finite() or amount <= ZERO:
        raise ValidationError(f"{field} must be greater than 0, got {value}", field=field)
    return amount


def parse_flow_date(value: Any, field: str = "flow_date") -> date:
    """
    Parse a ledger date from a date, datetime or ISO-8601 string.

    None means today.
    """
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10]) if "T" in text else date.fromisoformat(text)
        except ValueError:
            pass
    raise ValidationError(f"Unparsable {field}: {value!r}", field=field)


def parse_flow_type(value: Any) -> CashFlowType:
    if isinstance(value, CashFlowType):
        return value
    try:
        return CashFlowType(str(value).strip().upper())
    except ValueError:
        valid = ", ".join(t.value for t in CashFlowType)
        raise ValidationError(f"Unknown cash flow type: {value!r}. Valid types: {valid}", field="type") from None


def parse_direction(value: Any) -> FlowDirection | None:
    if value is None or isinstance(value, FlowDirection):
        return value
    try:
        return FlowDirection(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown direction: {value!r}. Valid: IN, OUT", field="direction") from None


def normalize_currency(value: str | None, default: str) -> str:
    if value is None:
        return default
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"Invalid currency code: {value!r}", field="currency")
    return code


def normalize_funding_source(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CashFlowService:
    """
    Create, edit, cancel, delete and query ledger entries.

    Stateless apart from its collaborators; one instance serves all requests.
    """

    def __init__(
            self,
            holdings_recalculator: HoldingsRecalculator | None = None,
            locks: PortfolioLockRegistry | None = None,
    ) -> None:
        self._locks = locks or portfolio_locks
        self._holdings = holdings_recalculator or HoldingsRecalculator(self._locks)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    @staticmethod
    def get_portfolio(db: Session, portfolio_id: int) -> Portfolio:
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    @staticmethod
    def get_cash_flow(db: Session, portfolio_id: int, cash_flow_id: int) -> CashFlow:
        """
        Fetch an entry that belongs to the given portfolio.

        Raises:
            CashFlowNotFoundError: Unknown id or entry of another portfolio
        """
        cash_flow = db.get(CashFlow, cash_flow_id)
        if cash_flow is None or cash_flow.portfolio_id != portfolio_id:
            raise CashFlowNotFoundError(cash_flow_id)
        return cash_flow

    # =========================================================================
    # CREATE
    # =========================================================================

    def build_entry(
            self,
            portfolio: Portfolio,
            flow_type: CashFlowType | str,
            amount: Any,
            flow_date: Any = None,
            description: str | None = None,
            funding_source: str | None = None,
            reference: str | None = None,
            currency: str | None = None,
            status: CashFlowStatus | str = CashFlowStatus.COMPLETED,
            direction: FlowDirection | str | None = None,
    ) -> CashFlow:
        """
        Validate input and return an unsaved CashFlow.

        Used directly by the transfer, trade and fund services, which add the
        entry to their own database transaction.

        Raises:
            ValidationError: Non-positive amount, unknown type, unparsable
                date, bad currency, or an ADJUSTMENT without direction
        """
        parsed_type = parse_flow_type(flow_type)
        try:
            parsed_direction = resolve_direction(parsed_type, parse_direction(direction))
        except ValueError as exc:
            raise ValidationError(str(exc), field="direction") from None

        try:
            parsed_status = CashFlowStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status!r}", field="status") from None
        if parsed_status == CashFlowStatus.CANCELLED:
            raise ValidationError("A cash flow cannot be created as CANCELLED", field="status")

        return CashFlow(
            portfolio_id=portfolio.id,
            type=parsed_type,
            direction=parsed_direction,
            amount=parse_amount(amount),
            currency=normalize_currency(currency, portfolio.base_currency),
            status=parsed_status,
            flow_date=parse_flow_date(flow_date),
            description=description,
            reference=reference,
            funding_source=normalize_funding_source(funding_source) or portfolio.funding_source,
        )

    def create(
            self,
            db: Session,
            portfolio_id: int,
            flow_type: CashFlowType | str,
            amount: Any,
            flow_date: Any = None,
            description: str | None = None,
            funding_source: str | None = None,
            reference: str | None = None,
            currency: str | None = None,
            status: CashFlowStatus | str = CashFlowStatus.COMPLETED,
            direction: FlowDirection | str | None = None,
    ) -> CashFlow:
        """
        Record a new ledger entry.

        The amount is a magnitude: direction comes from the type, never from
        the sign of the input.

        Raises:
            PortfolioNotFoundError: Unknown portfolio
            ValidationError: See build_entry; also a term deposit entry type,
                which only DepositService records
        """
        if parse_flow_type(flow_type) in DEPOSIT_LIFECYCLE_TYPES:
            raise ValidationError(
                "Term deposit entries are recorded by opening or settling a deposit",
                field="type",
            )
        portfolio = self.get_portfolio(db, portfolio_id)
        cash_flow = self.build_entry(
            portfolio,
            flow_type=flow_type,
            amount=amount,
            flow_date=flow_date,
            description=description,
            funding_source=funding_source,
            reference=reference,
            currency=currency,
            status=status,
            direction=direction,
        )
        db.add(cash_flow)
        if portfolio.is_fund and affects_balance(cash_flow):
            portfolio.nav_is_stale = True
        db.commit()
        db.refresh(cash_flow)

        logger.info(
            "Recorded %s %s %s for portfolio %s (cash flow %s, source=%s)",
            cash_flow.type.value, cash_flow.amount, cash_flow.currency,
            portfolio_id, cash_flow.id, cash_flow.funding_source,
        )
        return cash_flow

    # =========================================================================
    # UPDATE
    # =========================================================================

    def update(
            self,
            db: Session,
            portfolio_id: int,
            cash_flow_id: int,
            changes: dict[str, Any],
            expected_version: int | None = None,
    ) -> CashFlow:
        """
        Edit a non-cancelled entry.

        Args:
            changes: Field name -> new value, restricted to EDITABLE_FIELDS
            expected_version: Version the caller last read; a mismatch means
                someone else changed the entry in between

        Raises:
            CashFlowNotFoundError: Unknown entry
            InvalidStateError: Entry is CANCELLED, or money fields of a linked
                entry were changed
            ValidationError: Invalid new values
            ConflictError: Version mismatch or concurrent modification
        """
        cash_flow = self.get_cash_flow(db, portfolio_id, cash_flow_id)

        if cash_flow.status == CashFlowStatus.CANCELLED:
            logger.warning("Rejected edit of cancelled cash flow %s", cash_flow_id)
            raise InvalidStateError(
                f"Cash flow {cash_flow_id} is cancelled and cannot be edited",
                resource_type="CashFlow",
                resource_id=cash_flow_id,
            )
        if expected_version is not None and expected_version != cash_flow.version:
            raise ConflictError(
                f"Cash flow {cash_flow_id} was modified (version {cash_flow.version}, "
                f"expected {expected_version})"
            )

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

        if not set(changes) <= LINKED_EDITABLE_FIELDS and self._is_linked(db, cash_flow.id):
            raise InvalidStateError(
                f"Cash flow {cash_flow_id} belongs to a trade, a fund transaction or a term deposit; "
                "only description, reference and funding_source can be edited",
                resource_type="CashFlow",
                resource_id=cash_flow_id,
            )

        portfolio = self.get_portfolio(db, portfolio_id)
        previously_counted = affects_balance(cash_flow)
        for attribute, value in self._validated_changes(portfolio, cash_flow, changes).items():
            setattr(cash_flow, attribute, value)

        if portfolio.is_fund and (previously_counted or affects_balance(cash_flow)):
            portfolio.nav_is_stale = True

        self._commit_versioned(db, cash_flow_id)
        db.refresh(cash_flow)
        logger.info("Updated cash flow %s (%s), now version %s", cash_flow_id, ", ".join(sorted(changes)), cash_flow.version)
        return cash_flow

    def _validated_changes(
            self, portfolio: Portfolio, cash_flow: CashFlow, changes: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Validate every change the same way create does.

        Nothing is assigned here, so a rejected edit leaves the entry (and the
        session) untouched.
        """
        validated: dict[str, Any] = {}
        flow_type = parse_flow_type(changes["type"]) if "type" in changes else cash_flow.type
        if "type" in changes and flow_type in DEPOSIT_LIFECYCLE_TYPES:
            raise ValidationError(
                "Term deposit entries are recorded by opening or settling a deposit",
                field="type",
            )
        requested_direction = parse_direction(changes.get("direction"))
        if "type" in changes or "direction" in changes:
            try:
                validated["direction"] = resolve_direction(
                    flow_type,
                    requested_direction if "direction" in changes else (
                        cash_flow.direction if flow_type == CashFlowType.ADJUSTMENT else None
                    ),
                )
            except ValueError as exc:
                raise ValidationError(str(exc), field="direction") from None
            validated["type"] = flow_type

        if "amount" in changes:
            validated["amount"] = parse_amount(changes["amount"])
        if "flow_date" in changes:
            validated["flow_date"] = parse_flow_date(changes["flow_date"])
        if "currency" in changes:
            validated["currency"] = normalize_currency(changes["currency"], portfolio.base_currency)
        if "funding_source" in changes:
            validated["funding_source"] = normalize_funding_source(changes["funding_source"])
        if "description" in changes:
            validated["description"] = changes["description"]
        if "reference" in changes:
            validated["reference"] = changes["reference"]

        if "status" in changes:
            try:
                new_status = CashFlowStatus(changes["status"])
            except ValueError:
                raise ValidationError(f"Unknown status: {changes['status']!r}", field="status") from None
            if new_status == CashFlowStatus.CANCELLED:
                raise ValidationError("Use cancel to cancel a cash flow", field="status")
            if cash_flow.status == CashFlowStatus.COMPLETED and new_status == CashFlowStatus.PENDING:
                raise InvalidStateError(
                    f"Cash flow {cash_flow.id} is COMPLETED and cannot return to PENDING",
                    resource_type="CashFlow",
                    resource_id=cash_flow.id,
                )
            validated["status"] = new_status

        return validated

    # =========================================================================
    # CANCEL / DELETE
    # =========================================================================

    def cancel(self, db: Session, portfolio_id: int, cash_flow_id: int) -> CashFlow:
        """
        Cancel an entry (soft delete).

        Cancelling an already cancelled entry returns it unchanged. If the
        entry funded a subscription or paid a redemption, that unit
        transaction is voided and the fund's holdings are rebuilt.

        Raises:
            CashFlowNotFoundError: Unknown entry
            InvalidStateError: Entry belongs to a trade or a term deposit
            InsufficientUnitsError: Voiding the unit transaction would leave
                a holding negative (a later redemption depends on it)
            ConflictError: Concurrent modification
        """
        cash_flow = self.get_cash_flow(db, portfolio_id, cash_flow_id)
        if cash_flow.status == CashFlowStatus.CANCELLED:
            logger.debug("Cash flow %s already cancelled", cash_flow_id)
            return cash_flow

        self._reject_owned_entry(db, cash_flow)

        with self._locks.hold(db, portfolio_id) as portfolio:
            try:
                was_counted = affects_balance(cash_flow)
                self._void_linked_unit_transaction(db, portfolio, cash_flow)
                cash_flow.status = CashFlowStatus.CANCELLED
                if portfolio.is_fund and was_counted:
                    portfolio.nav_is_stale = True
                self._commit_versioned(db, cash_flow_id)
            except Exception:
                db.rollback()
                raise

        db.refresh(cash_flow)
        logger.info("Cancelled cash flow %s of portfolio %s", cash_flow_id, portfolio_id)
        return cash_flow

    def delete(self, db: Session, portfolio_id: int, cash_flow_id: int) -> None:
        """
        Physically remove an entry.

        Intended for PENDING or erroneous entries; the same recompute rules
        as cancel apply.

        Raises:
            CashFlowNotFoundError: Unknown entry
            InvalidStateError: Entry belongs to a trade or a term deposit
            InsufficientUnitsError: See cancel
        """
        cash_flow = self.get_cash_flow(db, portfolio_id, cash_flow_id)
        self._reject_owned_entry(db, cash_flow)

        with self._locks.hold(db, portfolio_id) as portfolio:
            try:
                was_counted = affects_balance(cash_flow)
                linked = self._void_linked_unit_transaction(db, portfolio, cash_flow)
                if linked is not None:
                    linked.cash_flow_id = None
                db.delete(cash_flow)
                if portfolio.is_fund and was_counted:
                    portfolio.nav_is_stale = True
                db.commit()
            except StaleDataError:
                db.rollback()
                raise ConflictError(f"Cash flow {cash_flow_id} was modified concurrently") from None
            except Exception:
                db.rollback()
                raise

        logger.info("Deleted cash flow %s of portfolio %s", cash_flow_id, portfolio_id)

    def _void_linked_unit_transaction(
            self,
            db: Session,
            portfolio: Portfolio,
            cash_flow: CashFlow,
    ) -> FundUnitTransaction | None:
        linked = db.scalars(
            select(FundUnitTransaction).where(
                FundUnitTransaction.cash_flow_id == cash_flow.id,
                FundUnitTransaction.is_voided.is_(False),
            )
        ).first()
        if linked is None:
            return None

        # Replay without the transaction; raises before writing if a later
        # redemption depended on these units
        self._holdings.rebuild(db, portfolio, exclude_transaction_ids={linked.id})
        linked.is_voided = True
        logger.info(
            "Voided fund unit transaction %s (%s units) linked to cash flow %s",
            linked.id, linked.units, cash_flow.id,
        )
        return linked

    def _reject_owned_entry(self, db: Session, cash_flow: CashFlow) -> None:
        trade_id = db.scalar(select(Trade.id).where(Trade.cash_flow_id == cash_flow.id))
        if trade_id is not None:
            raise InvalidStateError(
                f"Cash flow {cash_flow.id} belongs to trade {trade_id}; delete the trade instead",
                resource_type="CashFlow",
                resource_id=cash_flow.id,
            )
        deposit_id = self._owning_deposit(db, cash_flow.id)
        if deposit_id is not None:
            raise InvalidStateError(
                f"Cash flow {cash_flow.id} belongs to term deposit {deposit_id}; delete the deposit instead",
                resource_type="CashFlow",
                resource_id=cash_flow.id,
            )

    @staticmethod
    def _owning_deposit(db: Session, cash_flow_id: int) -> int | None:
        return db.scalar(
            select(TermDeposit.id).where(
                (TermDeposit.creation_cash_flow_id == cash_flow_id)
                | (TermDeposit.settlement_cash_flow_id == cash_flow_id)
            )
        )

    @staticmethod
    def _is_linked(db: Session, cash_flow_id: int) -> bool:
        if db.scalar(select(Trade.id).where(Trade.cash_flow_id == cash_flow_id)) is not None:
            return True
        if CashFlowService._owning_deposit(db, cash_flow_id) is not None:
            return True
        return db.scalar(
            select(FundUnitTransaction.id).where(FundUnitTransaction.cash_flow_id == cash_flow_id)
        ) is not None

    @staticmethod
    def _commit_versioned(db: Session, cash_flow_id: int) -> None:
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning("Concurrent modification of cash flow %s detected", cash_flow_id)
            raise ConflictError(f"Cash flow {cash_flow_id} was modified concurrently") from None

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _filtered_query(
            self,
            portfolio_id: int,
            start_date: date | None = None,
            end_date: date | None = None,
            types: Iterable[CashFlowType | str] | None = None,
            status: CashFlowStatus | None = None,
            funding_source: str | None = None,
    ):
        query = select(CashFlow).where(CashFlow.portfolio_id == portfolio_id)
        if start_date is not None:
            query = query.where(CashFlow.flow_date >= start_date)
        if end_date is not None:
            query = query.where(CashFlow.flow_date <= end_date)
        if types:
            query = query.where(CashFlow.type.in_([parse_flow_type(t) for t in types]))
        if status is not None:
            query = query.where(CashFlow.status == status)
        if funding_source is not None:
            query = query.where(CashFlow.funding_source == funding_source)
        return query

    def list_cash_flows(
            self,
            db: Session,
            portfolio_id: int,
            page: int = 1,
            limit: int = 20,
            start_date: date | None = None,
            end_date: date | None = None,
            types: Iterable[CashFlowType | str] | None = None,
            status: CashFlowStatus | None = None,
            funding_source: str | None = None,
    ) -> CashFlowPage:
        """
        One page of entries, newest flow_date first.

        Entries sharing a flow_date keep insertion order (id ascending).
        `total` counts the whole filtered set, not the page.
        """
        self.get_portfolio(db, portfolio_id)
        if page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}", field="limit")
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        query = self._filtered_query(portfolio_id, start_date, end_date, types, status, funding_source)
        total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
        items = db.scalars(
            query.order_by(CashFlow.flow_date.desc(), CashFlow.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return CashFlowPage(items=list(items), total=total, page=page, limit=limit)

    def list_all(
            self,
            db: Session,
            portfolio_id: int,
            start_date: date | None = None,
            end_date: date | None = None,
            types: Iterable[CashFlowType | str] | None = None,
            status: CashFlowStatus | None = None,
    ) -> list[CashFlow]:
        """Unpaginated entries in ledger order (flow_date, then insertion)."""
        query = self._filtered_query(portfolio_id, start_date, end_date, types, status)
        return list(db.scalars(query.order_by(CashFlow.flow_date.asc(), CashFlow.id.asc())).all())

    def get_balance(
            self,
            db: Session,
            portfolio_id: int,
            as_of: date | None = None,
            funding_source: str | None = None,
    ) -> Decimal:
        """
        Cash balance: COMPLETED inflows minus COMPLETED outflows.

        Args:
            as_of: Only entries with flow_date on or before this date
            funding_source: Only entries tagged with this source
        """
        totals = {FlowDirection.IN: ZERO, FlowDirection.OUT: ZERO}
        query = (
            select(CashFlow.direction, func.coalesce(func.sum(CashFlow.amount), 0))
            .where(
                CashFlow.portfolio_id == portfolio_id,
                CashFlow.status == CashFlowStatus.COMPLETED,
            )
            .group_by(CashFlow.direction)
        )
        if as_of is not None:
            query = query.where(CashFlow.flow_date <= as_of)
        if funding_source is not None:
            query = query.where(CashFlow.funding_source == funding_source)

        for direction, total in db.execute(query).all():
            totals[direction] = Decimal(str(total))
        return quantize_money(totals[FlowDirection.IN] - totals[FlowDirection.OUT])

    def get_total_by_types(
            self,
            db: Session,
            portfolio_id: int,
            types: Iterable[CashFlowType],
            start_date: date | None = None,
            end_date: date | None = None,
    ) -> Decimal:
        """Sum of COMPLETED amounts of the given types within an optional date range."""
        query = select(func.coalesce(func.sum(CashFlow.amount), 0)).where(
            CashFlow.portfolio_id == portfolio_id,
            CashFlow.status == CashFlowStatus.COMPLETED,
            CashFlow.type.in_(list(types)),
        )
        if start_date is not None:
            query = query.where(CashFlow.flow_date >= start_date)
        if end_date is not None:
            query = query.where(CashFlow.flow_date <= end_date)
        return quantize_money(Decimal(str(db.scalar(query))))

    def adjust_balance(
            self,
            db: Session,
            portfolio_id: int,
            target_balance: Any,
            flow_date: Any = None,
            description: str | None = None,
    ) -> CashFlow | None:
        """
        Bring the cash balance to `target_balance`.

        Records a DEPOSIT or WITHDRAWAL for the difference; returns None when
        the balance already matches.
        """
        try:
            target = quantize_money(Decimal(str(target_balance)))
        except InvalidOperation:
            raise ValidationError(f"Invalid balance: {target_balance!r}", field="balance") from None

        current = self.get_balance(db, portfolio_id)
        difference = target - current
        if difference == ZERO:
            return None

        flow_type = CashFlowType.DEPOSIT if difference > ZERO else CashFlowType.WITHDRAWAL
        return self.create(
            db,
            portfolio_id,
            flow_type=flow_type,
            amount=abs(difference),
            flow_date=flow_date,
            description=description or f"Balance adjustment from {current} to {target}",
        )

    def funding_source_summary(self, db: Session, portfolio_id: int) -> list[FundingSourceSummary]:
        """
        Inflow/outflow totals per funding source over COMPLETED entries.

        Entries without a source are grouped under UNKNOWN.
        """
        self.get_portfolio(db, portfolio_id)
        summaries: dict[str, FundingSourceSummary] = {}
        for cash_flow in self.list_all(db, portfolio_id, status=CashFlowStatus.COMPLETED):
            source = cash_flow.funding_source or UNKNOWN_FUNDING_SOURCE
            summary = summaries.setdefault(source, FundingSourceSummary(funding_source=source))
            summary.add(cash_flow)
        return [summaries[key] for key in sorted(summaries)]
