# backend/fundledger/services/snapshots/service.py
"""
Snapshot store.

Freezes a portfolio's state at period boundaries so history does not have to
be recomputed from trades and prices every time it is read:

    PortfolioSnapshot    value, cash, NAV per unit, units, allocation
    PerformanceSnapshot  value change, net external cash flow, returns

Returns (percentages, 4 dp):

    period_return     = (value change - net external cash flow) / previous value × 100
    cumulative_return = ((1 + previous cumulative) × (1 + period return) - 1) × 100
    nav_return        = (nav - previous nav) / previous nav × 100

The first snapshot of a series has no previous value; its returns are None.
External cash flow means DEPOSIT minus WITHDRAWAL, since trades, income and
fees are part of the portfolio's performance.

Snapshots are immutable. Creating one for a key that already exists fails
with ConflictError; `regenerate_snapshots` deletes and rewrites a range with
the next generation number.

A batch takes the portfolio lock per boundary only, so long backfills do not
block subscriptions. A CancellationToken stops a batch between boundaries.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fundledger.config import settings
from fundledger.models import (
    CashFlowType,
    FundUnitTransaction,
    PerformanceSnapshot,
    Portfolio,
    PortfolioSnapshot,
    SnapshotGranularity,
)
from fundledger.services.cash_flow.service import CashFlowService, parse_flow_date
from fundledger.services.constants import HUNDRED, MAX_LIST_LIMIT, ZERO
from fundledger.services.exceptions import (
    ConflictError,
    PortfolioNotFoundError,
    SnapshotNotFoundError,
    ValidationError,
)
from fundledger.services.fund.calculators import (
    calculate_nav_per_unit,
    quantize_money,
    quantize_percentage,
    quantize_units,
    return_percentage,
)
from fundledger.services.fund.valuation import FundValuationService
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks
from fundledger.services.snapshots.types import (
    CancellationToken,
    SnapshotBatchResult,
    SnapshotPage,
    SnapshotStatistics,
    TimelinePoint,
)
from fundledger.utils.date_utils import get_period_boundaries

logger = logging.getLogger(__name__)


def parse_granularity(value: Any) -> SnapshotGranularity:
    if isinstance(value, SnapshotGranularity):
        return value
    try:
        return SnapshotGranularity(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unknown granularity: {value!r}. Valid options: DAILY, WEEKLY, MONTHLY",
            field="granularity",
        ) from None


def chain_returns(previous_cumulative: Decimal | None, period_return: Decimal) -> Decimal:
    """Compound a period return (percent) onto a cumulative return (percent)."""
    base = (previous_cumulative or ZERO) / HUNDRED
    return quantize_percentage(((1 + base) * (1 + period_return / HUNDRED) - 1) * HUNDRED)


class SnapshotService:
    """
    Creates, regenerates, deletes and reads portfolio snapshots.

    Usage:
        service = SnapshotService(FundValuationService(price_service))
        result = service.create_portfolio_snapshots(
            db, portfolio_id=1,
            start_date=date(2024, 1, 1), end_date=date(2024, 6, 30),
            granularity="MONTHLY",
        )
    """

    def __init__(
            self,
            valuation_service: FundValuationService,
            cash_flow_service: CashFlowService | None = None,
            locks: PortfolioLockRegistry | None = None,
            max_periods: int | None = None,
    ) -> None:
        self._valuation = valuation_service
        self._locks = locks or portfolio_locks
        self._cash_flows = cash_flow_service or CashFlowService(locks=self._locks)
        self.max_periods = max_periods or settings.snapshot_max_periods

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _require_portfolio(db: Session, portfolio_id: int) -> Portfolio:
        portfolio = db.get(Portfolio, portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    def _boundaries(self, start_date: Any, end_date: Any, granularity: SnapshotGranularity) -> list[date]:
        start = parse_flow_date(start_date, field="start_date")
        end = parse_flow_date(end_date, field="end_date")
        if end > date.today():
            raise ValidationError("end_date cannot be in the future", field="end_date")
        try:
            boundaries = get_period_boundaries(start, end, granularity.value)
        except ValueError as exc:
            raise ValidationError(str(exc), field="end_date") from None
        if len(boundaries) > self.max_periods:
            raise ValidationError(
                f"{len(boundaries)} {granularity.value} periods requested; at most {self.max_periods} per batch",
                field="start_date",
            )
        return boundaries

    @staticmethod
    def units_as_of(db: Session, portfolio_id: int, as_of: date) -> Decimal:
        """Outstanding units from non-voided unit transactions dated on or before as_of."""
        total = db.scalar(
            select(func.coalesce(func.sum(FundUnitTransaction.units), 0)).where(
                FundUnitTransaction.portfolio_id == portfolio_id,
                FundUnitTransaction.is_voided.is_(False),
                FundUnitTransaction.transaction_date <= as_of,
            )
        )
        return quantize_units(Decimal(str(total)))

    @staticmethod
    def _previous_performance(
            db: Session,
            portfolio_id: int,
            granularity: SnapshotGranularity,
            before: date,
    ) -> PerformanceSnapshot | None:
        return db.scalars(
            select(PerformanceSnapshot)
            .where(
                PerformanceSnapshot.portfolio_id == portfolio_id,
                PerformanceSnapshot.granularity == granularity,
                PerformanceSnapshot.snapshot_date < before,
            )
            .order_by(PerformanceSnapshot.snapshot_date.desc())
            .limit(1)
        ).first()

    def _net_external_flow(self, db: Session, portfolio_id: int, after: date | None, through: date) -> Decimal:
        start = after + timedelta(days=1) if after is not None else None
        deposits = self._cash_flows.get_total_by_types(
            db, portfolio_id, [CashFlowType.DEPOSIT], start_date=start, end_date=through
        )
        withdrawals = self._cash_flows.get_total_by_types(
            db, portfolio_id, [CashFlowType.WITHDRAWAL], start_date=start, end_date=through
        )
        return quantize_money(deposits - withdrawals)

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_portfolio_snapshots(
            self,
            db: Session,
            portfolio_id: int,
            start_date: Any,
            end_date: Any,
            granularity: Any = SnapshotGranularity.DAILY,
            cancel_token: CancellationToken | None = None,
            generation: int = 1,
    ) -> SnapshotBatchResult:
        """
        Snapshot a portfolio at every period boundary in [start_date, end_date].

        Each boundary is valued and committed on its own. When a price lookup
        fails mid-batch the error propagates and the boundaries already
        written stay.

        Raises:
            PortfolioNotFoundError: Unknown portfolio
            ValidationError: Bad range or granularity, or too many periods
            ConflictError: A snapshot already exists for one of the boundaries
                (nothing is written)
            PriceLookupError: A boundary could not be priced
        """
        key = parse_granularity(granularity)
        boundaries = self._boundaries(start_date, end_date, key)
        self._require_portfolio(db, portfolio_id)

        existing = db.scalars(
            select(PortfolioSnapshot.snapshot_date).where(
                PortfolioSnapshot.portfolio_id == portfolio_id,
                PortfolioSnapshot.granularity == key,
                PortfolioSnapshot.snapshot_date.in_(boundaries),
            ).order_by(PortfolioSnapshot.snapshot_date)
        ).all()
        if existing:
            shown = ", ".join(d.isoformat() for d in existing[:5])
            raise ConflictError(
                f"{len(existing)} {key.value} snapshot(s) already exist for portfolio {portfolio_id} "
                f"({shown}{', ...' if len(existing) > 5 else ''}); regenerate them instead"
            )

        previous = self._previous_performance(db, portfolio_id, key, boundaries[0]) if boundaries else None
        created = 0
        cancelled = False

        for boundary in boundaries:
            if cancel_token is not None and cancel_token.is_cancelled:
                cancelled = True
                logger.info(
                    "Snapshot batch for portfolio %s cancelled after %d of %d boundaries",
                    portfolio_id, created, len(boundaries),
                )
                break
            previous = self._snapshot_boundary(db, portfolio_id, boundary, key, generation, previous)
            created += 1

        if not cancelled:
            logger.info(
                "Created %d %s snapshot(s) for portfolio %s (generation %d)",
                created, key.value, portfolio_id, generation,
            )
        return SnapshotBatchResult(
            portfolio_id=portfolio_id,
            granularity=key,
            start_date=boundaries[0] if boundaries else parse_flow_date(start_date, field="start_date"),
            end_date=boundaries[-1] if boundaries else parse_flow_date(end_date, field="end_date"),
            requested=len(boundaries),
            created=created,
            generation=generation,
            cancelled=cancelled,
        )

    def _snapshot_boundary(
            self,
            db: Session,
            portfolio_id: int,
            boundary: date,
            granularity: SnapshotGranularity,
            generation: int,
            previous: PerformanceSnapshot | None,
    ) -> PerformanceSnapshot:
        with self._locks.hold(db, portfolio_id) as portfolio:
            valuation = self._valuation.value_portfolio(db, portfolio_id, as_of=boundary)
            units = self.units_as_of(db, portfolio_id, boundary) if portfolio.is_fund else quantize_units(ZERO)
            nav = calculate_nav_per_unit(valuation.total_value, units) if portfolio.is_fund else None
            total_value = valuation.total_value

            net_flow = self._net_external_flow(
                db, portfolio_id, previous.snapshot_date if previous else None, boundary
            )
            if previous is None:
                value_change = quantize_money(ZERO)
                period_return = cumulative_return = nav_return = None
            else:
                value_change = quantize_money(total_value - previous.total_value)
                period_return = return_percentage(value_change - net_flow, previous.total_value)
                cumulative_return = (
                    chain_returns(previous.cumulative_return, period_return)
                    if period_return is not None else previous.cumulative_return
                )
                nav_return = (
                    return_percentage(nav - previous.nav_per_unit, previous.nav_per_unit)
                    if nav is not None and previous.nav_per_unit else None
                )

            snapshot = PortfolioSnapshot(
                portfolio_id=portfolio_id,
                snapshot_date=boundary,
                granularity=granularity,
                generation=generation,
                total_value=total_value,
                asset_value=valuation.asset_value,
                cash_balance=valuation.cash_balance,
                nav_per_unit=nav,
                total_outstanding_units=units,
                asset_allocation={k: v.to_json() for k, v in valuation.allocation().items()},
                asset_count=valuation.asset_count,
            )
            performance = PerformanceSnapshot(
                portfolio_id=portfolio_id,
                snapshot_date=boundary,
                granularity=granularity,
                generation=generation,
                total_value=total_value,
                net_cash_flow=net_flow,
                value_change=value_change,
                period_return=period_return,
                cumulative_return=cumulative_return,
                nav_per_unit=nav,
                nav_return=nav_return,
            )
            db.add_all([snapshot, performance])
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ConflictError(
                    f"A {granularity.value} snapshot for portfolio {portfolio_id} on {boundary} "
                    f"was created concurrently"
                ) from None

        logger.debug("Snapshot of portfolio %s on %s: value=%s nav=%s", portfolio_id, boundary, total_value, nav)
        return performance

    def regenerate_snapshots(
            self,
            db: Session,
            portfolio_id: int,
            start_date: Any,
            end_date: Any,
            granularity: Any = SnapshotGranularity.DAILY,
            cancel_token: CancellationToken | None = None,
    ) -> SnapshotBatchResult:
        """
        Replace the snapshots of a range with freshly computed ones.

        The new snapshots carry the highest generation found in the range
        plus one.
        """
        key = parse_granularity(granularity)
        boundaries = self._boundaries(start_date, end_date, key)
        self._require_portfolio(db, portfolio_id)
        start = parse_flow_date(start_date, field="start_date")
        end = parse_flow_date(end_date, field="end_date")

        last_generation = db.scalar(
            select(func.max(PortfolioSnapshot.generation)).where(
                PortfolioSnapshot.portfolio_id == portfolio_id,
                PortfolioSnapshot.granularity == key,
                PortfolioSnapshot.snapshot_date.between(start, end),
            )
        ) or 0

        removed = self.delete_snapshots_by_date_range(db, portfolio_id, start, end, key)
        logger.info(
            "Regenerating %d %s snapshot(s) of portfolio %s (%d removed, generation %d)",
            len(boundaries), key.value, portfolio_id, removed, last_generation + 1,
        )
        return self.create_portfolio_snapshots(
            db, portfolio_id, start, end, key,
            cancel_token=cancel_token,
            generation=last_generation + 1,
        )

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete_snapshots_by_date_range(
            self,
            db: Session,
            portfolio_id: int,
            start_date: Any,
            end_date: Any,
            granularity: Any = None,
    ) -> int:
        """
        Delete portfolio and performance snapshots dated in [start_date, end_date].

        Returns:
            Number of portfolio snapshots deleted
        """
        start = parse_flow_date(start_date, field="start_date")
        end = parse_flow_date(end_date, field="end_date")
        if end < start:
            raise ValidationError(f"end_date {end} is before start_date {start}", field="end_date")
        self._require_portfolio(db, portfolio_id)
        key = parse_granularity(granularity) if granularity is not None else None

        count = 0
        try:
            for model in (PortfolioSnapshot, PerformanceSnapshot):
                statement = delete(model).where(
                    model.portfolio_id == portfolio_id,
                    model.snapshot_date.between(start, end),
                )
                if key is not None:
                    statement = statement.where(model.granularity == key)
                result = db.execute(statement)
                if model is PortfolioSnapshot:
                    count = result.rowcount
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info("Deleted %d snapshot(s) of portfolio %s between %s and %s", count, portfolio_id, start, end)
        return count

    def delete_snapshots_by_date(
            self,
            db: Session,
            portfolio_id: int,
            snapshot_date: Any,
            granularity: Any = None,
    ) -> int:
        """
        Delete the snapshots of one date.

        Raises:
            SnapshotNotFoundError: Nothing stored for that date
        """
        day = parse_flow_date(snapshot_date, field="snapshot_date")
        count = self.delete_snapshots_by_date_range(db, portfolio_id, day, day, granularity)
        if count == 0:
            raise SnapshotNotFoundError(portfolio_id, day)
        return count

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_snapshots(
            self,
            db: Session,
            portfolio_id: int,
            granularity: Any = None,
            start_date: date | None = None,
            end_date: date | None = None,
            page: int = 1,
            limit: int = 20,
    ) -> SnapshotPage:
        """Snapshots newest first, one page at a time."""
        self._require_portfolio(db, portfolio_id)
        if page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}", field="limit")

        conditions = [PortfolioSnapshot.portfolio_id == portfolio_id]
        if granularity is not None:
            conditions.append(PortfolioSnapshot.granularity == parse_granularity(granularity))
        if start_date is not None:
            conditions.append(PortfolioSnapshot.snapshot_date >= start_date)
        if end_date is not None:
            conditions.append(PortfolioSnapshot.snapshot_date <= end_date)

        total = db.scalar(select(func.count(PortfolioSnapshot.id)).where(*conditions)) or 0
        items = db.scalars(
            select(PortfolioSnapshot)
            .where(*conditions)
            .order_by(PortfolioSnapshot.snapshot_date.desc(), PortfolioSnapshot.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return SnapshotPage(items=list(items), total=total, page=page, limit=limit)

    def get_latest(self, db: Session, portfolio_id: int, granularity: Any = None) -> PortfolioSnapshot:
        self._require_portfolio(db, portfolio_id)
        query = select(PortfolioSnapshot).where(PortfolioSnapshot.portfolio_id == portfolio_id)
        if granularity is not None:
            query = query.where(PortfolioSnapshot.granularity == parse_granularity(granularity))
        snapshot = db.scalars(
            query.order_by(PortfolioSnapshot.snapshot_date.desc(), PortfolioSnapshot.id.desc()).limit(1)
        ).first()
        if snapshot is None:
            raise SnapshotNotFoundError(portfolio_id)
        return snapshot

    def get_timeline(
            self,
            db: Session,
            portfolio_id: int,
            granularity: Any = SnapshotGranularity.DAILY,
            start_date: date | None = None,
            end_date: date | None = None,
    ) -> list[TimelinePoint]:
        """Value and NAV series in date order, for charts."""
        self._require_portfolio(db, portfolio_id)
        query = select(PortfolioSnapshot).where(
            PortfolioSnapshot.portfolio_id == portfolio_id,
            PortfolioSnapshot.granularity == parse_granularity(granularity),
        )
        if start_date is not None:
            query = query.where(PortfolioSnapshot.snapshot_date >= start_date)
        if end_date is not None:
            query = query.where(PortfolioSnapshot.snapshot_date <= end_date)
        return [
            TimelinePoint(
                snapshot_date=s.snapshot_date,
                total_value=s.total_value,
                cash_balance=s.cash_balance,
                nav_per_unit=s.nav_per_unit,
            )
            for s in db.scalars(query.order_by(PortfolioSnapshot.snapshot_date)).all()
        ]

    def get_statistics(self, db: Session, portfolio_id: int, granularity: Any = None) -> SnapshotStatistics:
        self._require_portfolio(db, portfolio_id)
        key = parse_granularity(granularity) if granularity is not None else None
        conditions = [PortfolioSnapshot.portfolio_id == portfolio_id]
        if key is not None:
            conditions.append(PortfolioSnapshot.granularity == key)

        row = db.execute(
            select(
                func.count(PortfolioSnapshot.id),
                func.min(PortfolioSnapshot.snapshot_date),
                func.max(PortfolioSnapshot.snapshot_date),
                func.min(PortfolioSnapshot.total_value),
                func.max(PortfolioSnapshot.total_value),
                func.avg(PortfolioSnapshot.total_value),
            ).where(*conditions)
        ).one()
        count, first_date, last_date, min_value, max_value, avg_value = row

        latest = None
        if count:
            latest = db.scalars(
                select(PortfolioSnapshot)
                .where(*conditions)
                .order_by(PortfolioSnapshot.snapshot_date.desc(), PortfolioSnapshot.id.desc())
                .limit(1)
            ).first()

        def money(value: Any) -> Decimal | None:
            return quantize_money(Decimal(str(value))) if value is not None else None

        return SnapshotStatistics(
            portfolio_id=portfolio_id,
            granularity=key,
            count=count,
            first_date=first_date,
            last_date=last_date,
            min_total_value=money(min_value),
            max_total_value=money(max_value),
            avg_total_value=money(avg_value),
            latest_total_value=latest.total_value if latest else None,
            latest_nav_per_unit=latest.nav_per_unit if latest else None,
        )

    def list_performance_snapshots(
            self,
            db: Session,
            portfolio_id: int,
            granularity: Any = None,
            start_date: date | None = None,
            end_date: date | None = None,
    ) -> list[PerformanceSnapshot]:
        """Performance snapshots in date order."""
        self._require_portfolio(db, portfolio_id)
        query = select(PerformanceSnapshot).where(PerformanceSnapshot.portfolio_id == portfolio_id)
        if granularity is not None:
            query = query.where(PerformanceSnapshot.granularity == parse_granularity(granularity))
        if start_date is not None:
            query = query.where(PerformanceSnapshot.snapshot_date >= start_date)
        if end_date is not None:
            query = query.where(PerformanceSnapshot.snapshot_date <= end_date)
        return list(db.scalars(
            query.order_by(PerformanceSnapshot.snapshot_date, PerformanceSnapshot.granularity)
        ).all())
