# backend/fundledger/services/snapshots/types.py
"""Result types and the cancellation flag of the snapshot store."""

import threading
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fundledger.models import PortfolioSnapshot, SnapshotGranularity


class CancellationToken:
    """
    Cooperative cancellation flag for long snapshot batches.

    The batch checks the flag between period boundaries; snapshots already
    written stay committed.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class SnapshotBatchResult:
    portfolio_id: int
    granularity: SnapshotGranularity
    start_date: date
    end_date: date
    requested: int
    created: int
    generation: int
    cancelled: bool = False


@dataclass
class SnapshotPage:
    items: list[PortfolioSnapshot]
    total: int
    page: int
    limit: int


@dataclass(frozen=True)
class TimelinePoint:
    snapshot_date: date
    total_value: Decimal
    cash_balance: Decimal
    nav_per_unit: Decimal | None


@dataclass(frozen=True)
class SnapshotStatistics:
    """
    Aggregate view over a portfolio's stored snapshots.

    Value fields are None when no snapshot exists.
    """
    portfolio_id: int
    granularity: SnapshotGranularity | None
    count: int
    first_date: date | None
    last_date: date | None
    min_total_value: Decimal | None
    max_total_value: Decimal | None
    avg_total_value: Decimal | None
    latest_total_value: Decimal | None
    latest_nav_per_unit: Decimal | None
