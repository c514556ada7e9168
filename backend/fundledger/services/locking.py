# backend/fundledger/services/locking.py
"""
Per-portfolio mutual exclusion.

Operations that read and then write fund aggregates (NAV per unit,
outstanding units, holdings, funding-source balances) run inside
`portfolio_locks.hold(db, portfolio_id)`:

1. A process-local re-entrant lock keyed by portfolio id serializes
   requests handled by this worker. The wait is bounded; a timeout raises
   PortfolioBusyError instead of queueing forever.
2. `SELECT ... FOR UPDATE` on the portfolio row serializes against other
   workers sharing the database (PostgreSQL). SQLite ignores the clause.

The row lock lives as long as the caller's database transaction, so the
caller commits before leaving the `with` block.

Usage:
    with portfolio_locks.hold(db, portfolio_id) as portfolio:
        ...
        db.commit()
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.orm import Session

from fundledger.config import settings
from fundledger.models import Portfolio
from fundledger.services.exceptions import PortfolioBusyError, PortfolioNotFoundError

logger = logging.getLogger(__name__)


class PortfolioLockRegistry:
    """
    Registry of re-entrant locks, one per portfolio id.

    Re-entrant so a locked operation can call another locked operation on
    the same portfolio (e.g. cancelling a subscription cash flow triggers a
    holdings rebuild) from the same thread.
    """

    def __init__(self, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.portfolio_lock_timeout_seconds
        )
        self._locks: dict[int, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, portfolio_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(portfolio_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[portfolio_id] = lock
            return lock

    @contextmanager
    def hold(self, db: Session, portfolio_id: int) -> Iterator[Portfolio]:
        """
        Acquire the portfolio lock and yield the row-locked Portfolio.

        Raises:
            PortfolioBusyError: Lock not acquired within timeout_seconds
            PortfolioNotFoundError: Portfolio does not exist
        """
        lock = self._lock_for(portfolio_id)
        if not lock.acquire(timeout=self.timeout_seconds):
            logger.warning("Timed out waiting for lock on portfolio %s", portfolio_id)
            raise PortfolioBusyError(portfolio_id, self.timeout_seconds)

        try:
            portfolio = db.execute(
                select(Portfolio)
                .where(Portfolio.id == portfolio_id)
                .with_for_update()
            ).scalar_one_or_none()
            if portfolio is None:
                raise PortfolioNotFoundError(portfolio_id)
            yield portfolio
        finally:
            lock.release()


portfolio_locks = PortfolioLockRegistry()
