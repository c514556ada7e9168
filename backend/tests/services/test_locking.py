# backend/tests/services/test_locking.py
"""
Tests for the per-portfolio lock registry.
"""

import threading
from decimal import Decimal

import pytest

from fundledger.services.exceptions import PortfolioBusyError, PortfolioNotFoundError
from fundledger.services.locking import PortfolioLockRegistry

from conftest import create_portfolio


@pytest.fixture
def held_elsewhere(locks, portfolio):
    """Hold the portfolio's lock from another thread for the duration of the test."""
    acquired = threading.Event()
    release = threading.Event()

    def worker():
        lock = locks._lock_for(portfolio.id)
        with lock:
            acquired.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=worker)
    thread.start()
    acquired.wait(timeout=5)
    yield
    release.set()
    thread.join()


class TestPortfolioLockRegistry:

    def test_yields_portfolio(self, db, portfolio, locks):
        with locks.hold(db, portfolio.id) as locked:
            assert locked.id == portfolio.id

    def test_reentrant_on_same_thread(self, db, portfolio, locks):
        with locks.hold(db, portfolio.id):
            with locks.hold(db, portfolio.id) as inner:
                assert inner.id == portfolio.id

    def test_unknown_portfolio_releases_lock(self, db):
        locks = PortfolioLockRegistry(timeout_seconds=0.1)

        with pytest.raises(PortfolioNotFoundError):
            with locks.hold(db, 404):
                pass

        assert locks._lock_for(404).acquire(blocking=False)

    def test_busy_when_held_by_other_thread(self, db, portfolio, locks, held_elsewhere):
        with pytest.raises(PortfolioBusyError) as exc_info:
            with locks.hold(db, portfolio.id):
                pass

        assert exc_info.value.portfolio_id == portfolio.id

    def test_other_portfolios_not_blocked(self, db, owner, locks, held_elsewhere):
        other = create_portfolio(db, owner, name="Other")
        with locks.hold(db, other.id) as locked:
            assert locked.id == other.id

    def test_busy_portfolio_rejects_transfer(
            self, db, portfolio, transfer_service, cash_flow_service, held_elsewhere
    ):
        with pytest.raises(PortfolioBusyError):
            transfer_service.transfer(
                db, portfolio.id, "SAVINGS", "BROKERAGE", Decimal("100"), allow_overdraft=True
            )

        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("0.00")
