# backend/tests/conftest.py
"""
Shared pytest fixtures for service and API tests.

Provides:
- In-memory SQLite engine and session (fresh schema per test)
- Factory functions for accounts, portfolios, assets, prices and trades
- Price providers that never touch the database (static, slow, flaky)
- Services wired to a private lock registry so tests never share locks
- A TestClient with the database and price service overridden
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_NAME", "Test Fund Ledger")

import time
from collections.abc import Iterator
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fundledger.database import get_db
from fundledger.dependencies import clear_service_caches, get_price_service
from fundledger.main import app
from fundledger.models import (
    Account,
    Asset,
    AssetPrice,
    AssetType,
    Base,
    Portfolio,
)
from fundledger.services.cash_flow import CashFlowService, TransferService
from fundledger.services.deposits import DepositService
from fundledger.services.exceptions import PriceProviderUnavailableError
from fundledger.services.fund.holdings import HoldingsRecalculator
from fundledger.services.fund.service import FundService
from fundledger.services.fund.valuation import FundValuationService
from fundledger.services.locking import PortfolioLockRegistry
from fundledger.services.pricing import PriceProvider, PriceService
from fundledger.services.snapshots import SnapshotService
from fundledger.services.trades import TradeService


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Session:
    """
    Create a database session for testing.

    Configured like the application session (no autoflush) so tests see
    the same flush behaviour as requests.
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# PRICE PROVIDERS
# =============================================================================

class StaticPriceProvider(PriceProvider):
    """
    Dict-backed price source.

    Prices are keyed by asset id; the same price applies to every date
    unless a dated price was set with set_price(..., on=...).
    """

    def __init__(self, prices: dict[int, Decimal] | None = None):
        self._prices: dict[int, Decimal] = dict(prices or {})
        self._dated: dict[tuple[int, date], Decimal] = {}
        self.calls = 0

    @property
    def name(self) -> str:
        return "static"

    def set_price(self, asset_id: int, price: Decimal, on: date | None = None) -> None:
        if on is None:
            self._prices[asset_id] = Decimal(price)
        else:
            self._dated[(asset_id, on)] = Decimal(price)

    def get_prices(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:
        self.calls += 1
        result = {}
        for asset_id in asset_ids:
            dated = [
                (day, price) for (aid, day), price in self._dated.items()
                if aid == asset_id and day <= as_of
            ]
            if dated:
                result[asset_id] = max(dated)[1]
            elif asset_id in self._prices:
                result[asset_id] = self._prices[asset_id]
        return result


class SlowPriceProvider(StaticPriceProvider):
    """Answers only after `delay` seconds."""

    def __init__(self, delay: float, prices: dict[int, Decimal] | None = None):
        super().__init__(prices)
        self.delay = delay

    @property
    def name(self) -> str:
        return "slow"

    def get_prices(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:
        time.sleep(self.delay)
        return super().get_prices(asset_ids, as_of)


class FlakyPriceProvider(StaticPriceProvider):
    """Fails `failures` times with a transient error, then answers."""

    def __init__(self, failures: int, prices: dict[int, Decimal] | None = None):
        super().__init__(prices)
        self.failures = failures

    @property
    def name(self) -> str:
        return "flaky"

    def get_prices(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:
        if self.failures > 0:
            self.failures -= 1
            self.calls += 1
            raise PriceProviderUnavailableError(self.name, "connection reset")
        return super().get_prices(asset_ids, as_of)


@pytest.fixture
def price_provider() -> StaticPriceProvider:
    return StaticPriceProvider()


@pytest.fixture
def price_service(price_provider: StaticPriceProvider) -> Iterator[PriceService]:
    service = PriceService(price_provider, timeout_seconds=2.0, max_attempts=2)
    yield service
    service.close()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def locks() -> PortfolioLockRegistry:
    """A lock registry private to the test."""
    return PortfolioLockRegistry(timeout_seconds=1.0)


@pytest.fixture
def holdings_recalculator(locks: PortfolioLockRegistry) -> HoldingsRecalculator:
    return HoldingsRecalculator(locks)


@pytest.fixture
def cash_flow_service(holdings_recalculator, locks) -> CashFlowService:
    return CashFlowService(holdings_recalculator, locks)


@pytest.fixture
def transfer_service(cash_flow_service, locks) -> TransferService:
    return TransferService(cash_flow_service, locks)


@pytest.fixture
def trade_service(cash_flow_service, locks) -> TradeService:
    return TradeService(cash_flow_service, locks)


@pytest.fixture
def deposit_service(cash_flow_service, locks) -> DepositService:
    return DepositService(cash_flow_service, locks)


@pytest.fixture
def valuation_service(price_service, cash_flow_service) -> FundValuationService:
    return FundValuationService(price_service, cash_flow_service)


@pytest.fixture
def fund_service(valuation_service, cash_flow_service, holdings_recalculator, locks) -> FundService:
    return FundService(
        valuation_service,
        cash_flow_service=cash_flow_service,
        holdings_recalculator=holdings_recalculator,
        locks=locks,
    )


@pytest.fixture
def snapshot_service(valuation_service, cash_flow_service, locks) -> SnapshotService:
    return SnapshotService(valuation_service, cash_flow_service=cash_flow_service, locks=locks)


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_account(
        db: Session,
        name: str = "Owner",
        is_investor: bool = False,
        email: str | None = None,
) -> Account:
    """Create and persist an account."""
    account = Account(name=name, email=email, is_investor=is_investor, base_currency="VND")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def create_portfolio(
        db: Session,
        owner: Account,
        name: str = "Test Portfolio",
        base_currency: str = "VND",
        funding_source: str | None = None,
) -> Portfolio:
    """Create and persist a portfolio in portfolio mode."""
    portfolio = Portfolio(
        account_id=owner.id,
        name=name,
        base_currency=base_currency,
        funding_source=funding_source,
    )
    db.add(portfolio)
    db.commit()
    db.refresh(portfolio)
    return portfolio


def create_asset(
        db: Session,
        symbol: str = "VNM",
        asset_type: AssetType = AssetType.STOCK,
) -> Asset:
    """Create and persist an asset."""
    asset = Asset(symbol=symbol, name=f"{symbol} Corp", asset_type=asset_type, currency="VND")
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


def create_price(db: Session, asset: Asset, price_date: date, price: Decimal) -> AssetPrice:
    record = AssetPrice(asset_id=asset.id, price_date=price_date, price=price)
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def owner(db: Session) -> Account:
    return create_account(db, name="Fund Manager", is_investor=True)


@pytest.fixture
def investor(db: Session) -> Account:
    return create_account(db, name="Investor A", is_investor=True)


@pytest.fixture
def second_investor(db: Session) -> Account:
    return create_account(db, name="Investor B", is_investor=True)


@pytest.fixture
def portfolio(db: Session, owner: Account) -> Portfolio:
    return create_portfolio(db, owner)


@pytest.fixture
def empty_fund(db: Session, portfolio: Portfolio, fund_service: FundService) -> Portfolio:
    """A fund with no value and no units (par NAV 10,000)."""
    fund_service.convert_to_fund(db, portfolio.id, snapshot_date=date.today())
    db.refresh(portfolio)
    return portfolio


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture(scope="function")
def client(db: Session, price_service: PriceService) -> TestClient:
    """
    TestClient bound to the test session and the static price source.

    Service singletons are dropped before and after so no state leaks
    between tests.
    """

    def override_get_db():
        try:
            yield db
        finally:
            pass

    clear_service_caches()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_price_service] = lambda: price_service

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
    clear_service_caches()
