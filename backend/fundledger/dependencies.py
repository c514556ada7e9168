# backend/fundledger/dependencies.py
"""
Dependency injection for FastAPI routes.

Services are process-wide singletons created lazily on first use. They share
one PortfolioLockRegistry, so every money-moving path serializes on the same
per-portfolio lock.

Tests replace the price source with:
    app.dependency_overrides[get_price_service] = lambda: PriceService(FakeProvider())

Usage in routers:
    @router.post("/{portfolio_id}/investors/subscribe")
    def subscribe(
        fund_service: Annotated[FundService, Depends(get_fund_service)],
        ...
    ):
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from fundledger.database import SessionLocal, get_db
from fundledger.models import Portfolio
from fundledger.services.assets import AssetService
from fundledger.services.cash_flow import CashFlowService, TransferService
from fundledger.services.deposits import DepositService
from fundledger.services.exceptions import PermissionDeniedError, PortfolioNotFoundError
from fundledger.services.fund.holdings import HoldingsRecalculator
from fundledger.services.fund.service import FundService
from fundledger.services.fund.valuation import FundValuationService
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks
from fundledger.services.pricing import DatabasePriceProvider, PriceService
from fundledger.services.snapshots import SnapshotService
from fundledger.services.trades import TradeService

logger = logging.getLogger(__name__)


# =============================================================================
# SERVICE SINGLETONS
# =============================================================================

def get_portfolio_locks() -> PortfolioLockRegistry:
    return portfolio_locks


@lru_cache(maxsize=1)
def get_price_service() -> PriceService:
    """Price lookups against stored AssetPrice rows, with timeout and retry."""
    logger.debug("Creating PriceService singleton")
    return PriceService(DatabasePriceProvider(SessionLocal))


@lru_cache(maxsize=1)
def get_holdings_recalculator() -> HoldingsRecalculator:
    return HoldingsRecalculator(get_portfolio_locks())


@lru_cache(maxsize=1)
def get_cash_flow_service() -> CashFlowService:
    logger.debug("Creating CashFlowService singleton")
    return CashFlowService(get_holdings_recalculator(), get_portfolio_locks())


@lru_cache(maxsize=1)
def get_transfer_service() -> TransferService:
    return TransferService(get_cash_flow_service(), get_portfolio_locks())


@lru_cache(maxsize=1)
def get_trade_service() -> TradeService:
    return TradeService(get_cash_flow_service(), get_portfolio_locks())


@lru_cache(maxsize=1)
def get_deposit_service() -> DepositService:
    return DepositService(get_cash_flow_service(), get_portfolio_locks())


@lru_cache(maxsize=1)
def get_asset_service() -> AssetService:
    return AssetService()


def get_valuation_service(
        price_service: Annotated[PriceService, Depends(get_price_service)],
) -> FundValuationService:
    """Built per request so a price service override reaches valuations."""
    return FundValuationService(price_service, get_cash_flow_service())


def get_fund_service(
        valuation_service: Annotated[FundValuationService, Depends(get_valuation_service)],
) -> FundService:
    return FundService(
        valuation_service,
        cash_flow_service=get_cash_flow_service(),
        holdings_recalculator=get_holdings_recalculator(),
        locks=get_portfolio_locks(),
    )


def get_snapshot_service(
        valuation_service: Annotated[FundValuationService, Depends(get_valuation_service)],
) -> SnapshotService:
    return SnapshotService(
        valuation_service,
        cash_flow_service=get_cash_flow_service(),
        locks=get_portfolio_locks(),
    )


# =============================================================================
# ACCESS CHECKS
# =============================================================================

def get_portfolio_with_access_check(
        portfolio_id: int,
        db: Annotated[Session, Depends(get_db)],
        account_id: int | None = Query(
            default=None,
            gt=0,
            description="Acting account; must own the portfolio when given",
        ),
) -> Portfolio:
    """
    Fetch a portfolio and verify the acting account owns it.

    Raises:
        PortfolioNotFoundError: Unknown portfolio (404)
        PermissionDeniedError: account_id given and not the owner (403)
    """
    portfolio = db.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise PortfolioNotFoundError(portfolio_id)
    if account_id is not None and portfolio.account_id != account_id:
        raise PermissionDeniedError(account_id=account_id, portfolio_id=portfolio_id)
    return portfolio


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def close_price_service() -> None:
    """Shut down the cached PriceService thread pool, if one was created."""
    if get_price_service.cache_info().currsize:
        get_price_service().close()
    get_price_service.cache_clear()


def clear_service_caches() -> None:
    """Drop all service singletons; the next request builds fresh ones."""
    close_price_service()
    get_holdings_recalculator.cache_clear()
    get_cash_flow_service.cache_clear()
    get_transfer_service.cache_clear()
    get_trade_service.cache_clear()
    get_deposit_service.cache_clear()
    get_asset_service.cache_clear()
    logger.info("Cleared all service singleton caches")
