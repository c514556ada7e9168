# backend/fundledger/routers/portfolios.py
"""
Portfolio endpoints, including the switch between portfolio and fund mode.

Key concepts:
- A portfolio belongs to ONE account
- In fund mode ownership is split into units priced at NAV per unit
- convert-to-fund values the portfolio and issues the owner's initial units
- convert-to-portfolio is only allowed back to a single 100% holder
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import get_fund_service, get_portfolio_with_access_check
from fundledger.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from fundledger.models import Account, Portfolio
from fundledger.schemas.pagination import PaginationMeta
from fundledger.schemas.portfolios import (
    ConversionResponse,
    NavRefreshResponse,
    PortfolioCreate,
    PortfolioListResponse,
    PortfolioResponse,
)
from fundledger.services.constants import DEFAULT_PAGE_SIZE, MAX_LIST_LIMIT
from fundledger.services.exceptions import AccountNotFoundError
from fundledger.services.fund.service import FundService
from fundledger.services.fund.types import ConversionResult, NavRefreshResult

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/portfolios",
    tags=["Portfolios"],
)


# =============================================================================
# CRUD
# =============================================================================

@router.post(
    "",
    response_model=PortfolioResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a portfolio",
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_portfolio(
        request: Request,
        data: PortfolioCreate,
        db: Annotated[Session, Depends(get_db)],
) -> Portfolio:
    """
    Create a portfolio in portfolio mode.

    **Errors:**
    - 404: Owning account not found
    """
    if db.get(Account, data.account_id) is None:
        raise AccountNotFoundError(data.account_id)

    portfolio = Portfolio(**data.model_dump())
    db.add(portfolio)
    db.commit()
    db.refresh(portfolio)
    logger.info("Created portfolio %s for account %s", portfolio.id, portfolio.account_id)
    return portfolio


@router.get(
    "",
    response_model=PortfolioListResponse,
    summary="List portfolios",
)
def list_portfolios(
        db: Annotated[Session, Depends(get_db)],
        account_id: int | None = Query(default=None, gt=0, description="Only portfolios of this account"),
        is_fund: bool | None = Query(default=None, description="Filter by mode"),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_LIST_LIMIT),
) -> PortfolioListResponse:
    conditions = []
    if account_id is not None:
        conditions.append(Portfolio.account_id == account_id)
    if is_fund is not None:
        conditions.append(Portfolio.is_fund.is_(is_fund))

    total = db.scalar(select(func.count(Portfolio.id)).where(*conditions)) or 0
    items = db.scalars(
        select(Portfolio)
        .where(*conditions)
        .order_by(Portfolio.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return PortfolioListResponse(
        items=[PortfolioResponse.model_validate(p) for p in items],
        pagination=PaginationMeta.create(total=total, page=page, limit=limit),
    )


@router.get(
    "/{portfolio_id}",
    response_model=PortfolioResponse,
    summary="Get a portfolio",
)
def get_portfolio(
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
) -> Portfolio:
    return portfolio


# =============================================================================
# FUND MODE
# =============================================================================

def _conversion_response(result: ConversionResult) -> ConversionResponse:
    return ConversionResponse.model_validate(result)


@router.post(
    "/{portfolio_id}/convert-to-fund",
    response_model=ConversionResponse,
    summary="Convert a portfolio to a fund",
)
@limiter.limit(RATE_LIMIT_WRITE)
def convert_to_fund(
        request: Request,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        fund_service: Annotated[FundService, Depends(get_fund_service)],
        snapshot_date: date | None = Query(default=None, description="Valuation date; defaults to today"),
        initial_units: Decimal | None = Query(default=None, gt=0, description="Override the initial unit count"),
) -> ConversionResponse:
    """
    Unitize the portfolio at its value on **snapshot_date**.

    The owner receives the initial units (one per 10,000 of value, at
    least 1,000). An empty portfolio starts with no units at the par NAV.

    **Errors:**
    - 409: Already a fund
    - 503/504: Positions could not be priced
    """
    result = fund_service.convert_to_fund(
        db, portfolio.id, snapshot_date=snapshot_date, initial_units=initial_units
    )
    return _conversion_response(result)


@router.post(
    "/{portfolio_id}/convert-to-portfolio",
    response_model=ConversionResponse,
    summary="Convert a fund back to a portfolio",
)
@limiter.limit(RATE_LIMIT_WRITE)
def convert_to_portfolio(
        request: Request,
        portfolio_id: int,
        db: Annotated[Session, Depends(get_db)],
        fund_service: Annotated[FundService, Depends(get_fund_service)],
        account_id: int = Query(..., gt=0, description="Account that holds all outstanding units"),
) -> ConversionResponse:
    """
    Return the fund to direct ownership by **account_id**.

    **Errors:**
    - 409: Not a fund, or units are held by other investors
    """
    return _conversion_response(fund_service.convert_to_portfolio(db, portfolio_id, account_id))


@router.post(
    "/{portfolio_id}/refresh-nav-per-unit",
    response_model=NavRefreshResponse,
    summary="Recompute NAV per unit",
)
@limiter.limit(RATE_LIMIT_WRITE)
def refresh_nav_per_unit(
        request: Request,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        fund_service: Annotated[FundService, Depends(get_fund_service)],
) -> NavRefreshResult:
    """
    Price the fund with current prices and store the new NAV per unit.

    **Errors:**
    - 409: Not a fund, or no units outstanding (NAV undefined)
    - 504: Price lookup timed out; the stored NAV is unchanged
    """
    return fund_service.refresh_nav_per_unit(db, portfolio.id)
