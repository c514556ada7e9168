# backend/fundledger/routers/trades.py
"""
Trade endpoints.

Recording a trade also records its BUY_TRADE/SELL_TRADE ledger entry.
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import get_portfolio_with_access_check, get_trade_service
from fundledger.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from fundledger.models import Portfolio, Trade
from fundledger.schemas.trades import TradeCreate, TradeResponse
from fundledger.services.trades import TradeService

router = APIRouter(
    prefix="/portfolios/{portfolio_id}/trades",
    tags=["Trades"],
)


@router.post(
    "",
    response_model=TradeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a trade",
)
@limiter.limit(RATE_LIMIT_WRITE)
def record_trade(
        request: Request,
        data: TradeCreate,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        trade_service: Annotated[TradeService, Depends(get_trade_service)],
) -> Trade:
    """
    Record a buy or sell.

    **Errors:**
    - 404: Asset not found
    - 400: Selling more than held as of the trade date
    """
    return trade_service.record_trade(db, portfolio.id, **data.model_dump())


@router.get(
    "",
    response_model=list[TradeResponse],
    summary="List trades",
)
def list_trades(
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        trade_service: Annotated[TradeService, Depends(get_trade_service)],
        asset_id: int | None = Query(default=None, gt=0),
        start_date: date | None = Query(default=None),
        end_date: date | None = Query(default=None),
) -> list[Trade]:
    return trade_service.list_trades(db, portfolio.id, asset_id=asset_id, start_date=start_date, end_date=end_date)


@router.delete(
    "/{trade_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a trade and its cash flow",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_trade(
        request: Request,
        trade_id: int,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        trade_service: Annotated[TradeService, Depends(get_trade_service)],
) -> None:
    trade_service.delete_trade(db, portfolio.id, trade_id)
