# backend/fundledger/routers/investors.py
"""
Fund investor endpoints: subscriptions, redemptions, holdings and
unit-transaction corrections.

Every money-moving call prices the fund live under the portfolio lock. A
price lookup that times out fails the request (504) and changes nothing.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import (
    get_fund_service,
    get_holdings_recalculator,
    get_portfolio_with_access_check,
)
from fundledger.middleware.rate_limit import RATE_LIMIT_BATCH, RATE_LIMIT_WRITE, limiter
from fundledger.models import Portfolio
from fundledger.schemas.funds import (
    FundUnitTransactionResponse,
    HoldingDetailResponse,
    InvestorHoldingResponse,
    RecalculationResponse,
    RedemptionRequest,
    RedemptionResponse,
    SubscriptionRequest,
    SubscriptionResponse,
    TransactionCorrectionRequest,
    TransactionCorrectionResponse,
)
from fundledger.services.fund.holdings import HoldingsRecalculator, RecalculationResult
from fundledger.services.fund.service import FundService
from fundledger.services.fund.types import RedemptionResult, SubscriptionResult

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/portfolios/{portfolio_id}/investors",
    tags=["Fund Investors"],
)

holdings_router = APIRouter(
    prefix="/investor-holdings",
    tags=["Fund Investors"],
)

transactions_router = APIRouter(
    prefix="/fund-unit-transactions",
    tags=["Fund Investors"],
)

Funds = Annotated[FundService, Depends(get_fund_service)]


def _subscription_response(result: SubscriptionResult) -> SubscriptionResponse:
    return SubscriptionResponse(
        portfolio_id=result.portfolio_id,
        account_id=result.account_id,
        units=result.units,
        nav_per_unit=result.nav_per_unit,
        amount=result.amount,
        total_outstanding_units=result.total_outstanding_units,
        transaction_id=result.transaction.id,
        holding_id=result.holding.id,
        cash_flow_id=result.cash_flow.id,
    )


def _redemption_response(result: RedemptionResult) -> RedemptionResponse:
    return RedemptionResponse(
        portfolio_id=result.portfolio_id,
        account_id=result.account_id,
        units=result.units,
        nav_per_unit=result.nav_per_unit,
        amount=result.amount,
        total_outstanding_units=result.total_outstanding_units,
        transaction_id=result.transaction.id,
        holding_id=result.holding.id,
        cash_flow_id=result.cash_flow.id,
        realized_pnl=result.realized_pnl,
        remaining_units=result.remaining_units,
    )


# =============================================================================
# INVESTORS OF A FUND
# =============================================================================

@router.get(
    "",
    response_model=list[InvestorHoldingResponse],
    summary="List fund investors",
)
def list_investors(
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        fund_service: Funds,
) -> list[InvestorHoldingResponse]:
    """Holdings ordered by units held, valued at the stored NAV."""
    return [InvestorHoldingResponse.from_summary(s) for s in fund_service.list_investors(db, portfolio.id)]


@router.post(
    "/subscribe",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Subscribe to fund units",
)
@limiter.limit(RATE_LIMIT_WRITE)
def subscribe(
        request: Request,
        portfolio_id: int,
        data: SubscriptionRequest,
        db: Annotated[Session, Depends(get_db)],
        fund_service: Funds,
) -> SubscriptionResponse:
    """
    Issue units to **account_id** at the current NAV per unit.

    Give either **amount** (cash in) or **units** (units wanted).

    **Errors:**
    - 400: Account is not an investor, or invalid amount/units
    - 409: Portfolio is not a fund
    - 504: Price lookup timed out
    """
    result = fund_service.subscribe(db, portfolio_id, **data.model_dump())
    return _subscription_response(result)


@router.post(
    "/redeem",
    response_model=RedemptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Redeem fund units",
)
@limiter.limit(RATE_LIMIT_WRITE)
def redeem(
        request: Request,
        portfolio_id: int,
        data: RedemptionRequest,
        db: Annotated[Session, Depends(get_db)],
        fund_service: Funds,
) -> RedemptionResponse:
    """
    Buy back units from **account_id** at the current NAV per unit.

    **Errors:**
    - 422: More units than the investor holds
    - 409: Not a fund, or no units outstanding
    - 504: Price lookup timed out
    """
    result = fund_service.redeem(db, portfolio_id, **data.model_dump())
    return _redemption_response(result)


@router.get(
    "/{investor_account_id}",
    response_model=InvestorHoldingResponse,
    summary="Get one investor's holding",
)
def get_investor(
        investor_account_id: int,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        fund_service: Funds,
) -> InvestorHoldingResponse:
    return InvestorHoldingResponse.from_summary(
        fund_service.get_investor_holding(db, portfolio.id, investor_account_id)
    )


# =============================================================================
# HOLDINGS
# =============================================================================

@holdings_router.get(
    "/{holding_id}/detail",
    response_model=HoldingDetailResponse,
    summary="Holding with transaction history",
)
def get_holding_detail(
        holding_id: int,
        db: Annotated[Session, Depends(get_db)],
        fund_service: Funds,
) -> HoldingDetailResponse:
    return HoldingDetailResponse.from_detail(fund_service.get_holding_detail(db, holding_id))


@holdings_router.post(
    "/recalculate-all/{portfolio_id}",
    response_model=RecalculationResponse,
    summary="Rebuild all holdings of a fund",
)
@limiter.limit(RATE_LIMIT_BATCH)
def recalculate_all_holdings(
        request: Request,
        portfolio_id: int,
        db: Annotated[Session, Depends(get_db)],
        recalculator: Annotated[HoldingsRecalculator, Depends(get_holdings_recalculator)],
) -> RecalculationResult:
    """
    Replay every non-voided unit transaction and rewrite holdings and the
    fund's outstanding units. Running it twice gives the same result.
    """
    return recalculator.recalculate_all_holdings(db, portfolio_id)


# =============================================================================
# TRANSACTION CORRECTIONS
# =============================================================================

@transactions_router.put(
    "/{transaction_id}",
    response_model=TransactionCorrectionResponse,
    summary="Correct a fund unit transaction",
)
@limiter.limit(RATE_LIMIT_WRITE)
def correct_transaction(
        request: Request,
        transaction_id: int,
        data: TransactionCorrectionRequest,
        db: Annotated[Session, Depends(get_db)],
        fund_service: Funds,
) -> TransactionCorrectionResponse:
    """
    Void a transaction or fix its units/NAV; holdings are rebuilt.

    **Errors:**
    - 409: Transaction already voided
    - 422: The correction would overdraw a later redemption
    """
    transaction, result = fund_service.correct_transaction(
        db, transaction_id, units=data.units, nav_per_unit=data.nav_per_unit, void=data.void
    )
    return TransactionCorrectionResponse(
        transaction=FundUnitTransactionResponse.model_validate(transaction),
        recalculation=RecalculationResponse.model_validate(result),
    )
