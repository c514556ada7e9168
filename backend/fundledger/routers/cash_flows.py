# backend/fundledger/routers/cash_flows.py
"""
Cash-flow ledger endpoints.

All routes live under /portfolios/{portfolio_id}/cash-flow and accept an
optional ?account_id; when given it must be the portfolio owner.

Route order matters: the fixed paths (history, balance, funding-sources,
transfer) are registered before POST /{flow_type}.
"""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import (
    get_cash_flow_service,
    get_portfolio_with_access_check,
    get_transfer_service,
)
from fundledger.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from fundledger.models import CashFlow, CashFlowStatus, Portfolio
from fundledger.schemas.cash_flows import (
    BalanceAdjustRequest,
    BalanceAdjustResponse,
    BalanceResponse,
    CashFlowCreate,
    CashFlowListResponse,
    CashFlowResponse,
    CashFlowUpdate,
    FundingSourceSummaryResponse,
    TransferRequest,
    TransferResponse,
)
from fundledger.schemas.pagination import PaginationMeta
from fundledger.services.cash_flow import CashFlowService, TransferService
from fundledger.services.cash_flow.types import FundingSourceSummary
from fundledger.services.constants import DEFAULT_PAGE_SIZE, MAX_LIST_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/portfolios/{portfolio_id}/cash-flow",
    tags=["Cash Flow"],
)

PortfolioAccess = Annotated[Portfolio, Depends(get_portfolio_with_access_check)]
CashFlows = Annotated[CashFlowService, Depends(get_cash_flow_service)]


# =============================================================================
# QUERIES
# =============================================================================

@router.get(
    "/history",
    response_model=CashFlowListResponse,
    summary="Ledger history",
)
def get_history(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_LIST_LIMIT),
        start_date: date | None = Query(default=None),
        end_date: date | None = Query(default=None),
        types: str | None = Query(
            default=None,
            description="Comma-separated entry types, e.g. DEPOSIT,WITHDRAWAL",
        ),
        status_filter: CashFlowStatus | None = Query(default=None, alias="status"),
        funding_source: str | None = Query(default=None),
) -> CashFlowListResponse:
    """
    Entries newest first; entries on the same date keep insertion order.

    **Errors:**
    - 400: Unknown type in **types**, or start_date after end_date
    """
    type_list = [t for t in (types or "").split(",") if t.strip()]
    result = cash_flows.list_cash_flows(
        db,
        portfolio.id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        types=type_list or None,
        status=status_filter,
        funding_source=funding_source,
    )
    return CashFlowListResponse(
        items=[CashFlowResponse.model_validate(cf) for cf in result.items],
        pagination=PaginationMeta.create(total=result.total, page=result.page, limit=result.limit),
    )


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Cash balance",
)
def get_balance(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
        as_of: date | None = Query(default=None, description="Balance at end of this date"),
        funding_source: str | None = Query(default=None),
) -> BalanceResponse:
    """COMPLETED inflows minus COMPLETED outflows."""
    balance = cash_flows.get_balance(db, portfolio.id, as_of=as_of, funding_source=funding_source)
    return BalanceResponse(
        portfolio_id=portfolio.id,
        balance=balance,
        currency=portfolio.base_currency,
        as_of=as_of,
        funding_source=funding_source,
    )


@router.put(
    "/balance",
    response_model=BalanceAdjustResponse,
    summary="Set the cash balance",
)
@limiter.limit(RATE_LIMIT_WRITE)
def adjust_balance(
        request: Request,
        data: BalanceAdjustRequest,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
) -> BalanceAdjustResponse:
    """
    Record a DEPOSIT or WITHDRAWAL for the difference between the current
    and the requested balance.
    """
    entry = cash_flows.adjust_balance(
        db, portfolio.id, data.balance, flow_date=data.flow_date, description=data.description
    )
    return BalanceAdjustResponse(
        portfolio_id=portfolio.id,
        balance=cash_flows.get_balance(db, portfolio.id),
        currency=portfolio.base_currency,
        adjustment=CashFlowResponse.model_validate(entry) if entry is not None else None,
    )


@router.get(
    "/funding-sources",
    response_model=list[FundingSourceSummaryResponse],
    summary="Totals per funding source",
)
def get_funding_sources(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
) -> list[FundingSourceSummary]:
    return cash_flows.funding_source_summary(db, portfolio.id)


# =============================================================================
# TRANSFER
# =============================================================================

@router.post(
    "/transfer",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer between funding sources",
)
@limiter.limit(RATE_LIMIT_WRITE)
def transfer(
        request: Request,
        data: TransferRequest,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        transfer_service: Annotated[TransferService, Depends(get_transfer_service)],
) -> TransferResponse:
    """
    Move cash from **from_source** to **to_source**.

    Both legs share one reference and are written together or not at all.

    **Errors:**
    - 400: Same or missing sources, non-positive amount, insufficient
      source balance without **allow_overdraft**
    """
    result = transfer_service.transfer(db, portfolio.id, **data.model_dump())
    return TransferResponse.model_validate(result)


# =============================================================================
# ENTRY LIFECYCLE
# =============================================================================

@router.post(
    "/{flow_type}",
    response_model=CashFlowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a ledger entry",
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_cash_flow(
        request: Request,
        flow_type: str,
        data: CashFlowCreate,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
) -> CashFlow:
    """
    Record an entry of type **flow_type** (deposit, withdrawal, dividend,
    interest, fee, tax, adjustment). Term deposit entries go through
    /portfolios/{id}/deposits.

    **Errors:**
    - 400: Unknown or deposit type, non-positive amount, ADJUSTMENT without direction
    """
    return cash_flows.create(db, portfolio.id, flow_type=flow_type, **data.model_dump())


@router.put(
    "/{cash_flow_id}",
    response_model=CashFlowResponse,
    summary="Edit a ledger entry",
)
@limiter.limit(RATE_LIMIT_WRITE)
def update_cash_flow(
        request: Request,
        cash_flow_id: int,
        data: CashFlowUpdate,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
) -> CashFlow:
    """
    Change the fields present in the body.

    **Errors:**
    - 409: Entry is cancelled, or **version** is out of date
    - 400: Invalid values
    """
    changes = data.model_dump(exclude_unset=True)
    expected_version = changes.pop("version", None)
    return cash_flows.update(db, portfolio.id, cash_flow_id, changes, expected_version=expected_version)


@router.put(
    "/{cash_flow_id}/cancel",
    response_model=CashFlowResponse,
    summary="Cancel a ledger entry",
)
@limiter.limit(RATE_LIMIT_WRITE)
def cancel_cash_flow(
        request: Request,
        cash_flow_id: int,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
) -> CashFlow:
    """
    Cancel an entry; cancelling twice is a no-op.

    A subscription or redemption entry voids its unit transaction.

    **Errors:**
    - 409: Entry belongs to a trade
    - 422: A later redemption depends on the units being voided
    """
    return cash_flows.cancel(db, portfolio.id, cash_flow_id)


@router.delete(
    "/{cash_flow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a ledger entry",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_cash_flow(
        request: Request,
        cash_flow_id: int,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        cash_flows: CashFlows,
) -> None:
    cash_flows.delete(db, portfolio.id, cash_flow_id)
