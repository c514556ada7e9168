# backend/fundledger/routers/deposits.py
"""
Term deposit endpoints.

Opening a deposit records its DEPOSIT_CREATION ledger entry; settling it
records the DEPOSIT_SETTLEMENT entry for principal plus interest.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import get_deposit_service, get_portfolio_with_access_check
from fundledger.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from fundledger.models import DepositStatus, Portfolio, TermDeposit
from fundledger.schemas.deposits import DepositCreate, DepositResponse, DepositSettle
from fundledger.services.deposits import DepositService

router = APIRouter(
    prefix="/portfolios/{portfolio_id}/deposits",
    tags=["Term Deposits"],
)

Deposits = Annotated[DepositService, Depends(get_deposit_service)]


@router.post(
    "",
    response_model=DepositResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a term deposit",
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_deposit(
        request: Request,
        data: DepositCreate,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        deposit_service: Deposits,
) -> TermDeposit:
    """
    Open a deposit; the principal leaves the cash balance on the start date.

    **Errors:**
    - 400: Term longer than ten years
    - 422: end_date not after start_date, non-positive principal
    """
    return deposit_service.create_deposit(db, portfolio.id, **data.model_dump())


@router.get(
    "",
    response_model=list[DepositResponse],
    summary="List term deposits",
)
def list_deposits(
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        deposit_service: Deposits,
        deposit_status: DepositStatus | None = Query(default=None, alias="status"),
) -> list[TermDeposit]:
    return deposit_service.list_deposits(db, portfolio.id, status=deposit_status)


@router.get(
    "/{deposit_id}",
    response_model=DepositResponse,
    summary="Get a term deposit",
)
def get_deposit(
        deposit_id: int,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        deposit_service: Deposits,
) -> TermDeposit:
    return deposit_service.get_deposit(db, portfolio.id, deposit_id)


@router.post(
    "/{deposit_id}/settle",
    response_model=DepositResponse,
    summary="Settle a term deposit",
)
@limiter.limit(RATE_LIMIT_WRITE)
def settle_deposit(
        request: Request,
        deposit_id: int,
        data: DepositSettle,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        deposit_service: Deposits,
) -> TermDeposit:
    """
    Close the deposit with the interest actually paid.

    **Errors:**
    - 409: Deposit already settled
    - 400: Settlement date before the start date
    """
    return deposit_service.settle_deposit(db, portfolio.id, deposit_id, **data.model_dump())


@router.delete(
    "/{deposit_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a term deposit and its cash flows",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_deposit(
        request: Request,
        deposit_id: int,
        portfolio: Annotated[Portfolio, Depends(get_portfolio_with_access_check)],
        db: Annotated[Session, Depends(get_db)],
        deposit_service: Deposits,
) -> None:
    deposit_service.delete_deposit(db, portfolio.id, deposit_id)
