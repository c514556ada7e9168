# backend/fundledger/routers/accounts.py
"""
Account endpoints.

Accounts own portfolios; investor accounts may also hold fund units.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from fundledger.models import Account
from fundledger.schemas.accounts import AccountCreate, AccountResponse
from fundledger.services.exceptions import AccountNotFoundError, ConflictError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/accounts",
    tags=["Accounts"],
)


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_account(
        request: Request,
        data: AccountCreate,
        db: Annotated[Session, Depends(get_db)],
) -> Account:
    """
    Register an account holder.

    - **is_investor**: must be true for the account to subscribe to funds

    **Errors:**
    - 409: Email already registered
    """
    if data.email is not None:
        taken = db.scalar(select(Account.id).where(Account.email == data.email))
        if taken is not None:
            raise ConflictError(f"Email {data.email} is already registered")

    account = Account(**data.model_dump())
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info("Created account %s (investor=%s)", account.id, account.is_investor)
    return account


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get an account",
)
def get_account(
        account_id: int,
        db: Annotated[Session, Depends(get_db)],
) -> Account:
    account = db.get(Account, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    return account
