# backend/fundledger/routers/assets.py
"""
Asset catalogue and price endpoints.

Market-data feeds post closing prices here; valuations read them back.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import get_asset_service
from fundledger.middleware.rate_limit import RATE_LIMIT_WRITE, limiter
from fundledger.models import Asset, AssetPrice, AssetType
from fundledger.schemas.assets import AssetCreate, AssetPriceCreate, AssetPriceResponse, AssetResponse
from fundledger.services.assets import AssetService

router = APIRouter(
    prefix="/assets",
    tags=["Assets"],
)


@router.post(
    "",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an asset",
)
@limiter.limit(RATE_LIMIT_WRITE)
def create_asset(
        request: Request,
        data: AssetCreate,
        db: Annotated[Session, Depends(get_db)],
        asset_service: Annotated[AssetService, Depends(get_asset_service)],
) -> Asset:
    """
    **Errors:**
    - 409: Symbol already registered
    """
    return asset_service.create_asset(db, **data.model_dump())


@router.get(
    "",
    response_model=list[AssetResponse],
    summary="List assets",
)
def list_assets(
        db: Annotated[Session, Depends(get_db)],
        asset_service: Annotated[AssetService, Depends(get_asset_service)],
        asset_type: AssetType | None = Query(default=None),
) -> list[Asset]:
    return asset_service.list_assets(db, asset_type=asset_type)


@router.post(
    "/{asset_id}/prices",
    response_model=AssetPriceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a closing price",
)
@limiter.limit(RATE_LIMIT_WRITE)
def record_price(
        request: Request,
        asset_id: int,
        data: AssetPriceCreate,
        db: Annotated[Session, Depends(get_db)],
        asset_service: Annotated[AssetService, Depends(get_asset_service)],
) -> AssetPrice:
    """Store (or replace) the price of an asset for a date."""
    return asset_service.record_price(db, asset_id, data.price_date, data.price)
