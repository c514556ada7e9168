# backend/fundledger/schemas/assets.py
"""Pydantic schemas for assets and their price records."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fundledger.config import settings
from fundledger.models import AssetType
from fundledger.schemas.validators import validate_currency, validate_date_range, validate_symbol


class AssetCreate(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=50, examples=["FPT", "E1VFVN30"])
    name: str | None = Field(default=None, max_length=200)
    asset_type: AssetType = Field(default=AssetType.STOCK)
    currency: str = Field(default=settings.default_currency, min_length=3, max_length=3)

    @field_validator('symbol')
    @classmethod
    def validate_and_normalize_symbol(cls, v: str) -> str:
        return validate_symbol(v)

    @field_validator('currency')
    @classmethod
    def validate_and_normalize_currency(cls, v: str) -> str:
        return validate_currency(v)


class AssetResponse(BaseModel):
    id: int
    symbol: str
    name: str | None
    asset_type: AssetType
    currency: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssetPriceCreate(BaseModel):
    price_date: date
    price: Decimal = Field(..., gt=0)

    @field_validator('price_date')
    @classmethod
    def not_in_future(cls, v: date) -> date:
        validate_date_range(v, v)
        return v


class AssetPriceResponse(BaseModel):
    id: int
    asset_id: int
    price_date: date
    price: Decimal

    model_config = ConfigDict(from_attributes=True)
