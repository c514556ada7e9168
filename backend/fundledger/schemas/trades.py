# backend/fundledger/schemas/trades.py
"""Pydantic schemas for trades."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fundledger.models import TradeSide
from fundledger.schemas.validators import normalize_funding_source


class TradeCreate(BaseModel):
    asset_id: int = Field(..., gt=0)
    side: TradeSide
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., gt=0, description="Price per unit")
    fee: Decimal = Field(default=Decimal("0"), ge=0)
    trade_date: date | None = Field(default=None, description="Defaults to today")
    funding_source: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, max_length=500)

    @field_validator('funding_source')
    @classmethod
    def normalize_source(cls, v: str | None) -> str | None:
        return normalize_funding_source(v)


class TradeResponse(BaseModel):
    id: int
    portfolio_id: int
    asset_id: int
    side: TradeSide
    quantity: Decimal
    price: Decimal
    fee: Decimal
    trade_date: date
    cash_flow_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
