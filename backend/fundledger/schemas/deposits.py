# backend/fundledger/schemas/deposits.py
"""Pydantic schemas for term deposits."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fundledger.models import DepositStatus
from fundledger.schemas.validators import normalize_funding_source


class DepositCreate(BaseModel):
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_number: str | None = Field(default=None, max_length=50)
    principal: Decimal = Field(..., gt=0)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0, description="Annual rate in percent")
    start_date: date
    end_date: date
    notes: str | None = Field(default=None, max_length=500)
    funding_source: str | None = Field(default=None, max_length=100)

    @field_validator('funding_source')
    @classmethod
    def normalize_source(cls, v: str | None) -> str | None:
        return normalize_funding_source(v)

    @model_validator(mode='after')
    def check_term(self) -> 'DepositCreate':
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class DepositSettle(BaseModel):
    actual_interest: Decimal = Field(default=Decimal("0"), ge=0)
    settlement_date: date | None = Field(default=None, description="Defaults to today")


class DepositResponse(BaseModel):
    id: int
    portfolio_id: int
    bank_name: str
    account_number: str | None
    principal: Decimal
    interest_rate: Decimal
    start_date: date
    end_date: date
    status: DepositStatus
    actual_interest: Decimal | None
    settlement_date: date | None
    notes: str | None
    creation_cash_flow_id: int | None
    settlement_cash_flow_id: int | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
