# backend/fundledger/schemas/accounts.py
"""
Pydantic schemas for accounts.

An account owns portfolios; with is_investor set it may also hold units of
funds it does not own.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from fundledger.config import settings
from fundledger.schemas.validators import validate_currency


class AccountCreate(BaseModel):
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        examples=["Nguyen Van A", "Family Office"],
        description="Display name of the account holder"
    )
    email: EmailStr | None = Field(default=None, description="Contact email (unique)")
    base_currency: str = Field(
        default=settings.default_currency,
        min_length=3,
        max_length=3,
        description="Reporting currency (ISO 4217)"
    )
    is_main_account: bool = Field(default=False, description="Primary account of the household")
    is_investor: bool = Field(default=False, description="May subscribe to funds")

    @field_validator('name')
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('base_currency')
    @classmethod
    def validate_and_normalize_currency(cls, v: str) -> str:
        return validate_currency(v)


class AccountResponse(BaseModel):
    id: int
    name: str
    email: str | None
    base_currency: str
    is_main_account: bool
    is_investor: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
