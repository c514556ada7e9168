# backend/fundledger/schemas/portfolios.py
"""
Pydantic schemas for portfolios and fund-mode conversion.

Validation layers:
- Field constraints: type, length
- Field validators: normalization (uppercase, trim)
- Services: existence checks, mode rules
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fundledger.config import settings
from fundledger.schemas.funds import FundUnitTransactionResponse
from fundledger.schemas.pagination import PaginationMeta
from fundledger.schemas.validators import normalize_funding_source, validate_currency


class PortfolioCreate(BaseModel):
    account_id: int = Field(..., gt=0, description="Owning account")
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        examples=["Family Growth Fund", "Retirement"],
        description="Name of the portfolio"
    )
    base_currency: str = Field(
        default=settings.default_currency,
        min_length=3,
        max_length=3,
        description="Valuation currency (ISO 4217)"
    )
    funding_source: str | None = Field(
        default=None,
        max_length=100,
        description="Default funding source tag for new ledger entries"
    )

    @field_validator('name')
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('base_currency')
    @classmethod
    def validate_and_normalize_currency(cls, v: str) -> str:
        return validate_currency(v)

    @field_validator('funding_source')
    @classmethod
    def normalize_source(cls, v: str | None) -> str | None:
        return normalize_funding_source(v)


class PortfolioResponse(BaseModel):
    """
    A portfolio with its fund-mode aggregates.

    nav_per_unit, total_outstanding_units and number_of_investors are only
    meaningful when is_fund is true. nav_is_stale flags a ledger correction
    made since the last NAV refresh.
    """

    id: int
    account_id: int
    name: str
    base_currency: str
    funding_source: str | None
    is_fund: bool
    nav_per_unit: Decimal | None
    total_outstanding_units: Decimal
    number_of_investors: int
    last_nav_date: datetime | None
    nav_is_stale: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PortfolioListResponse(BaseModel):
    items: list[PortfolioResponse] = Field(..., description="Portfolios of the current page")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")


class ConversionResponse(BaseModel):
    portfolio_id: int
    is_fund: bool
    nav_per_unit: Decimal | None
    total_outstanding_units: Decimal
    total_value: Decimal = Field(..., description="Portfolio value used to unitize (0 on conversion back)")
    initial_transaction: FundUnitTransactionResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class NavRefreshResponse(BaseModel):
    portfolio_id: int
    nav_per_unit: Decimal
    total_fund_value: Decimal
    total_outstanding_units: Decimal
    as_of: date

    model_config = ConfigDict(from_attributes=True)
