# backend/fundledger/schemas/cash_flows.py
"""
Pydantic schemas for the cash-flow ledger.

Amounts are positive magnitudes; the entry type decides whether cash comes
in or goes out (ADJUSTMENT needs an explicit direction).
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from fundledger.models import CashFlowStatus, CashFlowType, FlowDirection
from fundledger.schemas.pagination import PaginationMeta
from fundledger.schemas.validators import normalize_funding_source, validate_currency


# =============================================================================
# REQUESTS
# =============================================================================

class CashFlowCreate(BaseModel):
    """Body of POST /portfolios/{id}/cash-flow/{type}; the type comes from the path."""

    amount: Decimal = Field(..., gt=0, examples=["1500000"], description="Positive amount")
    flow_date: date | None = Field(default=None, description="Value date; defaults to today")
    description: str | None = Field(default=None, max_length=500)
    funding_source: str | None = Field(default=None, max_length=100)
    reference: str | None = Field(default=None, max_length=100)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: CashFlowStatus = Field(default=CashFlowStatus.COMPLETED)
    direction: FlowDirection | None = Field(default=None, description="Required for ADJUSTMENT only")

    @field_validator('funding_source')
    @classmethod
    def normalize_source(cls, v: str | None) -> str | None:
        return normalize_funding_source(v)

    @field_validator('currency')
    @classmethod
    def validate_and_normalize_currency(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return validate_currency(v)


class CashFlowUpdate(BaseModel):
    """
    Partial edit of a ledger entry.

    Only fields present in the body change. Passing the version read earlier
    makes the edit fail with 409 if someone else changed the entry since.
    """

    type: CashFlowType | None = None
    direction: FlowDirection | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: CashFlowStatus | None = None
    flow_date: date | None = None
    description: str | None = Field(default=None, max_length=500)
    reference: str | None = Field(default=None, max_length=100)
    funding_source: str | None = Field(default=None, max_length=100)
    version: int | None = Field(default=None, ge=1, description="Expected current version")

    @field_validator('currency')
    @classmethod
    def validate_and_normalize_currency(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return validate_currency(v)


class BalanceAdjustRequest(BaseModel):
    balance: Decimal = Field(..., description="Target cash balance")
    flow_date: date | None = None
    description: str | None = Field(default=None, max_length=500)


class TransferRequest(BaseModel):
    from_source: str = Field(..., min_length=1, max_length=100, examples=["SAVINGS"])
    to_source: str = Field(..., min_length=1, max_length=100, examples=["BROKERAGE"])
    amount: Decimal = Field(..., gt=0)
    transfer_date: date | None = None
    description: str | None = Field(default=None, max_length=500)
    allow_overdraft: bool = Field(default=False, description="Permit the source balance to go negative")

    @field_validator('from_source', 'to_source')
    @classmethod
    def strip_source(cls, v: str) -> str:
        return v.strip()


# =============================================================================
# RESPONSES
# =============================================================================

class CashFlowResponse(BaseModel):
    id: int
    portfolio_id: int
    type: CashFlowType
    direction: FlowDirection
    amount: Decimal
    currency: str
    status: CashFlowStatus
    flow_date: date
    description: str | None
    reference: str | None
    funding_source: str | None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CashFlowListResponse(BaseModel):
    items: list[CashFlowResponse] = Field(..., description="Entries of the current page")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")


class BalanceResponse(BaseModel):
    portfolio_id: int
    balance: Decimal
    currency: str
    as_of: date | None = None
    funding_source: str | None = None


class BalanceAdjustResponse(BalanceResponse):
    adjustment: CashFlowResponse | None = Field(
        default=None,
        description="Entry recorded for the difference; null when nothing changed"
    )


class FundingSourceSummaryResponse(BaseModel):
    funding_source: str
    total_inflow: Decimal
    total_outflow: Decimal
    transaction_count: int
    last_transaction_date: date | None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def net_amount(self) -> Decimal:
        return self.total_inflow - self.total_outflow


class TransferResponse(BaseModel):
    reference: str
    withdrawal_entry: CashFlowResponse
    deposit_entry: CashFlowResponse
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
