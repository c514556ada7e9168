# backend/fundledger/schemas/funds.py
"""
Pydantic schemas for fund units: subscriptions, redemptions, holdings and
transaction corrections.

Units carry 6 decimals, NAV per unit 6, money 2.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fundledger.models import FundUnitTransactionType
from fundledger.schemas.validators import normalize_funding_source
from fundledger.services.fund.types import HoldingDetail, HoldingSummary


# =============================================================================
# REQUESTS
# =============================================================================

class _UnitOrderBase(BaseModel):
    """Exactly one of amount or units must be given."""

    account_id: int = Field(..., gt=0, description="Investor account")
    amount: Decimal | None = Field(default=None, gt=0, description="Cash amount")
    units: Decimal | None = Field(default=None, gt=0, description="Number of units")
    description: str | None = Field(default=None, max_length=500)
    funding_source: str | None = Field(default=None, max_length=100)

    @field_validator('funding_source')
    @classmethod
    def normalize_source(cls, v: str | None) -> str | None:
        return normalize_funding_source(v)

    @model_validator(mode='after')
    def check_amount_or_units(self):
        if (self.amount is None) == (self.units is None):
            raise ValueError("Provide exactly one of amount or units")
        return self


class SubscriptionRequest(_UnitOrderBase):
    subscription_date: date | None = Field(default=None, description="Defaults to today")


class RedemptionRequest(_UnitOrderBase):
    redemption_date: date | None = Field(default=None, description="Defaults to today")


class TransactionCorrectionRequest(BaseModel):
    """
    Correct a unit transaction: either void it, or replace units and/or NAV.
    """

    units: Decimal | None = Field(default=None, gt=0, description="Corrected unit count (magnitude)")
    nav_per_unit: Decimal | None = Field(default=None, gt=0, description="Corrected NAV per unit")
    void: bool = Field(default=False, description="Void the transaction and cancel its cash flow")

    @model_validator(mode='after')
    def check_something_to_correct(self):
        if self.void and (self.units is not None or self.nav_per_unit is not None):
            raise ValueError("void cannot be combined with units or nav_per_unit")
        if not self.void and self.units is None and self.nav_per_unit is None:
            raise ValueError("Provide units, nav_per_unit or void")
        return self


# =============================================================================
# RESPONSES
# =============================================================================

class FundUnitTransactionResponse(BaseModel):
    id: int
    portfolio_id: int
    account_id: int
    holding_id: int
    type: FundUnitTransactionType
    units: Decimal = Field(..., description="Positive for subscriptions, negative for redemptions")
    nav_per_unit: Decimal
    amount: Decimal
    transaction_date: date
    description: str | None
    cash_flow_id: int | None
    is_voided: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvestorHoldingResponse(BaseModel):
    """A holding valued at the fund's stored NAV per unit."""

    id: int
    portfolio_id: int
    account_id: int
    total_units: Decimal
    avg_cost_per_unit: Decimal
    total_investment: Decimal
    realized_pnl: Decimal
    nav_per_unit: Decimal | None
    current_value: Decimal
    unrealized_pnl: Decimal
    ownership_percentage: Decimal

    @classmethod
    def from_summary(cls, summary: HoldingSummary) -> "InvestorHoldingResponse":
        holding = summary.holding
        return cls(
            id=holding.id,
            portfolio_id=holding.portfolio_id,
            account_id=holding.account_id,
            total_units=holding.total_units,
            avg_cost_per_unit=holding.avg_cost_per_unit,
            total_investment=holding.total_investment,
            realized_pnl=holding.realized_pnl,
            nav_per_unit=summary.nav_per_unit,
            current_value=summary.current_value,
            unrealized_pnl=summary.unrealized_pnl,
            ownership_percentage=summary.ownership_percentage,
        )


class HoldingDetailResponse(BaseModel):
    holding: InvestorHoldingResponse
    transactions: list[FundUnitTransactionResponse]
    total_subscribed_amount: Decimal
    total_subscribed_units: Decimal
    total_redeemed_amount: Decimal
    total_redeemed_units: Decimal
    total_return: Decimal = Field(..., description="Unrealized plus realized P&L")
    return_percentage: Decimal | None = Field(..., description="Total return / amount subscribed × 100")

    @classmethod
    def from_detail(cls, detail: HoldingDetail) -> "HoldingDetailResponse":
        return cls(
            holding=InvestorHoldingResponse.from_summary(detail.summary),
            transactions=[FundUnitTransactionResponse.model_validate(tx) for tx in detail.transactions],
            total_subscribed_amount=detail.total_subscribed_amount,
            total_subscribed_units=detail.total_subscribed_units,
            total_redeemed_amount=detail.total_redeemed_amount,
            total_redeemed_units=detail.total_redeemed_units,
            total_return=detail.total_return,
            return_percentage=detail.return_percentage,
        )


class SubscriptionResponse(BaseModel):
    portfolio_id: int
    account_id: int
    units: Decimal
    nav_per_unit: Decimal
    amount: Decimal
    total_outstanding_units: Decimal
    transaction_id: int
    holding_id: int
    cash_flow_id: int


class RedemptionResponse(SubscriptionResponse):
    realized_pnl: Decimal
    remaining_units: Decimal


class RecalculationResponse(BaseModel):
    portfolio_id: int
    updated_holdings_count: int
    total_outstanding_units: Decimal

    model_config = ConfigDict(from_attributes=True)


class TransactionCorrectionResponse(BaseModel):
    transaction: FundUnitTransactionResponse
    recalculation: RecalculationResponse
