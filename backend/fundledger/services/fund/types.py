# backend/fundledger/services/fund/types.py
"""
Internal data types for the fund engine.

These dataclasses are NOT Pydantic schemas; API serialization lives in
fundledger/schemas/funds.py and fundledger/schemas/portfolios.py.

Type Hierarchy:
    PositionValue      - One asset position priced as of a date
    AllocationSlice    - Value/percentage/count of one asset type
    FundValuation      - Positions + cash (+ open bank deposits) as of a date
    NavRefreshResult   - Outcome of a NAV recomputation
    ConversionResult   - Outcome of portfolio <-> fund conversion
    SubscriptionResult - Outcome of a subscription
    RedemptionResult   - Outcome of a redemption
    HoldingSummary     - Stored holding valued at the fund's current NAV
    HoldingDetail      - HoldingSummary + transaction history and totals
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from fundledger.models import (
    AssetType,
    CashFlow,
    FundUnitTransaction,
    InvestorHolding,
)
from fundledger.services.constants import HUNDRED, ZERO
from fundledger.services.fund.calculators import (
    quantize_money,
    quantize_percentage,
    return_percentage,
)

CASH_ALLOCATION_KEY = "CASH"


# =============================================================================
# VALUATION
# =============================================================================

@dataclass(frozen=True)
class PositionValue:
    asset_id: int
    symbol: str
    asset_type: AssetType
    quantity: Decimal
    price: Decimal
    market_value: Decimal


@dataclass(frozen=True)
class AllocationSlice:
    value: Decimal
    percentage: Decimal
    count: int

    def to_json(self) -> dict:
        """JSON-safe form stored in snapshot rows."""
        return {"value": str(self.value), "percentage": str(self.percentage), "count": self.count}


@dataclass
class FundValuation:
    """
    Value of a portfolio as of a date.

    total_value = asset market value + ledger cash + open bank deposits.

    Attributes:
        term_deposit_value: Principal of the term deposits open on as_of;
            it left the cash balance but is still fund property. Interest
            counts once the settlement brings it into the cash balance
    """
    portfolio_id: int
    as_of: date
    positions: list[PositionValue] = field(default_factory=list)
    cash_balance: Decimal = ZERO
    term_deposit_value: Decimal = ZERO

    @property
    def asset_value(self) -> Decimal:
        return quantize_money(sum((p.market_value for p in self.positions), ZERO))

    @property
    def total_value(self) -> Decimal:
        return quantize_money(self.asset_value + self.cash_balance + self.term_deposit_value)

    @property
    def asset_count(self) -> int:
        return len(self.positions)

    def allocation(self) -> dict[str, AllocationSlice]:
        """
        Value, share of total value and position count per asset type.

        Cash (including open bank deposits) is reported under "CASH".
        """
        total = self.total_value
        values: dict[str, Decimal] = {}
        counts: dict[str, int] = {}
        for position in self.positions:
            key = position.asset_type.value
            values[key] = values.get(key, ZERO) + position.market_value
            counts[key] = counts.get(key, 0) + 1

        cash = self.cash_balance + self.term_deposit_value
        if cash != ZERO:
            values[CASH_ALLOCATION_KEY] = cash
            counts[CASH_ALLOCATION_KEY] = 0

        return {
            key: AllocationSlice(
                value=quantize_money(value),
                percentage=quantize_percentage(value / total * HUNDRED) if total != ZERO else ZERO,
                count=counts[key],
            )
            for key, value in sorted(values.items())
        }


# =============================================================================
# FUND OPERATIONS
# =============================================================================

@dataclass(frozen=True)
class NavRefreshResult:
    portfolio_id: int
    nav_per_unit: Decimal
    total_fund_value: Decimal
    total_outstanding_units: Decimal
    as_of: date


@dataclass
class ConversionResult:
    portfolio_id: int
    is_fund: bool
    nav_per_unit: Decimal | None
    total_outstanding_units: Decimal
    total_value: Decimal
    initial_transaction: FundUnitTransaction | None = None


@dataclass
class SubscriptionResult:
    portfolio_id: int
    account_id: int
    units: Decimal
    nav_per_unit: Decimal
    amount: Decimal
    total_outstanding_units: Decimal
    transaction: FundUnitTransaction
    holding: InvestorHolding
    cash_flow: CashFlow


@dataclass
class RedemptionResult:
    portfolio_id: int
    account_id: int
    units: Decimal
    nav_per_unit: Decimal
    amount: Decimal
    realized_pnl: Decimal
    remaining_units: Decimal
    total_outstanding_units: Decimal
    transaction: FundUnitTransaction
    holding: InvestorHolding
    cash_flow: CashFlow


# =============================================================================
# HOLDINGS (READ MODELS)
# =============================================================================

@dataclass
class HoldingSummary:
    """
    A stored holding valued at the fund's last NAV.

    No price lookup happens when holdings are listed; the values move with
    the NAV stored by the last subscribe, redeem or refresh.
    """
    holding: InvestorHolding
    nav_per_unit: Decimal | None
    fund_outstanding_units: Decimal

    @property
    def current_value(self) -> Decimal:
        if self.nav_per_unit is None:
            return quantize_money(ZERO)
        return quantize_money(self.holding.total_units * self.nav_per_unit)

    @property
    def unrealized_pnl(self) -> Decimal:
        return quantize_money(self.current_value - self.holding.total_investment)

    @property
    def ownership_percentage(self) -> Decimal:
        if self.fund_outstanding_units == ZERO:
            return quantize_percentage(ZERO)
        return quantize_percentage(self.holding.total_units / self.fund_outstanding_units * HUNDRED)


@dataclass
class HoldingDetail:
    summary: HoldingSummary
    transactions: list[FundUnitTransaction]
    total_subscribed_amount: Decimal
    total_subscribed_units: Decimal
    total_redeemed_amount: Decimal
    total_redeemed_units: Decimal

    @property
    def total_return(self) -> Decimal:
        """Unrealized plus realized P&L."""
        return quantize_money(self.summary.unrealized_pnl + self.summary.holding.realized_pnl)

    @property
    def return_percentage(self) -> Decimal | None:
        """Total return relative to everything ever subscribed."""
        return return_percentage(self.total_return, self.total_subscribed_amount)
