# backend/fundledger/services/cash_flow/types.py
"""
Cash-flow taxonomy and internal result types.

The direction of every cash-flow type is fixed here, in one table, and
looked up exhaustively. ADJUSTMENT is the only type whose direction is
chosen per entry.

These dataclasses are internal; API serialization lives in
fundledger/schemas/cash_flows.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from fundledger.models import CashFlow, CashFlowStatus, CashFlowType, FlowDirection
from fundledger.services.constants import ZERO


# =============================================================================
# DIRECTION TAXONOMY
# =============================================================================

# None = chosen per entry (ADJUSTMENT)
CASH_FLOW_DIRECTIONS: dict[CashFlowType, FlowDirection | None] = {
    CashFlowType.DEPOSIT: FlowDirection.IN,
    CashFlowType.WITHDRAWAL: FlowDirection.OUT,
    CashFlowType.DIVIDEND: FlowDirection.IN,
    CashFlowType.INTEREST: FlowDirection.IN,
    CashFlowType.FEE: FlowDirection.OUT,
    CashFlowType.TAX: FlowDirection.OUT,
    CashFlowType.ADJUSTMENT: None,
    CashFlowType.BUY_TRADE: FlowDirection.OUT,
    CashFlowType.SELL_TRADE: FlowDirection.IN,
    CashFlowType.DEPOSIT_SETTLEMENT: FlowDirection.IN,
    CashFlowType.DEPOSIT_CREATION: FlowDirection.OUT,
}

INFLOW_TYPES = frozenset(t for t, d in CASH_FLOW_DIRECTIONS.items() if d is FlowDirection.IN)
OUTFLOW_TYPES = frozenset(t for t, d in CASH_FLOW_DIRECTIONS.items() if d is FlowDirection.OUT)

# Written only by the term deposit service
DEPOSIT_LIFECYCLE_TYPES = frozenset({CashFlowType.DEPOSIT_CREATION, CashFlowType.DEPOSIT_SETTLEMENT})


def resolve_direction(flow_type: CashFlowType, requested: FlowDirection | None = None) -> FlowDirection:
    """
    Direction of a cash flow.

    Args:
        flow_type: Cash-flow type
        requested: Direction supplied by the caller; required for ADJUSTMENT,
                   must agree with the taxonomy for every other type

    Raises:
        ValueError: ADJUSTMENT without a direction, or a contradicting direction
    """
    fixed = CASH_FLOW_DIRECTIONS[flow_type]
    if fixed is None:
        if requested is None:
            raise ValueError(f"{flow_type.value} requires an explicit direction (IN or OUT)")
        return requested
    if requested is not None and requested != fixed:
        raise ValueError(f"{flow_type.value} is always {fixed.value}, got {requested.value}")
    return fixed


def signed_amount(cash_flow: CashFlow) -> Decimal:
    """Amount with sign applied: positive for inflows, negative for outflows."""
    return cash_flow.amount if cash_flow.direction == FlowDirection.IN else -cash_flow.amount


def affects_balance(cash_flow: CashFlow) -> bool:
    """Only COMPLETED entries move the cash balance."""
    return cash_flow.status == CashFlowStatus.COMPLETED


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class CashFlowPage:
    """
    One page of ledger entries plus the totals of the whole filtered set.

    Attributes:
        items: Entries on this page, newest flow_date first
        total: Number of entries matching the filters (all pages)
        page: 1-based page number
        limit: Page size
    """
    items: list[CashFlow]
    total: int
    page: int
    limit: int


@dataclass
class FundingSourceSummary:
    """
    Totals of COMPLETED entries for one funding source.

    Entries without a funding source are reported under "UNKNOWN".
    """
    funding_source: str
    total_inflow: Decimal = ZERO
    total_outflow: Decimal = ZERO
    transaction_count: int = 0
    last_transaction_date: date | None = None

    @property
    def net_amount(self) -> Decimal:
        return self.total_inflow - self.total_outflow

    def add(self, cash_flow: CashFlow) -> None:
        if cash_flow.direction == FlowDirection.IN:
            self.total_inflow += cash_flow.amount
        else:
            self.total_outflow += cash_flow.amount
        self.transaction_count += 1
        if self.last_transaction_date is None or cash_flow.flow_date > self.last_transaction_date:
            self.last_transaction_date = cash_flow.flow_date


@dataclass
class TransferResult:
    """
    Both legs of a transfer between funding sources.

    Attributes:
        withdrawal_entry: WITHDRAWAL tagged with the source
        deposit_entry: DEPOSIT tagged with the destination
        reference: Correlation reference shared by both legs
        warnings: Non-fatal notes (e.g. source overdrawn with allow_overdraft)
    """
    withdrawal_entry: CashFlow
    deposit_entry: CashFlow
    reference: str
    warnings: list[str] = field(default_factory=list)
