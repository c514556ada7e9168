# backend/fundledger/services/cash_flow/__init__.py
"""
Cash-flow ledger and transfers between funding sources.

Usage:
    from fundledger.services.cash_flow import CashFlowService, TransferService
"""

from fundledger.services.cash_flow.service import CashFlowService
from fundledger.services.cash_flow.transfer import TransferService
from fundledger.services.cash_flow.types import (
    CASH_FLOW_DIRECTIONS,
    CashFlowPage,
    FundingSourceSummary,
    TransferResult,
    resolve_direction,
    signed_amount,
)

__all__ = [
    "CashFlowService",
    "TransferService",
    "CASH_FLOW_DIRECTIONS",
    "CashFlowPage",
    "FundingSourceSummary",
    "TransferResult",
    "resolve_direction",
    "signed_amount",
]
