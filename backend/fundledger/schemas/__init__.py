# backend/fundledger/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

Organized by domain:
- accounts: Account creation and responses
- assets: Assets and price records
- cash_flows: Ledger entries, balances, transfers, funding sources
- deposits: Term deposits and their settlement
- errors: Error response formats
- funds: Subscriptions, redemptions, holdings, corrections
- pagination: Page-based pagination for list endpoints
- portfolios: Portfolios and fund conversion
- snapshots: Portfolio and performance snapshots
- trades: Trades
- validators: Reusable validation functions
"""

from fundledger.schemas.errors import ErrorDetail, ValidationErrorDetail
from fundledger.schemas.pagination import PaginatedResponse, PaginationMeta

__all__ = [
    "ErrorDetail",
    "ValidationErrorDetail",
    "PaginatedResponse",
    "PaginationMeta",
]
