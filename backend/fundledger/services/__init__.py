# backend/fundledger/services/__init__.py
"""
Service layer for the fund ledger.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions from services/exceptions.py
- Receive database sessions as parameters (not via Depends)
- Commit their own database transaction; money-moving operations commit
  inside the per-portfolio lock

Usage:
    from fundledger.services import CashFlowService, FundService
    from fundledger.services import InsufficientUnitsError, NavUndefinedError

Architecture:
    services/
    ├── __init__.py          # This file - main exports
    ├── exceptions.py        # Domain exceptions
    ├── constants.py         # Precision, rounding and limits
    ├── locking.py           # Per-portfolio lock registry
    ├── pricing.py           # Price providers, timeout and retry
    ├── assets.py            # Asset catalogue and price records
    ├── trades.py            # Trades and their ledger entries
    ├── deposits.py          # Term deposits and their ledger entries
    ├── cash_flow/           # Cash-flow ledger
    │   ├── service.py       # Record, edit, cancel, query
    │   ├── transfer.py      # Funding-source transfers
    │   └── types.py         # Direction rules and result types
    ├── fund/                # Fund unit engine
    │   ├── service.py       # Conversion, NAV, subscribe/redeem
    │   ├── calculators.py   # Pure unit and cost-basis arithmetic
    │   ├── holdings.py      # Holdings replay/recalculation
    │   ├── valuation.py     # Portfolio valuation as of a date
    │   └── types.py         # Result and read-model types
    └── snapshots/           # Snapshot store
        ├── service.py
        └── types.py
"""

# Exceptions
from fundledger.services.exceptions import (
    ServiceError,
    ValidationError,
    InvalidStateError,
    NavUndefinedError,
    InsufficientUnitsError,
    ConflictError,
    PortfolioBusyError,
    PermissionDeniedError,
    NotFoundError,
    AccountNotFoundError,
    PortfolioNotFoundError,
    AssetNotFoundError,
    CashFlowNotFoundError,
    InvestorHoldingNotFoundError,
    FundUnitTransactionNotFoundError,
    DepositNotFoundError,
    SnapshotNotFoundError,
    PriceLookupError,
    PriceLookupTimeoutError,
    PriceProviderUnavailableError,
    PriceNotAvailableError,
)

# Infrastructure
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks
from fundledger.services.pricing import DatabasePriceProvider, PriceProvider, PriceService

# Ledger
from fundledger.services.cash_flow import CashFlowService, TransferService

# Fund engine
from fundledger.services.fund.holdings import HoldingsRecalculator, RecalculationResult
from fundledger.services.fund.valuation import FundValuationService
from fundledger.services.fund.service import FundService

# Trades, deposits, assets, snapshots
from fundledger.services.trades import TradeService
from fundledger.services.deposits import DepositService
from fundledger.services.assets import AssetService
from fundledger.services.snapshots import CancellationToken, SnapshotService

__all__ = [
    # Exceptions
    "ServiceError",
    "ValidationError",
    "InvalidStateError",
    "NavUndefinedError",
    "InsufficientUnitsError",
    "ConflictError",
    "PortfolioBusyError",
    "PermissionDeniedError",
    "NotFoundError",
    "AccountNotFoundError",
    "PortfolioNotFoundError",
    "AssetNotFoundError",
    "CashFlowNotFoundError",
    "InvestorHoldingNotFoundError",
    "FundUnitTransactionNotFoundError",
    "DepositNotFoundError",
    "SnapshotNotFoundError",
    "PriceLookupError",
    "PriceLookupTimeoutError",
    "PriceProviderUnavailableError",
    "PriceNotAvailableError",
    # Infrastructure
    "PortfolioLockRegistry",
    "portfolio_locks",
    "PriceProvider",
    "DatabasePriceProvider",
    "PriceService",
    # Services
    "CashFlowService",
    "TransferService",
    "HoldingsRecalculator",
    "RecalculationResult",
    "FundValuationService",
    "FundService",
    "TradeService",
    "DepositService",
    "AssetService",
    "SnapshotService",
    "CancellationToken",
]
