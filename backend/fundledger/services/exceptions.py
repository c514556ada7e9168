# backend/fundledger/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
main.py maps each kind to an HTTP status and a stable `error` name.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── InvalidStateError
    │   └── NavUndefinedError
    ├── InsufficientUnitsError
    ├── ConflictError
    │   └── PortfolioBusyError
    ├── PermissionDeniedError
    ├── NotFoundError
    │   ├── AccountNotFoundError
    │   ├── PortfolioNotFoundError
    │   ├── AssetNotFoundError
    │   ├── CashFlowNotFoundError
    │   ├── InvestorHoldingNotFoundError
    │   ├── FundUnitTransactionNotFoundError
    │   ├── DepositNotFoundError
    │   └── SnapshotNotFoundError
    └── PriceLookupError
        ├── PriceLookupTimeoutError
        ├── PriceProviderUnavailableError
        └── PriceNotAvailableError
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# INPUT / STATE ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    Non-positive amounts, unknown cash-flow types, unparsable dates and
    missing required fields end up here. Shape validation of HTTP bodies is
    done by Pydantic before the service is called.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidStateError(ServiceError):
    """
    Raised when an operation is not allowed in the resource's current state.

    Examples: editing a CANCELLED cash flow, converting a portfolio that is
    already a fund, subscribing to a portfolio that is not a fund.
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class NavUndefinedError(InvalidStateError):
    """
    Raised when NAV per unit cannot be computed because no units are outstanding.

    Attributes:
        portfolio_id: The fund whose NAV is undefined
        last_known_nav: The NAV stored on the fund, if any
    """

    def __init__(self, portfolio_id: int, last_known_nav: Decimal | None = None) -> None:
        self.portfolio_id = portfolio_id
        self.last_known_nav = last_known_nav
        super().__init__(
            f"NAV per unit is undefined for fund {portfolio_id}: no units are outstanding",
            resource_type="Portfolio",
            resource_id=portfolio_id,
        )


class InsufficientUnitsError(ServiceError):
    """
    Raised when a redemption asks for more units than the investor holds.

    The holding is left unchanged.
    """

    def __init__(self, requested: Decimal, available: Decimal, account_id: int | None = None) -> None:
        self.requested = requested
        self.available = available
        self.account_id = account_id
        super().__init__(
            f"Insufficient units: requested {requested}, available {available}"
        )


class ConflictError(ServiceError):
    """
    Raised when an operation conflicts with existing data or a concurrent writer.

    Examples: converting a fund with several unit holders back to a plain
    portfolio, a stale version on a cash-flow edit, creating a snapshot that
    already exists.
    """
    pass


class PortfolioBusyError(ConflictError):
    """Raised when the per-portfolio lock could not be acquired in time."""

    def __init__(self, portfolio_id: int, timeout_seconds: float) -> None:
        self.portfolio_id = portfolio_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Portfolio {portfolio_id} is busy with another operation; "
            f"lock not acquired within {timeout_seconds}s"
        )


class PermissionDeniedError(ServiceError):
    """Raised when an account acts on a portfolio it does not own."""

    def __init__(self, account_id: int, portfolio_id: int) -> None:
        self.account_id = account_id
        self.portfolio_id = portfolio_id
        super().__init__(f"Account {account_id} does not own portfolio {portfolio_id}")


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Portfolio", "CashFlow")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class AccountNotFoundError(NotFoundError):
    """Raised when an account cannot be found."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            f"Account {account_id} not found",
            resource_type="Account",
            resource_id=account_id,
        )


class PortfolioNotFoundError(NotFoundError):
    """
    Raised when a portfolio cannot be found.

    Attributes:
        portfolio_id: ID of the portfolio that was not found
    """

    def __init__(self, portfolio_id: int) -> None:
        self.portfolio_id = portfolio_id
        super().__init__(
            f"Portfolio {portfolio_id} not found",
            resource_type="Portfolio",
            resource_id=portfolio_id,
        )


class AssetNotFoundError(NotFoundError):
    """Raised when an asset id or symbol is unknown."""

    def __init__(self, asset: int | str) -> None:
        super().__init__(
            f"Asset {asset} not found",
            resource_type="Asset",
            resource_id=asset,
        )


class CashFlowNotFoundError(NotFoundError):
    """Raised when a cash flow does not exist or belongs to another portfolio."""

    def __init__(self, cash_flow_id: int) -> None:
        self.cash_flow_id = cash_flow_id
        super().__init__(
            f"Cash flow {cash_flow_id} not found",
            resource_type="CashFlow",
            resource_id=cash_flow_id,
        )


class InvestorHoldingNotFoundError(NotFoundError):
    def __init__(self, holding_id: int | str) -> None:
        super().__init__(
            f"Investor holding {holding_id} not found",
            resource_type="InvestorHolding",
            resource_id=holding_id,
        )


class FundUnitTransactionNotFoundError(NotFoundError):
    def __init__(self, transaction_id: int) -> None:
        super().__init__(
            f"Fund unit transaction {transaction_id} not found",
            resource_type="FundUnitTransaction",
            resource_id=transaction_id,
        )


class DepositNotFoundError(NotFoundError):
    def __init__(self, deposit_id: int) -> None:
        super().__init__(
            f"Term deposit {deposit_id} not found",
            resource_type="TermDeposit",
            resource_id=deposit_id,
        )


class SnapshotNotFoundError(NotFoundError):
    """Raised when no snapshot exists for the requested portfolio/date."""

    def __init__(self, portfolio_id: int, snapshot_date: date | None = None) -> None:
        where = f" on {snapshot_date}" if snapshot_date else ""
        super().__init__(
            f"No snapshot for portfolio {portfolio_id}{where}",
            resource_type="PortfolioSnapshot",
            resource_id=portfolio_id,
        )


# =============================================================================
# PRICE LOOKUP ERRORS
# =============================================================================


class PriceLookupError(ServiceError):
    """
    Base exception for market price lookup failures.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class PriceLookupTimeoutError(PriceLookupError):
    """
    Raised when prices were not returned within the configured bound.

    NAV computation fails instead of continuing with partial prices.
    """

    def __init__(self, timeout_seconds: float, provider: str | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Price lookup did not complete within {timeout_seconds}s",
            provider=provider,
        )


class PriceProviderUnavailableError(PriceLookupError):
    """
    Raised when the price provider is temporarily unavailable.

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Price provider '{provider}' is unavailable: {reason}", provider=provider)


class PriceNotAvailableError(PriceLookupError):
    """
    Raised when a held asset has no price on or before the valuation date.

    Attributes:
        asset_ids: Assets without a usable price
        as_of: Valuation date
    """

    def __init__(self, asset_ids: Iterable[int], as_of: date | None = None, provider: str | None = None) -> None:
        self.asset_ids = sorted(asset_ids)
        self.as_of = as_of
        when = f" on or before {as_of}" if as_of else ""
        super().__init__(
            f"No market price{when} for asset(s) {self.asset_ids}",
            provider=provider,
        )


__all__ = [
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
    "SnapshotNotFoundError",
    "PriceLookupError",
    "PriceLookupTimeoutError",
    "PriceProviderUnavailableError",
    "PriceNotAvailableError",
]
