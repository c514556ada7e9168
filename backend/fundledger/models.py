# backend/fundledger/models.py
import enum
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint, Boolean, JSON, Integer, Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# COLUMN TYPES
# =============================================================================
# Money is stored with 2 decimals, units and NAV per unit with 6.
# Asset quantities and prices keep 8 decimals for fractional/crypto holdings.
# Floats are never used for any of these.

MoneyAmount = Numeric(20, 2)
UnitAmount = Numeric(24, 6)
NavAmount = Numeric(20, 6)
PriceAmount = Numeric(18, 8)


# =============================================================================
# ENUMS
# =============================================================================

class CashFlowType(str, enum.Enum):
    """
    Closed taxonomy of cash movements.

    Direction (inflow/outflow) is a business rule looked up in
    services/cash_flow/types.py, never inferred from the sign of an amount.
    """
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    FEE = "FEE"
    TAX = "TAX"
    ADJUSTMENT = "ADJUSTMENT"
    BUY_TRADE = "BUY_TRADE"
    SELL_TRADE = "SELL_TRADE"
    DEPOSIT_SETTLEMENT = "DEPOSIT_SETTLEMENT"
    DEPOSIT_CREATION = "DEPOSIT_CREATION"


class CashFlowStatus(str, enum.Enum):
    """
    Lifecycle of a ledger entry.

    State transitions:
        PENDING → COMPLETED
        PENDING/COMPLETED → CANCELLED (terminal, entry kept for audit)
    """
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class FlowDirection(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class FundUnitTransactionType(str, enum.Enum):
    SUBSCRIBE = "SUBSCRIBE"
    REDEEM = "REDEEM"


class TradeSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class DepositStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SETTLED = "SETTLED"


class AssetType(str, enum.Enum):
    STOCK = "STOCK"
    BOND = "BOND"
    ETF = "ETF"
    CRYPTO = "CRYPTO"
    COMMODITY = "COMMODITY"
    REAL_ESTATE = "REAL_ESTATE"
    OTHER = "OTHER"


class SnapshotGranularity(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


# =============================================================================
# ACCOUNTS & PORTFOLIOS
# =============================================================================

class Account(Base):
    """
    Owner of portfolios and, when is_investor is set, holder of fund units.
    """
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(320), unique=True, index=True, nullable=True)
    base_currency: Mapped[str] = mapped_column(String(3), default="VND")
    is_main_account: Mapped[bool] = mapped_column(Boolean, default=False)
    is_investor: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    portfolios: Mapped[list["Portfolio"]] = relationship(back_populates="owner")
    holdings: Mapped[list["InvestorHolding"]] = relationship(back_populates="account")


class Portfolio(Base):
    """
    A collection of assets and cash owned by an account.

    In fund mode (is_fund=True) ownership is unitized: investors hold units,
    nav_per_unit prices them, and total_outstanding_units always equals the
    sum of all investor holdings.
    """
    __tablename__ = "portfolios"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    name: Mapped[str] = mapped_column(String(200))
    base_currency: Mapped[str] = mapped_column(String(3), default="VND")
    funding_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # =========================================================================
    # FUND MODE
    # =========================================================================
    is_fund: Mapped[bool] = mapped_column(Boolean, default=False)
    nav_per_unit: Mapped[Decimal | None] = mapped_column(NavAmount, nullable=True)
    total_outstanding_units: Mapped[Decimal] = mapped_column(UnitAmount, default=Decimal("0"))
    number_of_investors: Mapped[int] = mapped_column(Integer, default=0)
    last_nav_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Set when a ledger correction changed the fund value after the last NAV refresh
    nav_is_stale: Mapped[bool] = mapped_column(Boolean, default=False)

    owner: Mapped["Account"] = relationship(back_populates="portfolios")
    cash_flows: Mapped[list["CashFlow"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan"
    )
    trades: Mapped[list["Trade"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan"
    )
    holdings: Mapped[list["InvestorHolding"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan"
    )
    deposits: Mapped[list["TermDeposit"]] = relationship(
        back_populates="portfolio", cascade="all, delete-orphan"
    )


# =============================================================================
# ASSETS & PRICES
# =============================================================================

class Asset(Base):
    """Tradable instrument. Prices arrive from an external market-data feed."""
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    symbol: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    asset_type: Mapped[AssetType] = mapped_column(Enum(AssetType), default=AssetType.STOCK)
    currency: Mapped[str] = mapped_column(String(3), default="VND")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    prices: Mapped[list["AssetPrice"]] = relationship(
        back_populates="asset", cascade="all, delete-orphan"
    )


class AssetPrice(Base):
    """
    Daily closing price of an asset.

    The market price of an asset as of a date is the latest row on or
    before that date.
    """
    __tablename__ = "asset_prices"
    __table_args__ = (
        UniqueConstraint("asset_id", "price_date", name="uq_asset_price_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), index=True)
    price_date: Mapped[date] = mapped_column(Date, index=True)
    price: Mapped[Decimal] = mapped_column(PriceAmount)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    asset: Mapped["Asset"] = relationship(back_populates="prices")


class Trade(Base):
    """
    Purchase or sale of an asset inside a portfolio.

    Every trade is paired with a BUY_TRADE / SELL_TRADE cash flow so the
    ledger cash balance reflects the cash spent or received.
    """
    __tablename__ = "trades"
    __table_args__ = (
        Index("ix_trade_portfolio_date", "portfolio_id", "trade_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey("assets.id"), index=True)
    side: Mapped[TradeSide] = mapped_column(Enum(TradeSide))
    quantity: Mapped[Decimal] = mapped_column(PriceAmount)
    price: Mapped[Decimal] = mapped_column(PriceAmount)
    fee: Mapped[Decimal] = mapped_column(MoneyAmount, default=Decimal("0"))
    trade_date: Mapped[date] = mapped_column(Date)
    cash_flow_id: Mapped[int | None] = mapped_column(
        ForeignKey("cash_flows.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    portfolio: Mapped["Portfolio"] = relationship(back_populates="trades")
    asset: Mapped["Asset"] = relationship()


class TermDeposit(Base):
    """
    Fixed-term bank deposit held by a portfolio.

    Opening a deposit moves the principal out of the cash balance through a
    DEPOSIT_CREATION entry; settling it brings principal plus the interest
    actually paid back through a DEPOSIT_SETTLEMENT entry. While active the
    principal counts towards the portfolio value.
    """
    __tablename__ = "term_deposits"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    bank_name: Mapped[str] = mapped_column(String(100))
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    principal: Mapped[Decimal] = mapped_column(MoneyAmount)
    # Annual rate in percent
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(8, 4), default=Decimal("0"))
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    status: Mapped[DepositStatus] = mapped_column(Enum(DepositStatus), default=DepositStatus.ACTIVE)
    actual_interest: Mapped[Decimal | None] = mapped_column(MoneyAmount, nullable=True)
    settlement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    creation_cash_flow_id: Mapped[int | None] = mapped_column(
        ForeignKey("cash_flows.id", ondelete="SET NULL"), nullable=True
    )
    settlement_cash_flow_id: Mapped[int | None] = mapped_column(
        ForeignKey("cash_flows.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    portfolio: Mapped["Portfolio"] = relationship(back_populates="deposits")


# =============================================================================
# CASH-FLOW LEDGER
# =============================================================================

class CashFlow(Base):
    """
    One typed cash movement of a portfolio.

    amount is always a positive magnitude; the type (or, for ADJUSTMENT,
    the explicit direction) determines whether it adds or removes cash.

    version is SQLAlchemy's optimistic concurrency counter: an UPDATE only
    succeeds if the row still carries the version that was read, so a
    concurrent edit and cancel of the same entry cannot both win.
    """
    __tablename__ = "cash_flows"
    __table_args__ = (
        Index("ix_cash_flow_portfolio_date", "portfolio_id", "flow_date"),
        Index("ix_cash_flow_portfolio_status", "portfolio_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    type: Mapped[CashFlowType] = mapped_column(Enum(CashFlowType))
    direction: Mapped[FlowDirection] = mapped_column(Enum(FlowDirection))
    amount: Mapped[Decimal] = mapped_column(MoneyAmount)
    currency: Mapped[str] = mapped_column(String(3))
    status: Mapped[CashFlowStatus] = mapped_column(Enum(CashFlowStatus), default=CashFlowStatus.COMPLETED)
    flow_date: Mapped[date] = mapped_column(Date, index=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    funding_source: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    portfolio: Mapped["Portfolio"] = relationship(back_populates="cash_flows")


# =============================================================================
# FUND UNITS
# =============================================================================

class InvestorHolding(Base):
    """
    Units held by one account in one fund.

    Every field is derived from the account's FundUnitTransactions and is
    rebuilt from scratch by the holdings recalculator.
    """
    __tablename__ = "investor_holdings"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "account_id", name="uq_holding_portfolio_account"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    total_units: Mapped[Decimal] = mapped_column(UnitAmount, default=Decimal("0"))
    avg_cost_per_unit: Mapped[Decimal] = mapped_column(NavAmount, default=Decimal("0"))
    total_investment: Mapped[Decimal] = mapped_column(MoneyAmount, default=Decimal("0"))
    realized_pnl: Mapped[Decimal] = mapped_column(MoneyAmount, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    portfolio: Mapped["Portfolio"] = relationship(back_populates="holdings")
    account: Mapped["Account"] = relationship(back_populates="holdings")
    transactions: Mapped[list["FundUnitTransaction"]] = relationship(
        back_populates="holding", cascade="all, delete-orphan"
    )


class FundUnitTransaction(Base):
    """
    One subscription (positive units) or redemption (negative units).

    amount = |units| × nav_per_unit. Voided transactions stay in the table
    for audit but are skipped when holdings are rebuilt.
    """
    __tablename__ = "fund_unit_transactions"
    __table_args__ = (
        Index("ix_fund_unit_tx_portfolio_created", "portfolio_id", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id"), index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), index=True)
    holding_id: Mapped[int] = mapped_column(ForeignKey("investor_holdings.id"), index=True)
    type: Mapped[FundUnitTransactionType] = mapped_column(Enum(FundUnitTransactionType))
    units: Mapped[Decimal] = mapped_column(UnitAmount)
    nav_per_unit: Mapped[Decimal] = mapped_column(NavAmount)
    amount: Mapped[Decimal] = mapped_column(MoneyAmount)
    transaction_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cash_flow_id: Mapped[int | None] = mapped_column(
        ForeignKey("cash_flows.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_voided: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    holding: Mapped["InvestorHolding"] = relationship(back_populates="transactions")


# =============================================================================
# SNAPSHOTS
# =============================================================================

class PortfolioSnapshot(Base):
    """
    Frozen state of a portfolio at a period boundary.

    Never updated in place. Corrections go through an explicit delete or a
    regenerate, which writes a new generation.
    """
    __tablename__ = "portfolio_snapshots"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "snapshot_date", "granularity", name="uq_portfolio_snapshot_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id", ondelete="CASCADE"), index=True)
    snapshot_date: Mapped[date] = mapped_column(Date, index=True)
    granularity: Mapped[SnapshotGranularity] = mapped_column(Enum(SnapshotGranularity))
    generation: Mapped[int] = mapped_column(Integer, default=1)
    total_value: Mapped[Decimal] = mapped_column(MoneyAmount)
    asset_value: Mapped[Decimal] = mapped_column(MoneyAmount)
    cash_balance: Mapped[Decimal] = mapped_column(MoneyAmount)
    nav_per_unit: Mapped[Decimal | None] = mapped_column(NavAmount, nullable=True)
    total_outstanding_units: Mapped[Decimal] = mapped_column(UnitAmount, default=Decimal("0"))
    # {asset_type: {"value": str, "percentage": str, "count": int}}
    asset_allocation: Mapped[dict] = mapped_column(JSON, default=dict)
    asset_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class PerformanceSnapshot(Base):
    """Period and cumulative return of a portfolio, keyed like PortfolioSnapshot."""
    __tablename__ = "performance_snapshots"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "snapshot_date", "granularity", name="uq_performance_snapshot_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id", ondelete="CASCADE"), index=True)
    snapshot_date: Mapped[date] = mapped_column(Date, index=True)
    granularity: Mapped[SnapshotGranularity] = mapped_column(Enum(SnapshotGranularity))
    generation: Mapped[int] = mapped_column(Integer, default=1)
    total_value: Mapped[Decimal] = mapped_column(MoneyAmount)
    net_cash_flow: Mapped[Decimal] = mapped_column(MoneyAmount, default=Decimal("0"))
    value_change: Mapped[Decimal] = mapped_column(MoneyAmount, default=Decimal("0"))
    # Percentages with 4 decimals, None for the first period or a zero base
    period_return: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    cumulative_return: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    nav_per_unit: Mapped[Decimal | None] = mapped_column(NavAmount, nullable=True)
    nav_return: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
