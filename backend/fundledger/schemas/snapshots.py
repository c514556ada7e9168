# backend/fundledger/schemas/snapshots.py
"""Pydantic schemas for portfolio and performance snapshots."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fundledger.models import SnapshotGranularity
from fundledger.schemas.pagination import PaginationMeta
from fundledger.schemas.validators import validate_date_range


class SnapshotCreateRequest(BaseModel):
    start_date: date
    end_date: date
    granularity: SnapshotGranularity = Field(default=SnapshotGranularity.DAILY)

    @model_validator(mode='after')
    def check_range(self):
        validate_date_range(self.start_date, self.end_date)
        return self


class SnapshotBatchResponse(BaseModel):
    portfolio_id: int
    granularity: SnapshotGranularity
    start_date: date
    end_date: date
    requested: int = Field(..., description="Period boundaries in the range")
    created: int = Field(..., description="Snapshots written")
    generation: int
    cancelled: bool

    model_config = ConfigDict(from_attributes=True)


class PortfolioSnapshotResponse(BaseModel):
    id: int
    portfolio_id: int
    snapshot_date: date
    granularity: SnapshotGranularity
    generation: int
    total_value: Decimal
    asset_value: Decimal
    cash_balance: Decimal
    nav_per_unit: Decimal | None
    total_outstanding_units: Decimal
    asset_allocation: dict
    asset_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SnapshotListResponse(BaseModel):
    items: list[PortfolioSnapshotResponse]
    pagination: PaginationMeta


class TimelinePointResponse(BaseModel):
    snapshot_date: date
    total_value: Decimal
    cash_balance: Decimal
    nav_per_unit: Decimal | None

    model_config = ConfigDict(from_attributes=True)


class SnapshotStatisticsResponse(BaseModel):
    portfolio_id: int
    granularity: SnapshotGranularity | None
    count: int
    first_date: date | None
    last_date: date | None
    min_total_value: Decimal | None
    max_total_value: Decimal | None
    avg_total_value: Decimal | None
    latest_total_value: Decimal | None
    latest_nav_per_unit: Decimal | None

    model_config = ConfigDict(from_attributes=True)


class PerformanceSnapshotResponse(BaseModel):
    id: int
    portfolio_id: int
    snapshot_date: date
    granularity: SnapshotGranularity
    generation: int
    total_value: Decimal
    net_cash_flow: Decimal
    value_change: Decimal
    period_return: Decimal | None = Field(..., description="Percent, null for the first period")
    cumulative_return: Decimal | None
    nav_per_unit: Decimal | None
    nav_return: Decimal | None

    model_config = ConfigDict(from_attributes=True)


class SnapshotDeleteResponse(BaseModel):
    portfolio_id: int
    deleted: int
