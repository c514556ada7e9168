# backend/fundledger/routers/snapshots.py
"""
Snapshot endpoints.

Snapshots are written once per (date, granularity). Creating over existing
ones is rejected with 409; use /regenerate to rewrite a range.
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fundledger.database import get_db
from fundledger.dependencies import get_portfolio_with_access_check, get_snapshot_service
from fundledger.middleware.rate_limit import RATE_LIMIT_BATCH, RATE_LIMIT_WRITE, limiter
from fundledger.models import PerformanceSnapshot, Portfolio, PortfolioSnapshot, SnapshotGranularity
from fundledger.schemas.pagination import PaginationMeta
from fundledger.schemas.snapshots import (
    PerformanceSnapshotResponse,
    PortfolioSnapshotResponse,
    SnapshotBatchResponse,
    SnapshotCreateRequest,
    SnapshotDeleteResponse,
    SnapshotListResponse,
    SnapshotStatisticsResponse,
    TimelinePointResponse,
)
from fundledger.services.constants import DEFAULT_PAGE_SIZE, MAX_LIST_LIMIT
from fundledger.services.snapshots import SnapshotService
from fundledger.services.snapshots.types import SnapshotBatchResult, SnapshotStatistics, TimelinePoint

router = APIRouter(
    prefix="/portfolios/{portfolio_id}",
    tags=["Snapshots"],
)

PortfolioAccess = Annotated[Portfolio, Depends(get_portfolio_with_access_check)]
Snapshots = Annotated[SnapshotService, Depends(get_snapshot_service)]


@router.post(
    "/snapshots",
    response_model=SnapshotBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create snapshots for a date range",
)
@limiter.limit(RATE_LIMIT_BATCH)
def create_snapshots(
        request: Request,
        data: SnapshotCreateRequest,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
) -> SnapshotBatchResult:
    """
    Snapshot the portfolio at every **granularity** boundary between
    **start_date** and **end_date**.

    **Errors:**
    - 409: A snapshot already exists for one of the dates (nothing written)
    - 400: Too many periods in one batch
    """
    return snapshots.create_portfolio_snapshots(
        db, portfolio.id, data.start_date, data.end_date, data.granularity
    )


@router.post(
    "/snapshots/regenerate",
    response_model=SnapshotBatchResponse,
    summary="Rewrite snapshots for a date range",
)
@limiter.limit(RATE_LIMIT_BATCH)
def regenerate_snapshots(
        request: Request,
        data: SnapshotCreateRequest,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
) -> SnapshotBatchResult:
    """Delete the range and recreate it with the next generation number."""
    return snapshots.regenerate_snapshots(
        db, portfolio.id, data.start_date, data.end_date, data.granularity
    )


@router.get(
    "/snapshots",
    response_model=SnapshotListResponse,
    summary="List snapshots",
)
def list_snapshots(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        granularity: SnapshotGranularity | None = Query(default=None),
        start_date: date | None = Query(default=None),
        end_date: date | None = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_LIST_LIMIT),
) -> SnapshotListResponse:
    result = snapshots.list_snapshots(
        db, portfolio.id, granularity=granularity, start_date=start_date, end_date=end_date,
        page=page, limit=limit,
    )
    return SnapshotListResponse(
        items=[PortfolioSnapshotResponse.model_validate(s) for s in result.items],
        pagination=PaginationMeta.create(total=result.total, page=result.page, limit=result.limit),
    )


@router.get(
    "/snapshots/latest",
    response_model=PortfolioSnapshotResponse,
    summary="Most recent snapshot",
)
def get_latest_snapshot(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        granularity: SnapshotGranularity | None = Query(default=None),
) -> PortfolioSnapshot:
    return snapshots.get_latest(db, portfolio.id, granularity=granularity)


@router.get(
    "/snapshots/timeline",
    response_model=list[TimelinePointResponse],
    summary="Value and NAV series",
)
def get_timeline(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        granularity: SnapshotGranularity = Query(default=SnapshotGranularity.DAILY),
        start_date: date | None = Query(default=None),
        end_date: date | None = Query(default=None),
) -> list[TimelinePoint]:
    return snapshots.get_timeline(
        db, portfolio.id, granularity=granularity, start_date=start_date, end_date=end_date
    )


@router.get(
    "/snapshots/statistics",
    response_model=SnapshotStatisticsResponse,
    summary="Snapshot statistics",
)
def get_statistics(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        granularity: SnapshotGranularity | None = Query(default=None),
) -> SnapshotStatistics:
    return snapshots.get_statistics(db, portfolio.id, granularity=granularity)


@router.get(
    "/performance-snapshots",
    response_model=list[PerformanceSnapshotResponse],
    summary="List performance snapshots",
)
def list_performance_snapshots(
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        granularity: SnapshotGranularity | None = Query(default=None),
        start_date: date | None = Query(default=None),
        end_date: date | None = Query(default=None),
) -> list[PerformanceSnapshot]:
    return snapshots.list_performance_snapshots(
        db, portfolio.id, granularity=granularity, start_date=start_date, end_date=end_date
    )


@router.delete(
    "/snapshots",
    response_model=SnapshotDeleteResponse,
    summary="Delete snapshots in a date range",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_snapshots_by_date_range(
        request: Request,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        start_date: date = Query(...),
        end_date: date = Query(...),
        granularity: SnapshotGranularity | None = Query(default=None),
) -> SnapshotDeleteResponse:
    deleted = snapshots.delete_snapshots_by_date_range(db, portfolio.id, start_date, end_date, granularity)
    return SnapshotDeleteResponse(portfolio_id=portfolio.id, deleted=deleted)


@router.delete(
    "/snapshots/{snapshot_date}",
    response_model=SnapshotDeleteResponse,
    summary="Delete the snapshots of one date",
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_snapshots_by_date(
        request: Request,
        snapshot_date: date,
        portfolio: PortfolioAccess,
        db: Annotated[Session, Depends(get_db)],
        snapshots: Snapshots,
        granularity: SnapshotGranularity | None = Query(default=None),
) -> SnapshotDeleteResponse:
    """
    **Errors:**
    - 404: No snapshot on that date
    """
    deleted = snapshots.delete_snapshots_by_date(db, portfolio.id, snapshot_date, granularity)
    return SnapshotDeleteResponse(portfolio_id=portfolio.id, deleted=deleted)
