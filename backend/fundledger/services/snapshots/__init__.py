# backend/fundledger/services/snapshots/__init__.py
"""Point-in-time portfolio and performance snapshots."""

from fundledger.services.snapshots.service import SnapshotService, parse_granularity
from fundledger.services.snapshots.types import (
    CancellationToken,
    SnapshotBatchResult,
    SnapshotPage,
    SnapshotStatistics,
    TimelinePoint,
)

__all__ = [
    "SnapshotService",
    "parse_granularity",
    "CancellationToken",
    "SnapshotBatchResult",
    "SnapshotPage",
    "SnapshotStatistics",
    "TimelinePoint",
]
