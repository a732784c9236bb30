"""
app/domain package marker.
"""

from app.domain.trip_import import (
    BatchState,
    ImportBatch,
    ImportResult,
    PartitionContext,
    TripKey,
    TripQueryFilter,
    TripRecord,
)

__all__ = [
    "BatchState",
    "ImportBatch",
    "ImportResult",
    "PartitionContext",
    "TripKey",
    "TripQueryFilter",
    "TripRecord",
]
