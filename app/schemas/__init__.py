"""
app/schemas package marker.
"""

from app.schemas.trip_import import (
    DriverAliasResponse,
    ImportBatchResponse,
    ImportPreviewResponse,
    ImportResultResponse,
    TripResponse,
)

__all__ = [
    "DriverAliasResponse",
    "ImportBatchResponse",
    "ImportPreviewResponse",
    "ImportResultResponse",
    "TripResponse",
]
