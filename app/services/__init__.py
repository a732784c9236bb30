"""
app/services package marker.
"""

from app.services.driver_alias_resolver import DriverAliasResolver, normalize_driver_name
from app.services.idempotency_ledger import IdempotencyLedger, compute_file_hash
from app.services.trip_import_service import TripImportService, build_trip_import_service
from app.services.trip_query_service import TripQueryService

__all__ = [
    "DriverAliasResolver",
    "normalize_driver_name",
    "IdempotencyLedger",
    "compute_file_hash",
    "TripImportService",
    "build_trip_import_service",
    "TripQueryService",
]
