"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.actual_trip import ActualTripRecord
from db.models.driver_alias import DriverAliasRecord
from db.models.trip_import_batch import TripImportBatchRecord

__all__ = [
    "ActualTripRecord",
    "DriverAliasRecord",
    "TripImportBatchRecord",
]
