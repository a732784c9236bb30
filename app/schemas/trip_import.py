"""
app/schemas/trip_import.py

Request and response schemas for trip import endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, Field


class ImportRowErrorResponse(BaseModel):
    """
    One row-level (or, with row 0, batch-level) error.
    """

    row: int = Field(..., ge=0)
    message: str
    code: str | None = None


class ImportResultResponse(BaseModel):
    """
    API response model for one import call.
    """

    success: bool
    state: str
    file_hash: str
    batch_id: uuid.UUID | None = None
    opco_id: str
    broker_id: str
    broker_account_id: str
    expected_rows: int = Field(..., ge=0)
    imported_rows: int = Field(..., ge=0)
    skipped_rows: int = Field(..., ge=0)
    error_rows: int = Field(..., ge=0)
    accounted_rows: int = Field(..., ge=0)
    missing_rows: list[int] = Field(default_factory=list)
    is_complete: bool
    errors: list[ImportRowErrorResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    extracted_columns: list[str] = Field(default_factory=list)
    ignored_columns: list[str] = Field(default_factory=list)
    service_date_from: date | None = None
    service_date_to: date | None = None


class ImportPreviewResponse(BaseModel):
    """
    Dry-run classification of an export file.
    """

    file_hash: str
    total_rows: int = Field(..., ge=0)
    columns: list[str]
    extracted_columns: list[str]
    ignored_columns: list[str]
    sample_rows: list[dict[str, str]]
    service_date_from: date | None = None
    service_date_to: date | None = None
    driver_names: list[str]
    vehicle_units: list[str]
    mobility_types: list[str]
    already_imported: bool


class ImportBatchResponse(BaseModel):
    id: uuid.UUID
    file_name: str | None = None
    file_hash: str
    file_size: int = Field(..., ge=0)
    opco_id: str
    broker_id: str
    broker_account_id: str
    state: str
    received_at: datetime
    committed_at: datetime | None = None
    expected_rows: int
    imported_rows: int
    skipped_rows: int
    error_rows: int
    accounted_rows: int
    missing_rows: list[int] = Field(default_factory=list)
    is_complete: bool
    service_date_from: date | None = None
    service_date_to: date | None = None
    extracted_columns: list[str] = Field(default_factory=list)
    ignored_columns: list[str] = Field(default_factory=list)


class TripResponse(BaseModel):
    """
    API response model for one committed trip.
    """

    id: uuid.UUID
    import_batch_id: uuid.UUID
    trip_id: str
    service_date: date
    opco_id: str
    broker_id: str
    broker_account_id: str
    driver_name: str
    driver_name_raw: str
    vehicle_unit: str | None = None
    mobility_type: str
    trip_type: str | None = None
    routed_distance: float | None = None
    miles_actual: float | None = None
    sched_pickup_time: time | None = None
    appointment_time: time | None = None
    actual_pickup_arrive: time | None = None
    actual_pickup_perform: time | None = None
    actual_dropoff_arrive: time | None = None
    actual_dropoff_perform: time | None = None
    status: str
    is_standing: bool
    is_will_call: bool
    was_on_time: bool | None = None


class DriverDaySummaryResponse(BaseModel):
    driver_name: str
    completed_trips: int = Field(..., ge=0)
    cancelled_trips: int = Field(..., ge=0)
    no_show_trips: int = Field(..., ge=0)
    total_miles: float = Field(..., ge=0)
    on_time_count: int = Field(..., ge=0)
    late_count: int = Field(..., ge=0)
    on_time_percent: int = Field(..., ge=0, le=100)


class DriverAliasRequest(BaseModel):
    """
    Request body for registering a driver alias.
    """

    canonical_name: str = Field(..., min_length=1)
    alias: str = Field(..., min_length=1)


class DriverAliasResponse(BaseModel):
    canonical_name: str
    aliases: list[str]


class CanonicalDriverNameResponse(BaseModel):
    name: str
    canonical_name: str


class HealthResponse(BaseModel):
    status: str
    store_backend: str
