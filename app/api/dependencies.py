"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import File, HTTPException, Query, Request, UploadFile, status

from app.domain.trip_import import TripQueryFilter
from app.services.trip_import_service import TripImportService

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_csv_filename = filename.endswith(".csv")
    is_csv_content_type = content_type in CSV_CONTENT_TYPES

    if not is_csv_filename and not is_csv_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed.",
        )

    return file


def get_trip_import_service(request: Request) -> TripImportService:
    """
    Return the service instance built for this application.
    """

    return request.app.state.trip_import_service


def get_trip_query_filter(
    opco_id: str | None = Query(default=None, description="Operating company filter"),
    broker_id: str | None = Query(default=None, description="Broker filter"),
    broker_account_id: str | None = Query(default=None, description="Broker account filter"),
) -> TripQueryFilter:
    return TripQueryFilter(
        opco_id=opco_id or None,
        broker_id=broker_id or None,
        broker_account_id=broker_account_id or None,
    )
