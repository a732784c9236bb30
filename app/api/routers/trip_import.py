"""
app/api/routers/trip_import.py

Completed-trip import HTTP endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status

from app.api.dependencies import get_csv_upload, get_trip_import_service, get_trip_query_filter
from app.domain.errors import DuplicateFileError, MalformedFileError, TripPersistenceError, UnknownPartitionError
from app.domain.trip_import import ImportBatch, ImportResult, PartitionContext, TripQueryFilter
from app.schemas.trip_import import (
    ImportBatchResponse,
    ImportPreviewResponse,
    ImportResultResponse,
    ImportRowErrorResponse,
)
from app.services.trip_import_service import TripImportService

router = APIRouter(prefix="/trips/imports", tags=["trip-import"])


def _to_result_response(result: ImportResult) -> ImportResultResponse:
    return ImportResultResponse(
        success=result.success,
        state=result.state.value,
        file_hash=result.file_hash,
        batch_id=result.batch_id,
        opco_id=result.opco_id,
        broker_id=result.broker_id,
        broker_account_id=result.broker_account_id,
        expected_rows=result.expected_rows,
        imported_rows=result.imported_rows,
        skipped_rows=result.skipped_rows,
        error_rows=result.error_rows,
        accounted_rows=result.accounted_rows,
        missing_rows=result.missing_rows,
        is_complete=result.is_complete,
        errors=[
            ImportRowErrorResponse(row=error.row, message=error.message, code=error.code)
            for error in result.errors
        ],
        warnings=result.warnings,
        extracted_columns=result.extracted_columns,
        ignored_columns=result.ignored_columns,
        service_date_from=result.service_date_from,
        service_date_to=result.service_date_to,
    )


def _to_batch_response(batch: ImportBatch) -> ImportBatchResponse:
    return ImportBatchResponse(
        id=batch.id,
        file_name=batch.file_name,
        file_hash=batch.file_hash,
        file_size=batch.file_size,
        opco_id=batch.partition.opco_id,
        broker_id=batch.partition.broker_id,
        broker_account_id=batch.partition.broker_account_id,
        state=batch.state.value,
        received_at=batch.received_at,
        committed_at=batch.committed_at,
        expected_rows=batch.expected_rows,
        imported_rows=batch.imported_rows,
        skipped_rows=batch.skipped_rows,
        error_rows=batch.error_rows,
        accounted_rows=batch.accounted_rows,
        missing_rows=list(batch.missing_rows),
        is_complete=batch.is_complete,
        service_date_from=batch.service_date_from,
        service_date_to=batch.service_date_to,
        extracted_columns=list(batch.extracted_columns),
        ignored_columns=list(batch.ignored_columns),
    )


@router.post("", response_model=ImportResultResponse)
def import_trips(
    file: UploadFile = Depends(get_csv_upload),
    opco_id: str | None = Query(default=None, description="Operating company the file belongs to"),
    broker_id: str | None = Query(default=None, description="Broker the trips were funded by"),
    broker_account_id: str | None = Query(default=None, description="Broker account (contract)"),
    service: TripImportService = Depends(get_trip_import_service),
) -> ImportResultResponse:
    """
    Import one completed-trip export.

    A duplicate file answers 409 and an unresolvable partition 422; both
    carry the full result body as ``detail``.
    """

    try:
        content = file.file.read()
        result = service.import_csv(
            content,
            file_name=file.filename,
            partition=PartitionContext(
                opco_id=opco_id or "",
                broker_id=broker_id or "",
                broker_account_id=broker_account_id or "",
            ),
        )
    except MalformedFileError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except TripPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to persist imported trips.",
        ) from exc
    finally:
        file.file.close()

    response = _to_result_response(result)
    if not result.success:
        codes = {error.code for error in result.errors}
        if DuplicateFileError.code in codes:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=response.model_dump(mode="json"))
        if UnknownPartitionError.code in codes:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=response.model_dump(mode="json"),
            )
    return response


@router.post("/preview", response_model=ImportPreviewResponse)
def preview_trips(
    file: UploadFile = Depends(get_csv_upload),
    service: TripImportService = Depends(get_trip_import_service),
) -> ImportPreviewResponse:
    """
    Classify columns and sample allowlisted values without importing.
    """

    try:
        preview = service.preview_csv(file.file.read())
    except MalformedFileError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    finally:
        file.file.close()

    return ImportPreviewResponse(
        file_hash=preview.file_hash,
        total_rows=preview.total_rows,
        columns=preview.columns,
        extracted_columns=preview.extracted_columns,
        ignored_columns=preview.ignored_columns,
        sample_rows=preview.sample_rows,
        service_date_from=preview.service_date_from,
        service_date_to=preview.service_date_to,
        driver_names=preview.driver_names,
        vehicle_units=preview.vehicle_units,
        mobility_types=preview.mobility_types,
        already_imported=preview.already_imported,
    )


@router.get("", response_model=list[ImportBatchResponse])
def list_imports(
    trip_filter: TripQueryFilter = Depends(get_trip_query_filter),
    service: TripImportService = Depends(get_trip_import_service),
) -> list[ImportBatchResponse]:
    return [_to_batch_response(batch) for batch in service.get_imports(trip_filter)]


@router.get("/{batch_id}", response_model=ImportBatchResponse)
def get_import(
    batch_id: str,
    service: TripImportService = Depends(get_trip_import_service),
) -> ImportBatchResponse:
    batch = service.get_import(batch_id)
    if batch is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import batch {batch_id} not found.",
        )
    return _to_batch_response(batch)
