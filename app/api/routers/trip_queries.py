"""
app/api/routers/trip_queries.py

Read-only trip and driver alias endpoints.
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import get_trip_import_service, get_trip_query_filter
from app.domain.errors import MalformedDateError
from app.domain.trip_import import TripQueryFilter
from app.schemas.trip_import import (
    CanonicalDriverNameResponse,
    DriverAliasRequest,
    DriverAliasResponse,
    DriverDaySummaryResponse,
    TripResponse,
)
from app.services.trip_import_service import TripImportService

router = APIRouter(tags=["trips"])


def _bad_date(exc: MalformedDateError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


@router.get("/trips", response_model=list[TripResponse])
def list_trips(
    service_date: str = Query(..., alias="date", description="Service date, YYYY-MM-DD or MM/DD/YYYY"),
    trip_filter: TripQueryFilter = Depends(get_trip_query_filter),
    service: TripImportService = Depends(get_trip_import_service),
) -> list[TripResponse]:
    try:
        trips = service.get_actual_trips_by_date(service_date, trip_filter)
    except MalformedDateError as exc:
        raise _bad_date(exc) from exc
    return [TripResponse(**asdict(trip)) for trip in trips]


@router.get("/trips/by-driver", response_model=list[TripResponse])
def list_trips_by_driver(
    driver: str = Query(..., min_length=1, description="Driver name or any registered alias"),
    service_date: str = Query(..., alias="date", description="Service date, YYYY-MM-DD or MM/DD/YYYY"),
    trip_filter: TripQueryFilter = Depends(get_trip_query_filter),
    service: TripImportService = Depends(get_trip_import_service),
) -> list[TripResponse]:
    try:
        trips = service.get_actual_trips_by_driver_and_date(driver, service_date, trip_filter)
    except MalformedDateError as exc:
        raise _bad_date(exc) from exc
    return [TripResponse(**asdict(trip)) for trip in trips]


@router.get("/trips/driver-summary", response_model=list[DriverDaySummaryResponse])
def driver_summary(
    service_date: str = Query(..., alias="date", description="Service date, YYYY-MM-DD or MM/DD/YYYY"),
    trip_filter: TripQueryFilter = Depends(get_trip_query_filter),
    service: TripImportService = Depends(get_trip_import_service),
) -> list[DriverDaySummaryResponse]:
    """
    Per-driver totals for one day, grouped by canonical driver name.
    """

    try:
        summaries = service.get_driver_summary_by_date(service_date, trip_filter)
    except MalformedDateError as exc:
        raise _bad_date(exc) from exc
    return [DriverDaySummaryResponse(**asdict(summary)) for summary in summaries]


@router.get("/drivers/aliases", response_model=list[DriverAliasResponse])
def list_driver_aliases(
    service: TripImportService = Depends(get_trip_import_service),
) -> list[DriverAliasResponse]:
    return [
        DriverAliasResponse(canonical_name=entry.canonical, aliases=list(entry.aliases))
        for entry in service.get_all_driver_aliases()
    ]


@router.get("/drivers/aliases/{name}", response_model=DriverAliasResponse)
def get_driver_aliases(
    name: str,
    service: TripImportService = Depends(get_trip_import_service),
) -> DriverAliasResponse:
    return DriverAliasResponse(
        canonical_name=service.get_canonical_driver_name(name),
        aliases=service.get_driver_aliases(name),
    )


@router.post("/drivers/aliases", response_model=DriverAliasResponse, status_code=status.HTTP_201_CREATED)
def add_driver_alias(
    payload: DriverAliasRequest,
    service: TripImportService = Depends(get_trip_import_service),
) -> DriverAliasResponse:
    try:
        canonical = service.add_driver_alias(payload.canonical_name, payload.alias)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return DriverAliasResponse(canonical_name=canonical, aliases=service.get_driver_aliases(canonical))


@router.get("/drivers/canonical", response_model=CanonicalDriverNameResponse)
def get_canonical_driver_name(
    name: str = Query(..., min_length=1),
    service: TripImportService = Depends(get_trip_import_service),
) -> CanonicalDriverNameResponse:
    return CanonicalDriverNameResponse(name=name, canonical_name=service.get_canonical_driver_name(name))
