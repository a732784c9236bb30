"""
app/services/trip_query_service.py

Read side of the trip import engine.

Queries only see committed state. Driver matching resolves stored names
through the alias resolver at read time, so aliases registered after an
import still group that import's trips correctly.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date

from app.domain.errors import MalformedDateError
from app.domain.trip_import import (
    DriverDaySummary,
    ImportBatch,
    TripQueryFilter,
    TripRecord,
    TripStatus,
)
from app.repositories.base import TripStore
from app.services.driver_alias_resolver import DriverAliasResolver
from app.services.idempotency_ledger import IdempotencyLedger
from app.validators.trip_row_validator import parse_service_date


def _coerce_date(value: date | str) -> date:
    parsed = parse_service_date(value)
    if parsed is None:
        raise MalformedDateError(
            f"Invalid date format: {value!r}. Expected YYYY-MM-DD, MM/DD/YYYY or M/D/YYYY.",
            row_number=0,
            value=str(value),
        )
    return parsed


class TripQueryService:
    """
    Date, driver and batch lookups over committed trips.
    """

    def __init__(
        self,
        *,
        trip_store: TripStore,
        ledger: IdempotencyLedger,
        alias_resolver: DriverAliasResolver,
    ) -> None:
        self._trip_store = trip_store
        self._ledger = ledger
        self._alias_resolver = alias_resolver

    def get_actual_trips_by_date(
        self,
        service_date: date | str,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        return self._trip_store.find_by_date(_coerce_date(service_date), trip_filter)

    def get_actual_trips_by_driver_and_date(
        self,
        driver_name: str,
        service_date: date | str,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        canonical = self._alias_resolver.get_canonical_driver_name(driver_name)
        return [
            trip
            for trip in self.get_actual_trips_by_date(service_date, trip_filter)
            if self._alias_resolver.get_canonical_driver_name(trip.driver_name) == canonical
        ]

    def get_driver_summary_by_date(
        self,
        service_date: date | str,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[DriverDaySummary]:
        """
        Aggregate one day's trips per canonical driver, sorted by driver name.

        Miles and punctuality only count completed trips; a driver with no
        on-time samples reports 100 percent.
        """

        grouped: dict[str, list[TripRecord]] = defaultdict(list)
        for trip in self.get_actual_trips_by_date(service_date, trip_filter):
            grouped[self._alias_resolver.get_canonical_driver_name(trip.driver_name)].append(trip)

        summaries: list[DriverDaySummary] = []
        for driver_name in sorted(grouped):
            trips = grouped[driver_name]
            completed = [trip for trip in trips if trip.status == TripStatus.COMPLETED]
            on_time = sum(1 for trip in completed if trip.was_on_time is True)
            late = sum(1 for trip in completed if trip.was_on_time is False)
            samples = on_time + late
            summaries.append(
                DriverDaySummary(
                    driver_name=driver_name,
                    completed_trips=len(completed),
                    cancelled_trips=sum(1 for trip in trips if trip.status == TripStatus.CANCELLED),
                    no_show_trips=sum(1 for trip in trips if trip.status == TripStatus.NO_SHOW),
                    total_miles=round(sum(trip.miles_actual or 0.0 for trip in completed), 2),
                    on_time_count=on_time,
                    late_count=late,
                    on_time_percent=round(on_time * 100 / samples) if samples else 100,
                )
            )
        return summaries

    def get_imports(self, trip_filter: TripQueryFilter | None = None) -> list[ImportBatch]:
        return self._ledger.list_batches(trip_filter)

    def get_import(self, batch_id: uuid.UUID | str) -> ImportBatch | None:
        if isinstance(batch_id, str):
            try:
                batch_id = uuid.UUID(batch_id)
            except ValueError:
                return None
        return self._ledger.get_batch(batch_id)
