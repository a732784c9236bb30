"""
app/validators/trip_row_validator.py

Row-level validation and type parsing for completed-trip imports.

The validator only ever sees the allowlisted cells of a row (see
``ColumnClassifier.extract``); it has no access to ignored columns.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from app.domain.errors import MalformedDateError, MalformedRowError
from app.domain.trip_import import MobilityType, NormalizedTripRow, TripStatus, TripType

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%m/%d/%Y",
)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_US_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_CLOCK_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_AMPM_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)$", re.IGNORECASE)

MOBILITY_SYNONYMS: dict[str, str] = {
    "amb": MobilityType.AMBULATORY,
    "ambulatory": MobilityType.AMBULATORY,
    "walker": MobilityType.AMBULATORY,
    "wc": MobilityType.WHEELCHAIR,
    "w/c": MobilityType.WHEELCHAIR,
    "wheelchair": MobilityType.WHEELCHAIR,
    "wheel chair": MobilityType.WHEELCHAIR,
    "str": MobilityType.STRETCHER,
    "stretcher": MobilityType.STRETCHER,
    "gurney": MobilityType.STRETCHER,
}

TRUTHY_VALUES = {"1", "true", "yes", "y"}

_TIME_COLUMNS: tuple[str, ...] = (
    "sched_pickup_time",
    "appointment_time",
    "actual_pickup_arrive",
    "actual_pickup_perform",
    "actual_dropoff_arrive",
    "actual_dropoff_perform",
)


def parse_service_date(value: Any) -> date | None:
    """
    Parse ``YYYY-MM-DD``, ``MM/DD/YYYY`` or ``M/D/YYYY``; return None otherwise.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return None

    raw = str(value).strip()
    if not (_ISO_DATE.match(raw) or _US_DATE.match(raw)):
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def parse_clock_time(value: str | None) -> time | None:
    """
    Parse ``H:MM``, ``HH:MM:SS`` or ``H:MM AM/PM``; return None otherwise.
    """

    if value is None or not value.strip():
        return None
    raw = value.strip()

    match = _CLOCK_TIME.match(raw)
    if match:
        hours, minutes, seconds = int(match[1]), int(match[2]), int(match[3] or 0)
    else:
        match = _AMPM_TIME.match(raw)
        if not match:
            return None
        hours, minutes, seconds = int(match[1]), int(match[2]), int(match[3] or 0)
        meridiem = match[4].upper()
        if hours < 1 or hours > 12:
            return None
        if meridiem == "PM" and hours < 12:
            hours += 12
        if meridiem == "AM" and hours == 12:
            hours = 0

    try:
        return time(hours, minutes, seconds)
    except ValueError:
        return None


def normalize_mobility_type(value: str | None) -> tuple[str, bool]:
    """
    Map a vendor mobility value onto the closed vocabulary.

    Returns ``(value, recognized)``; blank defaults to ambulatory and
    unrecognized values are passed through lowercased.
    """

    if value is None or not value.strip():
        return MobilityType.AMBULATORY, True
    key = " ".join(value.strip().lower().split())
    mapped = MOBILITY_SYNONYMS.get(key)
    if mapped is not None:
        return mapped, True
    return key, False


class TripRowValidator:
    """
    Validates and parses the allowlisted cells of one trip row.
    """

    def __init__(self, *, on_time_window_minutes: int = 15) -> None:
        self._on_time_window_minutes = max(0, on_time_window_minutes)

    def is_completely_empty_row(self, values: Any) -> bool:
        """
        Return True when every cell of the raw row is empty or whitespace.
        """

        if isinstance(values, Mapping):
            values = list(values.values())
        return all(self._is_blank(value) for value in values)

    def validate_row(
        self,
        *,
        mapped_row: Mapping[str, str | None],
        row_number: int,
    ) -> NormalizedTripRow:
        """
        Parse one mapped row or raise a row-level error.
        """

        missing = [
            column
            for column in ("trip_id", "service_date", "driver_name")
            if self._is_blank(mapped_row.get(column))
        ]
        if missing:
            raise MalformedRowError(
                "Missing required field(s): " + ", ".join(missing) + ".",
                row_number=row_number,
                column=missing[0],
            )

        raw_date = str(mapped_row["service_date"]).strip()
        service_date = parse_service_date(raw_date)
        if service_date is None:
            raise MalformedDateError(
                f"Invalid date format: {raw_date!r}. Expected YYYY-MM-DD, MM/DD/YYYY or M/D/YYYY.",
                row_number=row_number,
                column="service_date",
                value=raw_date,
            )

        warnings: list[str] = []

        mobility_type, recognized = normalize_mobility_type(mapped_row.get("mobility_type"))
        if not recognized:
            warnings.append(f"Unrecognized mobility type {mobility_type!r} kept as-is.")

        times: dict[str, time | None] = {}
        for column in _TIME_COLUMNS:
            raw_value = mapped_row.get(column)
            parsed = parse_clock_time(raw_value)
            if parsed is None and not self._is_blank(raw_value):
                warnings.append(f"Unparseable time in {column}: {str(raw_value).strip()!r}.")
            times[column] = parsed

        routed_distance = self._parse_distance(mapped_row.get("routed_distance"), "routed_distance", warnings)
        distance = self._parse_distance(mapped_row.get("distance"), "distance", warnings)

        trip_type = self._parse_trip_type(mapped_row.get("trip_type"))
        status = self._parse_status(mapped_row.get("status"))
        is_will_call = self._is_truthy(mapped_row.get("will_call")) or trip_type == TripType.WILL_CALL

        scheduled = times["sched_pickup_time"] or times["appointment_time"]
        actual = times["actual_pickup_arrive"] or times["actual_pickup_perform"]

        return NormalizedTripRow(
            row_number=row_number,
            trip_id=str(mapped_row["trip_id"]).strip(),
            service_date=service_date,
            driver_name_raw=str(mapped_row["driver_name"]).strip(),
            vehicle_unit=self._parse_optional_string(mapped_row.get("vehicle_unit")),
            mobility_type=mobility_type,
            mobility_type_recognized=recognized,
            trip_type=trip_type,
            routed_distance=routed_distance,
            miles_actual=routed_distance if routed_distance is not None else distance,
            sched_pickup_time=times["sched_pickup_time"],
            appointment_time=times["appointment_time"],
            actual_pickup_arrive=times["actual_pickup_arrive"],
            actual_pickup_perform=times["actual_pickup_perform"],
            actual_dropoff_arrive=times["actual_dropoff_arrive"],
            actual_dropoff_perform=times["actual_dropoff_perform"],
            status=status,
            is_standing=self._is_truthy(mapped_row.get("standing")),
            is_will_call=is_will_call,
            was_on_time=self._compute_on_time(scheduled, actual),
            warnings=tuple(warnings),
        )

    def _compute_on_time(self, scheduled: time | None, actual: time | None) -> bool | None:
        if scheduled is None or actual is None:
            return None
        scheduled_minutes = scheduled.hour * 60 + scheduled.minute
        actual_minutes = actual.hour * 60 + actual.minute
        return actual_minutes <= scheduled_minutes + self._on_time_window_minutes

    def _parse_distance(self, value: str | None, column: str, warnings: list[str]) -> float | None:
        if self._is_blank(value):
            return None
        raw = str(value).strip()
        try:
            parsed = float(Decimal(raw))
        except (InvalidOperation, ValueError):
            warnings.append(f"Unparseable number in {column}: {raw!r}.")
            return None
        if not math.isfinite(parsed):
            warnings.append(f"Unparseable number in {column}: {raw!r}.")
            return None
        if parsed < 0:
            warnings.append(f"Negative distance in {column}: {raw!r}.")
            return None
        return parsed

    @staticmethod
    def _parse_trip_type(value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        initial = value.strip()[0].upper()
        if initial == TripType.APPOINTMENT:
            return TripType.APPOINTMENT
        if initial == TripType.WILL_CALL:
            return TripType.WILL_CALL
        return None

    @staticmethod
    def _parse_status(value: str | None) -> str:
        if value is None or not value.strip():
            return TripStatus.COMPLETED
        lowered = value.strip().lower()
        if "cancel" in lowered:
            return TripStatus.CANCELLED
        if "no" in lowered and "show" in lowered:
            return TripStatus.NO_SHOW
        return TripStatus.COMPLETED

    def _is_truthy(self, value: str | None) -> bool:
        if self._is_blank(value):
            return False
        return str(value).strip().lower() in TRUTHY_VALUES

    def _parse_optional_string(self, value: str | None) -> str | None:
        if self._is_blank(value):
            return None
        return str(value).strip()

    @staticmethod
    def _is_blank(value: Any) -> bool:
        if value is None:
            return True
        return str(value).strip() == ""
