"""
app/mappers/allowlist.py

Allowlist column classifier for completed-trip exports.

Only headers listed in ``ALLOWLIST_SPEC`` are ever read. Every other column,
whether a known PHI field (patient name, phone, DOB, address, SSN, email,
insurance ids) or a vendor column nobody has seen before, is classified as
ignored. Matching is an exact lookup on the normalized header; there is no
fuzzy or keyword matching, so tolerating a new vendor header is an additive
edit to the table below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

# Canonical field -> accepted literal header strings.
ALLOWLIST_SPEC: dict[str, tuple[str, ...]] = {
    "trip_id": ("Trip Id", "TripID", "Trip_ID", "ID"),
    "service_date": ("Date", "Service Date", "Trip Date"),
    "driver_name": ("Driver", "Driver Name", "Driver_Name"),
    "vehicle_unit": ("Vehicle", "Vehicle Unit", "Unit"),
    "mobility_type": ("Mobility Type", "Type", "Space"),
    "trip_type": ("Trip Type",),
    "sched_pickup_time": ("Req Pickup", "Req_Pickup", "Scheduled Pickup", "Pickup Time"),
    "appointment_time": ("Appointment", "Appointment Time", "Appt"),
    "actual_pickup_arrive": ("Pickup Arrive", "Pickup_Arrive", "Actual Pickup Arrive"),
    "actual_pickup_perform": ("Pickup Perform", "Pickup_Perform", "Actual Pickup Perform"),
    "actual_dropoff_arrive": ("Dropoff Arrive", "Dropoff_Arrive", "Actual Dropoff Arrive"),
    "actual_dropoff_perform": ("Dropoff Perform", "Dropoff_Perform", "Actual Dropoff Perform"),
    "routed_distance": ("Routed Distance", "Routed_Distance"),
    "distance": ("Distance", "Miles", "Import Distance"),
    "status": ("Status", "Trip Status"),
    "standing": ("Standing",),
    "will_call": ("Will Call", "Will_Call"),
}

REQUIRED_FIELDS: tuple[str, ...] = ("trip_id", "service_date", "driver_name")


def normalize_header(header: str) -> str:
    """
    Normalize a column name for exact table lookup.
    """

    return "".join(ch for ch in header.strip().lower() if ch.isalnum())


def build_header_lookup(spec: Mapping[str, Sequence[str]]) -> dict[str, str]:
    """
    Flatten the allowlist into ``normalized header -> canonical field``.

    Raises ValueError when one normalized header would map to two fields,
    which would make classification ambiguous.
    """

    lookup: dict[str, str] = {}
    for canonical_field, headers in spec.items():
        for candidate in (canonical_field, *headers):
            key = normalize_header(candidate)
            if not key:
                continue
            existing = lookup.get(key)
            if existing is not None and existing != canonical_field:
                raise ValueError(
                    f"Allowlist header {candidate!r} maps to both {existing!r} and {canonical_field!r}."
                )
            lookup[key] = canonical_field
    return lookup


@dataclass(frozen=True)
class ColumnClassification:
    """
    Result of classifying one header row.
    """

    extracted_columns: tuple[str, ...]
    ignored_columns: tuple[str, ...]
    canonical_to_index: dict[str, int] = field(default_factory=dict)
    duplicate_columns: tuple[str, ...] = ()

    @property
    def missing_required(self) -> tuple[str, ...]:
        return tuple(name for name in REQUIRED_FIELDS if name not in self.canonical_to_index)


class ColumnClassifier:
    """
    Splits raw headers into extracted (allowlisted) and ignored columns.
    """

    def __init__(self, *, spec: Mapping[str, Sequence[str]] | None = None) -> None:
        self._lookup = build_header_lookup(spec or ALLOWLIST_SPEC)

    def classify(self, headers: Sequence[str]) -> ColumnClassification:
        extracted: list[str] = []
        ignored: list[str] = []
        duplicates: list[str] = []
        canonical_to_index: dict[str, int] = {}

        for index, header in enumerate(headers):
            canonical_field = self._lookup.get(normalize_header(header or ""))
            if canonical_field is None:
                ignored.append(header)
                continue
            if canonical_field in canonical_to_index:
                # First matching column owns the field.
                duplicates.append(header)
                ignored.append(header)
                continue
            canonical_to_index[canonical_field] = index
            extracted.append(header)

        return ColumnClassification(
            extracted_columns=tuple(extracted),
            ignored_columns=tuple(ignored),
            canonical_to_index=canonical_to_index,
            duplicate_columns=tuple(duplicates),
        )

    def canonical_field_for(self, header: str) -> str | None:
        return self._lookup.get(normalize_header(header))

    @staticmethod
    def extract(
        values: Sequence[str],
        classification: ColumnClassification,
    ) -> dict[str, str | None]:
        """
        Read only the allowlisted cells of one raw row.
        """

        row: dict[str, str | None] = {}
        for canonical_field, index in classification.canonical_to_index.items():
            row[canonical_field] = values[index] if index < len(values) else None
        return row
