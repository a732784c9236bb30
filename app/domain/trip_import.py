"""
app/domain/trip_import.py

Domain models used by the completed-trip import flow.

Every type here is PHI-free by construction: the only attributes a trip can
carry are the allowlisted canonical fields declared in
``app.mappers.allowlist.ALLOWLIST_SPEC`` plus partition and provenance data.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Mapping

from app.domain.errors import InvalidBatchTransitionError


class MobilityType:
    AMBULATORY = "ambulatory"
    WHEELCHAIR = "wheelchair"
    STRETCHER = "stretcher"


class TripStatus:
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class TripType:
    APPOINTMENT = "A"
    WILL_CALL = "W"


class BatchState(str, Enum):
    """
    Lifecycle of one import attempt.
    """

    RECEIVED = "received"
    HASH_REJECTED = "hash_rejected"
    PARTITION_REJECTED = "partition_rejected"
    VALIDATING = "validating"
    COMMITTED = "committed"

    @property
    def is_terminal(self) -> bool:
        return not _ALLOWED_TRANSITIONS[self]

    def transition(self, target: "BatchState") -> "BatchState":
        """
        Return ``target`` when the move is legal, otherwise raise.
        """

        if target not in _ALLOWED_TRANSITIONS[self]:
            raise InvalidBatchTransitionError(
                f"Illegal import batch transition {self.value} -> {target.value}."
            )
        return target


_ALLOWED_TRANSITIONS: dict[BatchState, frozenset[BatchState]] = {
    BatchState.RECEIVED: frozenset(
        {BatchState.HASH_REJECTED, BatchState.PARTITION_REJECTED, BatchState.VALIDATING}
    ),
    BatchState.VALIDATING: frozenset({BatchState.COMMITTED}),
    BatchState.HASH_REJECTED: frozenset(),
    BatchState.PARTITION_REJECTED: frozenset(),
    BatchState.COMMITTED: frozenset(),
}


@dataclass(frozen=True)
class PartitionContext:
    """
    Operating company + funding-source contract a file is imported under.
    """

    opco_id: str
    broker_id: str
    broker_account_id: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PartitionContext":
        """
        Build from a loose mapping accepting snake_case or camelCase keys.
        """

        def pick(*keys: str) -> str:
            for key in keys:
                value = raw.get(key)
                if value is not None:
                    return str(value)
            return ""

        return cls(
            opco_id=pick("opco_id", "opcoId"),
            broker_id=pick("broker_id", "brokerId"),
            broker_account_id=pick("broker_account_id", "brokerAccountId"),
        )


@dataclass(frozen=True)
class TripKey:
    """
    Composite uniqueness key of a committed trip.
    """

    opco_id: str
    broker_account_id: str
    service_date: date
    trip_id: str


@dataclass(frozen=True)
class NormalizedTripRow:
    """
    Typed row produced by the row validator, before partition and driver resolution.
    """

    row_number: int
    trip_id: str
    service_date: date
    driver_name_raw: str
    vehicle_unit: str | None
    mobility_type: str
    mobility_type_recognized: bool
    trip_type: str | None
    routed_distance: float | None
    miles_actual: float | None
    sched_pickup_time: time | None
    appointment_time: time | None
    actual_pickup_arrive: time | None
    actual_pickup_perform: time | None
    actual_dropoff_arrive: time | None
    actual_dropoff_perform: time | None
    status: str
    is_standing: bool
    is_will_call: bool
    was_on_time: bool | None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class TripRecord:
    """
    Committed, PHI-free trip.
    """

    trip_id: str
    service_date: date
    opco_id: str
    broker_id: str
    broker_account_id: str
    driver_name: str
    driver_name_raw: str
    vehicle_unit: str | None
    mobility_type: str
    trip_type: str | None
    routed_distance: float | None
    miles_actual: float | None
    sched_pickup_time: time | None
    appointment_time: time | None
    actual_pickup_arrive: time | None
    actual_pickup_perform: time | None
    actual_dropoff_arrive: time | None
    actual_dropoff_perform: time | None
    status: str
    is_standing: bool
    is_will_call: bool
    was_on_time: bool | None
    import_batch_id: uuid.UUID
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> TripKey:
        return TripKey(
            opco_id=self.opco_id,
            broker_account_id=self.broker_account_id,
            service_date=self.service_date,
            trip_id=self.trip_id,
        )

    @property
    def partition(self) -> PartitionContext:
        return PartitionContext(
            opco_id=self.opco_id,
            broker_id=self.broker_id,
            broker_account_id=self.broker_account_id,
        )


class RowOutcomeKind:
    IMPORTED = "imported"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class RowOutcome:
    """
    Per-row result; the multiset of outcomes backs the completeness proof.
    """

    row_number: int
    kind: str
    reason: str | None = None
    code: str | None = None
    record: TripRecord | None = None

    @classmethod
    def imported(cls, row_number: int, record: TripRecord) -> "RowOutcome":
        return cls(row_number=row_number, kind=RowOutcomeKind.IMPORTED, record=record)

    @classmethod
    def skipped(cls, row_number: int, reason: str) -> "RowOutcome":
        return cls(row_number=row_number, kind=RowOutcomeKind.SKIPPED, reason=reason)

    @classmethod
    def error(cls, row_number: int, reason: str, code: str) -> "RowOutcome":
        return cls(row_number=row_number, kind=RowOutcomeKind.ERROR, reason=reason, code=code)


@dataclass(frozen=True)
class ImportRowError:
    """
    One row-level error reported back to the caller.
    """

    row: int
    message: str
    code: str | None = None


@dataclass(frozen=True)
class CompletenessProof:
    """
    Independent re-derivation of a batch's row accounting.
    """

    expected_rows: int
    imported_rows: int
    skipped_rows: int
    error_rows: int
    accounted_rows: int
    missing_rows: tuple[int, ...]
    duplicate_rows: tuple[int, ...]
    is_complete: bool


@dataclass(frozen=True)
class ImportBatch:
    """
    Ledger entry for one committed import.
    """

    id: uuid.UUID
    file_hash: str
    file_name: str | None
    file_size: int
    partition: PartitionContext
    state: BatchState
    received_at: datetime
    expected_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    accounted_rows: int = 0
    missing_rows: tuple[int, ...] = ()
    is_complete: bool = False
    service_date_from: date | None = None
    service_date_to: date | None = None
    extracted_columns: tuple[str, ...] = ()
    ignored_columns: tuple[str, ...] = ()
    committed_at: datetime | None = None


@dataclass(frozen=True)
class HashReservation:
    """
    Outcome of an idempotency check-and-reserve.
    """

    file_hash: str
    is_duplicate: bool
    existing_batch: ImportBatch | None = None


@dataclass(frozen=True)
class ImportResult:
    """
    End-of-call result of ``TripImportService.import_csv``.
    """

    success: bool
    state: BatchState
    file_hash: str
    opco_id: str
    broker_id: str
    broker_account_id: str
    batch_id: uuid.UUID | None = None
    expected_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    accounted_rows: int = 0
    missing_rows: list[int] = field(default_factory=list)
    is_complete: bool = False
    errors: list[ImportRowError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    extracted_columns: list[str] = field(default_factory=list)
    ignored_columns: list[str] = field(default_factory=list)
    service_date_from: date | None = None
    service_date_to: date | None = None


@dataclass(frozen=True)
class ImportPreview:
    """
    Dry-run view of a file: column classification and allowlisted sample values.
    """

    file_hash: str
    total_rows: int
    columns: list[str]
    extracted_columns: list[str]
    ignored_columns: list[str]
    sample_rows: list[dict[str, str]]
    service_date_from: date | None
    service_date_to: date | None
    driver_names: list[str]
    vehicle_units: list[str]
    mobility_types: list[str]
    already_imported: bool


@dataclass(frozen=True)
class TripQueryFilter:
    """
    Conjunctive partition filter; ``None`` fields match everything.
    """

    opco_id: str | None = None
    broker_id: str | None = None
    broker_account_id: str | None = None

    def matches(self, partition: PartitionContext) -> bool:
        if self.opco_id is not None and partition.opco_id != self.opco_id:
            return False
        if self.broker_id is not None and partition.broker_id != self.broker_id:
            return False
        if self.broker_account_id is not None and partition.broker_account_id != self.broker_account_id:
            return False
        return True


@dataclass(frozen=True)
class DriverDaySummary:
    """
    Per-canonical-driver aggregate for one service date.
    """

    driver_name: str
    completed_trips: int
    cancelled_trips: int
    no_show_trips: int
    total_miles: float
    on_time_count: int
    late_count: int
    on_time_percent: int


@dataclass(frozen=True)
class DriverAliasEntry:
    canonical: str
    aliases: tuple[str, ...]
