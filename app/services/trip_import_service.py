"""
app/services/trip_import_service.py

Service layer for completed-trip CSV imports.

One ``import_csv`` call runs the whole pipeline:

    1. resolve the partition (rejects before anything is reserved)
    2. reserve the content hash in the idempotency ledger
    3. parse the CSV and classify headers against the allowlist
    4. validate rows, claim composite keys and resolve driver identity
    5. commit trips, then the ledger entry
    6. prove the row accounting

Only allowlisted cells are read from a row. Ignored columns are reported by
header name; their cell values are never copied, stored or logged.
"""

from __future__ import annotations

import csv
import io
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import TripImportSettings, get_trip_import_settings
from app.domain.errors import (
    BatchRejectedError,
    DuplicateFileError,
    DuplicatePartitionKeyError,
    MalformedFileError,
    RowImportError,
    TripPersistenceError,
    UnknownPartitionError,
)
from app.domain.trip_import import (
    BatchState,
    DriverAliasEntry,
    DriverDaySummary,
    ImportBatch,
    ImportPreview,
    ImportResult,
    ImportRowError,
    PartitionContext,
    RowOutcome,
    RowOutcomeKind,
    TripQueryFilter,
    TripRecord,
)
from app.logging_utils import log_event, short_hash
from app.mappers.allowlist import ColumnClassification, ColumnClassifier
from app.repositories.base import AliasRegistry, ImportLedgerStore, TripStore
from app.repositories.memory import InMemoryAliasRegistry, InMemoryImportLedgerStore, InMemoryTripStore
from app.repositories.sqlalchemy_store import (
    SQLAlchemyAliasRegistry,
    SQLAlchemyImportLedgerStore,
    SQLAlchemyTripStore,
)
from app.services.completeness import CompletenessAccountant
from app.services.driver_alias_resolver import DriverAliasResolver
from app.services.idempotency_ledger import IdempotencyLedger, compute_file_hash
from app.services.partitioning import PartitionKeyBuilder, UniquenessIndex
from app.services.trip_query_service import TripQueryService
from app.validators.trip_row_validator import TripRowValidator, parse_service_date

logger = logging.getLogger(__name__)

IGNORED_CELL_PLACEHOLDER = "[IGNORED - not in allowlist]"
_PREVIEW_DISTINCT_LIMIT = 20


# ---------------------------------------------------------------------------
# CSV reading
# ---------------------------------------------------------------------------


def _decode(raw_bytes: bytes) -> str:
    try:
        return raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MalformedFileError("CSV must be UTF-8 encoded.") from exc


def _is_blank_line(record: list[str]) -> bool:
    return not record or (len(record) == 1 and not record[0].strip())


def read_csv_records(raw_bytes: bytes) -> tuple[list[str], list[list[str]]]:
    """
    Split a CSV export into its header and data records.

    Trailing blank lines are dropped; blank lines inside the file are kept
    as data records so they are accounted for.
    """

    if not raw_bytes.strip():
        raise MalformedFileError("File is empty.")

    text = _decode(raw_bytes)
    try:
        records = list(csv.reader(io.StringIO(text, newline="")))
    except csv.Error as exc:
        raise MalformedFileError(f"Invalid CSV format: {exc}") from exc

    while records and _is_blank_line(records[-1]):
        records.pop()

    if not records or _is_blank_line(records[0]):
        raise MalformedFileError("CSV header row is missing.")
    if len(records) < 2:
        raise MalformedFileError("CSV must have a header row and at least one data row.")

    headers = [header.strip() for header in records[0]]
    return headers, records[1:]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TripImportService:
    """
    Coordinates allowlisting, validation, deduplication and persistence.
    """

    def __init__(
        self,
        *,
        trip_store: TripStore,
        ledger: IdempotencyLedger,
        alias_resolver: DriverAliasResolver,
        partition_builder: PartitionKeyBuilder,
        max_validation_errors: int = 500,
        log_validation_errors: bool = True,
        preview_sample_rows: int = 5,
        classifier: ColumnClassifier | None = None,
        validator: TripRowValidator | None = None,
        accountant: CompletenessAccountant | None = None,
    ) -> None:
        self._trip_store = trip_store
        self._ledger = ledger
        self._alias_resolver = alias_resolver
        self._partition_builder = partition_builder
        self._max_validation_errors = max(1, max_validation_errors)
        self._log_validation_errors = log_validation_errors
        self._preview_sample_rows = max(0, preview_sample_rows)
        self._classifier = classifier or ColumnClassifier()
        self._validator = validator or TripRowValidator()
        self._accountant = accountant or CompletenessAccountant()
        self.queries = TripQueryService(
            trip_store=trip_store,
            ledger=ledger,
            alias_resolver=alias_resolver,
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_csv(
        self,
        content: str | bytes,
        file_name: str | None = None,
        partition: PartitionContext | Mapping[str, Any] | None = None,
    ) -> ImportResult:
        """
        Import one completed-trip export under a partition.

        Batch-level rejections (duplicate file, unknown partition) return a
        result with ``success=False`` and leave no side effects. Row-level
        failures are reported in ``errors`` while the remaining rows import.

        Raises:
            MalformedFileError: content is empty, undecodable or not a CSV
                with a header row.
            TripPersistenceError: the store failed while committing.
        """

        raw_bytes = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        file_hash = compute_file_hash(raw_bytes)
        state = BatchState.RECEIVED

        try:
            resolved = self._partition_builder.resolve(partition)
        except UnknownPartitionError as exc:
            state = state.transition(BatchState.PARTITION_REJECTED)
            logger.warning("Import rejected (hash=%s): %s", short_hash(file_hash), exc.message)
            return self._rejected_result(exc, state=state, file_hash=file_hash, partition=partition)

        batch = ImportBatch(
            id=uuid.uuid4(),
            file_hash=file_hash,
            file_name=file_name,
            file_size=len(raw_bytes),
            partition=resolved,
            state=state.transition(BatchState.VALIDATING),
            received_at=datetime.now(timezone.utc),
        )
        reservation = self._ledger.check_and_reserve(raw_bytes, batch)
        if reservation.is_duplicate:
            state = state.transition(BatchState.HASH_REJECTED)
            return self._rejected_result(
                DuplicateFileError(file_hash),
                state=state,
                file_hash=file_hash,
                partition=resolved,
                existing_batch=reservation.existing_batch,
            )

        try:
            headers, records = read_csv_records(raw_bytes)
            classification = self._classifier.classify(headers)
            errors: list[ImportRowError] = []
            warnings: list[str] = []
            outcomes = self._process_records(
                records,
                classification=classification,
                partition=resolved,
                batch_id=batch.id,
                errors=errors,
                warnings=warnings,
            )
            trips = [outcome.record for outcome in outcomes if outcome.record is not None]
            lost_race = set(self._trip_store.add_all(trips))
        except SQLAlchemyError as exc:
            self._ledger.release(file_hash)
            raise TripPersistenceError("Failed to persist validated trips.") from exc
        except Exception:
            self._ledger.release(file_hash)
            raise

        if lost_race:
            outcomes = self._reclassify_rejected(outcomes, lost_race, errors)

        proof = self._accountant.prove(len(records), outcomes)
        imported_dates = sorted(
            outcome.record.service_date for outcome in outcomes if outcome.record is not None
        )

        committed = replace(
            batch,
            state=batch.state.transition(BatchState.COMMITTED),
            expected_rows=proof.expected_rows,
            imported_rows=proof.imported_rows,
            skipped_rows=proof.skipped_rows,
            error_rows=proof.error_rows,
            accounted_rows=proof.accounted_rows,
            missing_rows=proof.missing_rows,
            is_complete=proof.is_complete,
            service_date_from=imported_dates[0] if imported_dates else None,
            service_date_to=imported_dates[-1] if imported_dates else None,
            extracted_columns=classification.extracted_columns,
            ignored_columns=classification.ignored_columns,
            committed_at=datetime.now(timezone.utc),
        )
        try:
            self._ledger.commit(committed)
        except SQLAlchemyError as exc:
            # Trips are already stored; the reservation stays so the file cannot re-import.
            logger.error(
                "Ledger commit failed after trips were stored (hash=%s, batch=%s)",
                short_hash(file_hash),
                batch.id,
            )
            raise TripPersistenceError("Failed to commit the import batch.") from exc

        warnings.extend(self._batch_warnings(classification, proof.is_complete, proof.missing_rows))
        if classification.ignored_columns:
            logger.info("Ignored non-allowlisted columns: %s", ", ".join(classification.ignored_columns))

        log_event(
            logger,
            logging.INFO,
            "trip_import_completed",
            batch_id=str(committed.id),
            file_hash=short_hash(file_hash),
            opco_id=resolved.opco_id,
            broker_account_id=resolved.broker_account_id,
            expected_rows=proof.expected_rows,
            accounted_rows=proof.accounted_rows,
            imported_rows=proof.imported_rows,
            skipped_rows=proof.skipped_rows,
            error_rows=proof.error_rows,
            missing_rows=list(proof.missing_rows),
            is_complete=proof.is_complete,
            extracted_columns=list(classification.extracted_columns),
            ignored_columns=list(classification.ignored_columns),
        )

        return ImportResult(
            success=True,
            state=committed.state,
            file_hash=file_hash,
            opco_id=resolved.opco_id,
            broker_id=resolved.broker_id,
            broker_account_id=resolved.broker_account_id,
            batch_id=committed.id,
            expected_rows=proof.expected_rows,
            imported_rows=proof.imported_rows,
            skipped_rows=proof.skipped_rows,
            error_rows=proof.error_rows,
            accounted_rows=proof.accounted_rows,
            missing_rows=list(proof.missing_rows),
            is_complete=proof.is_complete,
            errors=errors,
            warnings=warnings,
            extracted_columns=list(classification.extracted_columns),
            ignored_columns=list(classification.ignored_columns),
            service_date_from=committed.service_date_from,
            service_date_to=committed.service_date_to,
        )

    def preview_csv(self, content: str | bytes) -> ImportPreview:
        """
        Classify columns and sample allowlisted values without importing.
        """

        raw_bytes = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        headers, records = read_csv_records(raw_bytes)
        classification = self._classifier.classify(headers)
        extracted_indexes = set(classification.canonical_to_index.values())

        sample_rows: list[dict[str, str]] = []
        for values in records[: self._preview_sample_rows]:
            sample: dict[str, str] = {}
            for index, header in enumerate(headers):
                if index in extracted_indexes:
                    sample[header] = values[index].strip() if index < len(values) else ""
                else:
                    sample[header] = IGNORED_CELL_PLACEHOLDER
            sample_rows.append(sample)

        dates: list[date] = []
        drivers: dict[str, None] = {}
        vehicles: dict[str, None] = {}
        mobilities: dict[str, None] = {}
        for values in records:
            mapped = self._classifier.extract(values, classification)
            parsed_date = parse_service_date(mapped.get("service_date"))
            if parsed_date is not None:
                dates.append(parsed_date)
            for bucket, canonical_field in (
                (drivers, "driver_name"),
                (vehicles, "vehicle_unit"),
                (mobilities, "mobility_type"),
            ):
                value = (mapped.get(canonical_field) or "").strip()
                if value:
                    bucket.setdefault(value, None)

        dates.sort()
        return ImportPreview(
            file_hash=compute_file_hash(raw_bytes),
            total_rows=len(records),
            columns=headers,
            extracted_columns=list(classification.extracted_columns),
            ignored_columns=list(classification.ignored_columns),
            sample_rows=sample_rows,
            service_date_from=dates[0] if dates else None,
            service_date_to=dates[-1] if dates else None,
            driver_names=list(drivers)[:_PREVIEW_DISTINCT_LIMIT],
            vehicle_units=list(vehicles)[:_PREVIEW_DISTINCT_LIMIT],
            mobility_types=list(mobilities),
            already_imported=self._ledger.is_known(raw_bytes),
        )

    # ------------------------------------------------------------------
    # Driver aliases
    # ------------------------------------------------------------------

    def add_driver_alias(self, canonical_name: str, alias: str) -> str:
        return self._alias_resolver.add_driver_alias(canonical_name, alias)

    def get_driver_aliases(self, canonical_name: str) -> list[str]:
        return self._alias_resolver.get_driver_aliases(canonical_name)

    def get_canonical_driver_name(self, alias: str) -> str:
        return self._alias_resolver.get_canonical_driver_name(alias)

    def get_all_driver_aliases(self) -> list[DriverAliasEntry]:
        return self._alias_resolver.get_all_driver_aliases()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_actual_trips_by_date(
        self,
        service_date: date | str,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        return self.queries.get_actual_trips_by_date(service_date, trip_filter)

    def get_actual_trips_by_driver_and_date(
        self,
        driver_name: str,
        service_date: date | str,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        return self.queries.get_actual_trips_by_driver_and_date(driver_name, service_date, trip_filter)

    def get_driver_summary_by_date(
        self,
        service_date: date | str,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[DriverDaySummary]:
        return self.queries.get_driver_summary_by_date(service_date, trip_filter)

    def get_imports(self, trip_filter: TripQueryFilter | None = None) -> list[ImportBatch]:
        return self.queries.get_imports(trip_filter)

    def get_import(self, batch_id: uuid.UUID | str) -> ImportBatch | None:
        return self.queries.get_import(batch_id)

    # ------------------------------------------------------------------
    # Import internals
    # ------------------------------------------------------------------

    def _process_records(
        self,
        records: list[list[str]],
        *,
        classification: ColumnClassification,
        partition: PartitionContext,
        batch_id: uuid.UUID,
        errors: list[ImportRowError],
        warnings: list[str],
    ) -> list[RowOutcome]:
        uniqueness = UniquenessIndex(self._trip_store)
        outcomes: list[RowOutcome] = []

        for row_number, values in enumerate(records, start=2):
            if self._validator.is_completely_empty_row(values):
                outcomes.append(RowOutcome.skipped(row_number, "Blank row."))
                continue

            mapped_row = self._classifier.extract(values, classification)
            try:
                row = self._validator.validate_row(mapped_row=mapped_row, row_number=row_number)
                uniqueness.claim(PartitionKeyBuilder.build_key(partition, row), row_number=row_number)
            except RowImportError as exc:
                outcomes.append(RowOutcome.error(row_number, exc.message, exc.code))
                self._record_error(errors, ImportRowError(row=row_number, message=exc.message, code=exc.code))
                continue

            for warning in row.warnings:
                self._record_warning(warnings, f"Row {row_number}: {warning}")

            record = TripRecord(
                trip_id=row.trip_id,
                service_date=row.service_date,
                opco_id=partition.opco_id,
                broker_id=partition.broker_id,
                broker_account_id=partition.broker_account_id,
                driver_name=self._alias_resolver.resolve(row.driver_name_raw),
                driver_name_raw=row.driver_name_raw,
                vehicle_unit=row.vehicle_unit,
                mobility_type=row.mobility_type,
                trip_type=row.trip_type,
                routed_distance=row.routed_distance,
                miles_actual=row.miles_actual,
                sched_pickup_time=row.sched_pickup_time,
                appointment_time=row.appointment_time,
                actual_pickup_arrive=row.actual_pickup_arrive,
                actual_pickup_perform=row.actual_pickup_perform,
                actual_dropoff_arrive=row.actual_dropoff_arrive,
                actual_dropoff_perform=row.actual_dropoff_perform,
                status=row.status,
                is_standing=row.is_standing,
                is_will_call=row.is_will_call,
                was_on_time=row.was_on_time,
                import_batch_id=batch_id,
            )
            outcomes.append(RowOutcome.imported(row_number, record))

        return outcomes

    def _reclassify_rejected(
        self,
        outcomes: list[RowOutcome],
        rejected_keys: set,
        errors: list[ImportRowError],
    ) -> list[RowOutcome]:
        reclassified: list[RowOutcome] = []
        for outcome in outcomes:
            if outcome.kind == RowOutcomeKind.IMPORTED and outcome.record.key in rejected_keys:
                exc = DuplicatePartitionKeyError(
                    f"Trip {outcome.record.trip_id!r} was committed by a concurrent import.",
                    row_number=outcome.row_number,
                    column="trip_id",
                    value=outcome.record.trip_id,
                )
                reclassified.append(RowOutcome.error(outcome.row_number, exc.message, exc.code))
                self._record_error(errors, ImportRowError(row=outcome.row_number, message=exc.message, code=exc.code))
                continue
            reclassified.append(outcome)
        return reclassified

    @staticmethod
    def _batch_warnings(
        classification: ColumnClassification,
        is_complete: bool,
        missing_rows: tuple[int, ...],
    ) -> list[str]:
        warnings: list[str] = []
        if classification.missing_required:
            warnings.append(
                "Required column(s) not found: " + ", ".join(classification.missing_required) + "."
            )
        if classification.duplicate_columns:
            warnings.append(
                "Duplicate column(s) ignored; the first matching column was used: "
                + ", ".join(classification.duplicate_columns)
            )
        if not is_complete:
            warnings.append(
                "WARNING: row accounting is incomplete. Missing rows: "
                + ", ".join(str(row) for row in missing_rows)
            )
        if classification.ignored_columns:
            warnings.append(
                f"SECURITY: {len(classification.ignored_columns)} columns ignored (not in allowlist): "
                + ", ".join(classification.ignored_columns)
            )
        return warnings

    def _rejected_result(
        self,
        exc: BatchRejectedError,
        *,
        state: BatchState,
        file_hash: str,
        partition: PartitionContext | Mapping[str, Any] | None,
        existing_batch: ImportBatch | None = None,
    ) -> ImportResult:
        if isinstance(partition, PartitionContext):
            context = partition
        else:
            context = PartitionContext.from_mapping(partition or {})

        warnings: list[str] = []
        if isinstance(exc, DuplicateFileError):
            warnings.append("This file was previously imported. Skipping to prevent duplicates.")

        return ImportResult(
            success=False,
            state=state,
            file_hash=file_hash,
            opco_id=context.opco_id,
            broker_id=context.broker_id,
            broker_account_id=context.broker_account_id,
            batch_id=existing_batch.id if existing_batch is not None else None,
            errors=[ImportRowError(row=0, message=exc.message, code=exc.code)],
            warnings=warnings,
            extracted_columns=list(existing_batch.extracted_columns) if existing_batch else [],
            ignored_columns=list(existing_batch.ignored_columns) if existing_batch else [],
            service_date_from=existing_batch.service_date_from if existing_batch else None,
            service_date_to=existing_batch.service_date_to if existing_batch else None,
        )

    def _record_error(self, captured_errors: list[ImportRowError], error: ImportRowError) -> None:
        if self._log_validation_errors:
            logger.warning(
                "Trip import row error row=%s code=%s message=%s",
                error.row,
                error.code,
                error.message,
            )

        if len(captured_errors) < self._max_validation_errors:
            captured_errors.append(error)

    def _record_warning(self, warnings: list[str], warning: str) -> None:
        if len(warnings) < self._max_validation_errors:
            warnings.append(warning)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_trip_import_service(
    settings: TripImportSettings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> TripImportService:
    """
    Build a trip import service wired to the configured store backend.

    Passing ``session_factory`` selects the SQLAlchemy stores regardless of
    ``settings.store_backend``. Each call returns independent state.
    """

    settings = settings or get_trip_import_settings()

    trip_store: TripStore
    ledger_store: ImportLedgerStore
    alias_registry: AliasRegistry
    if session_factory is None and settings.uses_database:
        from db.session import get_session_factory

        session_factory = get_session_factory()

    if session_factory is not None:
        trip_store = SQLAlchemyTripStore(session_factory=session_factory)
        ledger_store = SQLAlchemyImportLedgerStore(session_factory=session_factory)
        alias_registry = SQLAlchemyAliasRegistry(session_factory=session_factory)
    else:
        trip_store = InMemoryTripStore()
        ledger_store = InMemoryImportLedgerStore()
        alias_registry = InMemoryAliasRegistry()

    return TripImportService(
        trip_store=trip_store,
        ledger=IdempotencyLedger(ledger_store),
        alias_resolver=DriverAliasResolver(alias_registry),
        partition_builder=PartitionKeyBuilder(
            default_opco_id=settings.default_opco_id,
            default_broker_id=settings.default_broker_id,
            default_broker_account_id=settings.default_broker_account_id,
            allow_default_partition=settings.allow_default_partition,
        ),
        max_validation_errors=settings.max_validation_errors,
        log_validation_errors=settings.log_validation_errors,
        preview_sample_rows=settings.preview_sample_rows,
        validator=TripRowValidator(on_time_window_minutes=settings.on_time_window_minutes),
    )
