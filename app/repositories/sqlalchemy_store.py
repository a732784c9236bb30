"""
app/repositories/sqlalchemy_store.py

SQLAlchemy-backed repositories for trips, the import ledger and driver aliases.

Uniqueness is enforced by the database constraints
``uq_actual_trips_partition_key`` and ``uq_trip_import_batches_file_hash``;
IntegrityError is translated into the duplicate outcomes the engine expects.
Every public method owns its session and transaction.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.trip_import import (
    BatchState,
    ImportBatch,
    PartitionContext,
    TripKey,
    TripQueryFilter,
    TripRecord,
)
from app.repositories.base import AliasRegistry, ImportLedgerStore, TripStore
from db.models.actual_trip import ActualTripRecord
from db.models.driver_alias import DriverAliasRecord
from db.models.trip_import_batch import TripImportBatchRecord

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

_PARTITION_KEY_CONSTRAINT = "uq_actual_trips_partition_key"
_DEFAULT_BATCH_SIZE = 1000


def _apply_partition_filter(stmt: Select[Any], model: Any, trip_filter: TripQueryFilter | None) -> Select[Any]:
    if trip_filter is None:
        return stmt
    if trip_filter.opco_id is not None:
        stmt = stmt.where(model.opco_id == trip_filter.opco_id)
    if trip_filter.broker_id is not None:
        stmt = stmt.where(model.broker_id == trip_filter.broker_id)
    if trip_filter.broker_account_id is not None:
        stmt = stmt.where(model.broker_account_id == trip_filter.broker_account_id)
    return stmt


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


def _trip_payload(record: TripRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "import_batch_id": record.import_batch_id,
        "trip_id": record.trip_id,
        "service_date": record.service_date,
        "opco_id": record.opco_id,
        "broker_id": record.broker_id,
        "broker_account_id": record.broker_account_id,
        "driver_name": record.driver_name,
        "driver_name_raw": record.driver_name_raw,
        "vehicle_unit": record.vehicle_unit,
        "mobility_type": record.mobility_type,
        "trip_type": record.trip_type,
        "routed_distance": record.routed_distance,
        "miles_actual": record.miles_actual,
        "sched_pickup_time": record.sched_pickup_time,
        "appointment_time": record.appointment_time,
        "actual_pickup_arrive": record.actual_pickup_arrive,
        "actual_pickup_perform": record.actual_pickup_perform,
        "actual_dropoff_arrive": record.actual_dropoff_arrive,
        "actual_dropoff_perform": record.actual_dropoff_perform,
        "status": record.status,
        "is_standing": record.is_standing,
        "is_will_call": record.is_will_call,
        "was_on_time": record.was_on_time,
        "created_at": record.created_at,
    }


def _to_trip_record(row: ActualTripRecord) -> TripRecord:
    return TripRecord(
        id=row.id,
        import_batch_id=row.import_batch_id,
        trip_id=row.trip_id,
        service_date=row.service_date,
        opco_id=row.opco_id,
        broker_id=row.broker_id,
        broker_account_id=row.broker_account_id,
        driver_name=row.driver_name,
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
        created_at=row.created_at,
    )


class SQLAlchemyTripStore(TripStore):
    """
    Trip persistence through the ``actual_trips`` table.
    """

    def __init__(self, *, session_factory: SessionFactory, batch_size: int = _DEFAULT_BATCH_SIZE) -> None:
        self._session_factory = session_factory
        self._batch_size = max(1, batch_size)

    def exists(self, key: TripKey) -> bool:
        stmt = (
            select(ActualTripRecord.id)
            .where(ActualTripRecord.opco_id == key.opco_id)
            .where(ActualTripRecord.broker_account_id == key.broker_account_id)
            .where(ActualTripRecord.service_date == key.service_date)
            .where(ActualTripRecord.trip_id == key.trip_id)
            .limit(1)
        )
        with self._session_factory() as session:
            return session.execute(stmt).first() is not None

    def add_all(self, records: Sequence[TripRecord]) -> list[TripKey]:
        if not records:
            return []

        with self._session_factory() as session:
            try:
                if session.get_bind().dialect.name == "postgresql":
                    rejected = self._insert_on_conflict(session, records)
                else:
                    rejected = self._insert_with_savepoints(session, records)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

        if rejected:
            logger.warning("Uniqueness constraint rejected %d trip(s) at commit", len(rejected))
        return rejected

    def _insert_on_conflict(self, session: Session, records: Sequence[TripRecord]) -> list[TripKey]:
        inserted: set[TripKey] = set()
        for start in range(0, len(records), self._batch_size):
            chunk = records[start : start + self._batch_size]
            stmt = (
                pg_insert(ActualTripRecord)
                .values([_trip_payload(record) for record in chunk])
                .on_conflict_do_nothing(constraint=_PARTITION_KEY_CONSTRAINT)
                .returning(
                    ActualTripRecord.opco_id,
                    ActualTripRecord.broker_account_id,
                    ActualTripRecord.service_date,
                    ActualTripRecord.trip_id,
                )
            )
            for opco_id, broker_account_id, service_date, trip_id in session.execute(stmt):
                inserted.add(TripKey(opco_id, broker_account_id, service_date, trip_id))
        return [record.key for record in records if record.key not in inserted]

    @staticmethod
    def _insert_with_savepoints(session: Session, records: Sequence[TripRecord]) -> list[TripKey]:
        rejected: list[TripKey] = []
        for record in records:
            try:
                with session.begin_nested():
                    session.add(ActualTripRecord(**_trip_payload(record)))
            except IntegrityError:
                rejected.append(record.key)
        return rejected

    def find_by_date(
        self,
        service_date: date,
        trip_filter: TripQueryFilter | None = None,
    ) -> list[TripRecord]:
        stmt = select(ActualTripRecord).where(ActualTripRecord.service_date == service_date)
        stmt = _apply_partition_filter(stmt, ActualTripRecord, trip_filter)
        stmt = stmt.order_by(ActualTripRecord.opco_id, ActualTripRecord.broker_account_id, ActualTripRecord.trip_id)
        with self._session_factory() as session:
            return [_to_trip_record(row) for row in session.scalars(stmt).all()]

    def find_by_batch(self, batch_id: uuid.UUID) -> list[TripRecord]:
        stmt = select(ActualTripRecord).where(ActualTripRecord.import_batch_id == batch_id)
        with self._session_factory() as session:
            return [_to_trip_record(row) for row in session.scalars(stmt).all()]


# ---------------------------------------------------------------------------
# Import ledger
# ---------------------------------------------------------------------------


def _to_import_batch(row: TripImportBatchRecord) -> ImportBatch:
    return ImportBatch(
        id=row.id,
        file_hash=row.file_hash,
        file_name=row.file_name,
        file_size=row.file_size,
        partition=PartitionContext(
            opco_id=row.opco_id,
            broker_id=row.broker_id,
            broker_account_id=row.broker_account_id,
        ),
        state=BatchState(row.state),
        received_at=row.received_at,
        expected_rows=row.expected_rows,
        imported_rows=row.imported_rows,
        skipped_rows=row.skipped_rows,
        error_rows=row.error_rows,
        accounted_rows=row.accounted_rows,
        missing_rows=tuple(row.missing_rows or ()),
        is_complete=row.is_complete,
        service_date_from=row.service_date_from,
        service_date_to=row.service_date_to,
        extracted_columns=tuple(row.extracted_columns or ()),
        ignored_columns=tuple(row.ignored_columns or ()),
        committed_at=row.committed_at,
    )


def _apply_batch(row: TripImportBatchRecord, batch: ImportBatch) -> None:
    row.file_name = batch.file_name
    row.file_size = batch.file_size
    row.opco_id = batch.partition.opco_id
    row.broker_id = batch.partition.broker_id
    row.broker_account_id = batch.partition.broker_account_id
    row.state = batch.state.value
    row.expected_rows = batch.expected_rows
    row.imported_rows = batch.imported_rows
    row.skipped_rows = batch.skipped_rows
    row.error_rows = batch.error_rows
    row.accounted_rows = batch.accounted_rows
    row.missing_rows = list(batch.missing_rows)
    row.is_complete = batch.is_complete
    row.service_date_from = batch.service_date_from
    row.service_date_to = batch.service_date_to
    row.extracted_columns = list(batch.extracted_columns)
    row.ignored_columns = list(batch.ignored_columns)
    row.received_at = batch.received_at
    row.committed_at = batch.committed_at


class SQLAlchemyImportLedgerStore(ImportLedgerStore):
    """
    Ledger persistence through ``trip_import_batches``.
    """

    def __init__(self, *, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def reserve(self, batch: ImportBatch) -> ImportBatch | None:
        with self._session_factory() as session:
            row = TripImportBatchRecord(id=batch.id, file_hash=batch.file_hash)
            _apply_batch(row, batch)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
            else:
                return None
        existing = self.find_by_hash(batch.file_hash)
        if existing is None:
            # Holder released between our insert and the lookup.
            return self.reserve(batch)
        return existing

    def commit(self, batch: ImportBatch) -> ImportBatch:
        with self._session_factory() as session:
            row = session.get(TripImportBatchRecord, batch.id)
            if row is None or row.file_hash != batch.file_hash:
                raise KeyError(f"No reservation for batch {batch.id}.")
            _apply_batch(row, batch)
            try:
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
        return batch

    def release(self, file_hash: str) -> None:
        stmt = (
            delete(TripImportBatchRecord)
            .where(TripImportBatchRecord.file_hash == file_hash)
            .where(TripImportBatchRecord.state != BatchState.COMMITTED.value)
        )
        with self._session_factory() as session:
            try:
                session.execute(stmt)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def get(self, batch_id: uuid.UUID) -> ImportBatch | None:
        with self._session_factory() as session:
            row = session.get(TripImportBatchRecord, batch_id)
            return _to_import_batch(row) if row is not None else None

    def find_by_hash(self, file_hash: str) -> ImportBatch | None:
        stmt = select(TripImportBatchRecord).where(TripImportBatchRecord.file_hash == file_hash)
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return _to_import_batch(row) if row is not None else None

    def list_committed(self, trip_filter: TripQueryFilter | None = None) -> list[ImportBatch]:
        stmt = select(TripImportBatchRecord).where(
            TripImportBatchRecord.state == BatchState.COMMITTED.value
        )
        stmt = _apply_partition_filter(stmt, TripImportBatchRecord, trip_filter)
        stmt = stmt.order_by(
            TripImportBatchRecord.committed_at.desc(),
            TripImportBatchRecord.received_at.desc(),
        )
        with self._session_factory() as session:
            return [_to_import_batch(row) for row in session.scalars(stmt).all()]


# ---------------------------------------------------------------------------
# Driver aliases
# ---------------------------------------------------------------------------


class SQLAlchemyAliasRegistry(AliasRegistry):
    """
    Alias persistence through ``driver_aliases``.
    """

    def __init__(self, *, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def canonical_for(self, alias_key: str) -> str | None:
        stmt = (
            select(DriverAliasRecord.canonical_name)
            .where(DriverAliasRecord.alias_key == alias_key)
            .order_by(DriverAliasRecord.created_at)
            .limit(1)
        )
        with self._session_factory() as session:
            return session.execute(stmt).scalar_one_or_none()

    def link(self, *, alias_key: str, alias: str, canonical: str) -> None:
        with self._session_factory() as session:
            try:
                session.execute(
                    delete(DriverAliasRecord)
                    .where(DriverAliasRecord.alias_key == alias_key)
                    .where(DriverAliasRecord.canonical_name != canonical)
                )
                existing = session.execute(
                    select(DriverAliasRecord.id)
                    .where(DriverAliasRecord.canonical_name == canonical)
                    .where(DriverAliasRecord.alias == alias)
                ).first()
                if existing is None:
                    session.add(
                        DriverAliasRecord(
                            canonical_name=canonical,
                            alias=alias,
                            alias_key=alias_key,
                            created_at=datetime.now(timezone.utc),
                        )
                    )
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def merge(self, *, source: str, target: str) -> None:
        with self._session_factory() as session:
            try:
                taken = select(DriverAliasRecord.alias).where(DriverAliasRecord.canonical_name == target)
                session.execute(
                    delete(DriverAliasRecord)
                    .where(DriverAliasRecord.canonical_name == source)
                    .where(DriverAliasRecord.alias.in_(taken))
                )
                session.execute(
                    update(DriverAliasRecord)
                    .where(DriverAliasRecord.canonical_name == source)
                    .values(canonical_name=target)
                )
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def aliases_of(self, canonical: str) -> list[str]:
        stmt = (
            select(DriverAliasRecord.alias)
            .where(DriverAliasRecord.canonical_name == canonical)
            .order_by(DriverAliasRecord.created_at, DriverAliasRecord.alias)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    def canonical_names(self) -> list[str]:
        stmt = (
            select(DriverAliasRecord.canonical_name)
            .group_by(DriverAliasRecord.canonical_name)
            .order_by(func.min(DriverAliasRecord.created_at), DriverAliasRecord.canonical_name)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())
