"""
tests/test_sqlalchemy_store.py

SQLAlchemy repositories against an in-memory SQLite database.

SQLite takes the SAVEPOINT insert path; the PostgreSQL ON CONFLICT path is
exercised against a real database only.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select

from app.config import TripImportSettings
from app.domain.errors import MalformedFileError
from app.domain.trip_import import (
    BatchState,
    ImportBatch,
    PartitionContext,
    TripKey,
    TripQueryFilter,
    TripRecord,
)
from app.repositories.sqlalchemy_store import (
    SQLAlchemyAliasRegistry,
    SQLAlchemyImportLedgerStore,
    SQLAlchemyTripStore,
)
from app.services.driver_alias_resolver import DriverAliasResolver
from app.services.idempotency_ledger import IdempotencyLedger, compute_file_hash
from app.services.partitioning import PartitionKeyBuilder
from app.services.trip_import_service import TripImportService
from db.models import ActualTripRecord, TripImportBatchRecord
from tests.conftest import METRIX, SAHRAWI


def _trip(trip_id: str, *, partition: PartitionContext = SAHRAWI, batch_id: uuid.UUID | None = None) -> TripRecord:
    return TripRecord(
        trip_id=trip_id,
        service_date=date(2026, 1, 15),
        opco_id=partition.opco_id,
        broker_id=partition.broker_id,
        broker_account_id=partition.broker_account_id,
        driver_name="Driver A",
        driver_name_raw="Driver A",
        vehicle_unit="V1",
        mobility_type="ambulatory",
        trip_type=None,
        routed_distance=None,
        miles_actual=4.5,
        sched_pickup_time=None,
        appointment_time=None,
        actual_pickup_arrive=None,
        actual_pickup_perform=None,
        actual_dropoff_arrive=None,
        actual_dropoff_perform=None,
        status="completed",
        is_standing=False,
        is_will_call=False,
        was_on_time=None,
        import_batch_id=batch_id or uuid.uuid4(),
    )


def _batch(content: bytes, *, state: BatchState = BatchState.VALIDATING) -> ImportBatch:
    return ImportBatch(
        id=uuid.uuid4(),
        file_hash=compute_file_hash(content),
        file_name="export.csv",
        file_size=len(content),
        partition=SAHRAWI,
        state=state,
        received_at=datetime.now(timezone.utc),
    )


class TestTripStore:
    def test_add_all_reports_keys_rejected_by_the_constraint(self, sqlite_session_factory) -> None:
        store = SQLAlchemyTripStore(session_factory=sqlite_session_factory)
        assert store.add_all([_trip("T1")]) == []

        rejected = store.add_all([_trip("T1"), _trip("T2"), _trip("T1", partition=METRIX)])

        assert rejected == [TripKey("SAHRAWI", "MODIVCARE_SAHRAWI", date(2026, 1, 15), "T1")]
        with sqlite_session_factory() as session:
            assert session.scalar(select(func.count()).select_from(ActualTripRecord)) == 3

    def test_exists_is_partition_scoped(self, sqlite_session_factory) -> None:
        store = SQLAlchemyTripStore(session_factory=sqlite_session_factory)
        store.add_all([_trip("T1")])

        assert store.exists(TripKey("SAHRAWI", "MODIVCARE_SAHRAWI", date(2026, 1, 15), "T1"))
        assert not store.exists(TripKey("METRIX", "MODIVCARE_METRIX", date(2026, 1, 15), "T1"))
        assert not store.exists(TripKey("SAHRAWI", "MODIVCARE_SAHRAWI", date(2026, 1, 16), "T1"))

    def test_find_by_date_and_batch(self, sqlite_session_factory) -> None:
        store = SQLAlchemyTripStore(session_factory=sqlite_session_factory)
        batch_id = uuid.uuid4()
        store.add_all([_trip("T1", batch_id=batch_id), _trip("T2", partition=METRIX)])

        assert [trip.trip_id for trip in store.find_by_date(date(2026, 1, 15))] == ["T2", "T1"]
        filtered = store.find_by_date(date(2026, 1, 15), TripQueryFilter(broker_account_id="MODIVCARE_SAHRAWI"))
        assert [trip.trip_id for trip in filtered] == ["T1"]
        assert [trip.trip_id for trip in store.find_by_batch(batch_id)] == ["T1"]
        assert store.find_by_date(date(2026, 1, 16)) == []


class TestImportLedgerStore:
    def test_reserve_commit_release(self, sqlite_session_factory) -> None:
        store = SQLAlchemyImportLedgerStore(session_factory=sqlite_session_factory)
        ledger = IdempotencyLedger(store)
        content = b"TripId,Date,Driver\nT1,01/15/2026,A\n"
        batch = _batch(content)

        assert ledger.check_and_reserve(content, batch).is_duplicate is False
        duplicate = ledger.check_and_reserve(content, _batch(content))
        assert duplicate.is_duplicate is True
        assert duplicate.existing_batch.id == batch.id
        assert duplicate.existing_batch.state == BatchState.VALIDATING
        assert ledger.list_batches() == []

        ledger.release(batch.file_hash)
        assert ledger.is_known(content) is False

        again = _batch(content)
        ledger.check_and_reserve(content, again)
        committed = replace(
            again,
            state=BatchState.COMMITTED,
            imported_rows=1,
            extracted_columns=("TripId", "Date", "Driver"),
            committed_at=datetime.now(timezone.utc),
        )
        ledger.commit(committed)
        ledger.release(batch.file_hash)

        stored = ledger.get_batch(again.id)
        assert stored is not None
        assert stored.state == BatchState.COMMITTED
        assert stored.imported_rows == 1
        assert stored.extracted_columns == ("TripId", "Date", "Driver")
        assert [entry.id for entry in ledger.list_batches()] == [again.id]

    def test_commit_without_reservation_raises(self, sqlite_session_factory) -> None:
        store = SQLAlchemyImportLedgerStore(session_factory=sqlite_session_factory)

        with pytest.raises(KeyError):
            store.commit(_batch(b"x", state=BatchState.COMMITTED))


class TestSqlService:
    def test_import_and_duplicate_file(self, sql_service: TripImportService) -> None:
        content = "TripId,Date,Driver,Patient Name\nT1,01/15/2026,John Smith,Jane Patient\nT2,01/15/2026,john smith,Bob\n"

        first = sql_service.import_csv(content, "a.csv", SAHRAWI)
        second = sql_service.import_csv(content, "a.csv", SAHRAWI)

        assert first.success is True
        assert first.imported_rows == 2
        assert first.is_complete is True
        assert second.success is False
        assert second.batch_id == first.batch_id
        trips = sql_service.get_actual_trips_by_date("2026-01-15")
        assert {trip.driver_name for trip in trips} == {"John Smith"}
        batch = sql_service.get_import(str(first.batch_id))
        assert batch is not None
        assert batch.ignored_columns == ("Patient Name",)

    def test_partitions_share_trip_ids(self, sql_service: TripImportService) -> None:
        sql_service.import_csv("TripId,Date,Driver\nT1,01/15/2026,A\n", partition=SAHRAWI)
        result = sql_service.import_csv("TripId,Date,Driver\nT1,01/15/2026,B\n", partition=METRIX)

        assert result.imported_rows == 1
        assert len(sql_service.get_actual_trips_by_date("2026-01-15")) == 2
        assert [batch.partition.opco_id for batch in sql_service.get_imports(TripQueryFilter(opco_id="METRIX"))] == [
            "METRIX"
        ]

    def test_malformed_file_leaves_no_ledger_row(self, sql_service: TripImportService, sqlite_session_factory) -> None:
        with pytest.raises(MalformedFileError):
            sql_service.import_csv("TripId,Date,Driver\n", partition=SAHRAWI)

        with sqlite_session_factory() as session:
            assert session.scalar(select(func.count()).select_from(TripImportBatchRecord)) == 0


class _BlindTripStore(SQLAlchemyTripStore):
    """Pretends nothing is committed yet, as a concurrent importer would see it."""

    def exists(self, key: TripKey) -> bool:
        return False


def test_rows_lost_to_a_concurrent_commit_become_errors(sqlite_session_factory) -> None:
    settings = TripImportSettings()
    service = TripImportService(
        trip_store=_BlindTripStore(session_factory=sqlite_session_factory),
        ledger=IdempotencyLedger(SQLAlchemyImportLedgerStore(session_factory=sqlite_session_factory)),
        alias_resolver=DriverAliasResolver(SQLAlchemyAliasRegistry(session_factory=sqlite_session_factory)),
        partition_builder=PartitionKeyBuilder(
            default_opco_id=settings.default_opco_id,
            default_broker_id=settings.default_broker_id,
            default_broker_account_id=settings.default_broker_account_id,
        ),
    )
    service.import_csv("TripId,Date,Driver\nT1,01/15/2026,A\n", partition=SAHRAWI)

    result = service.import_csv("TripId,Date,Driver\nT1,01/15/2026,A\nT2,01/15/2026,A\n", partition=SAHRAWI)

    assert result.success is True
    assert result.imported_rows == 1
    assert result.error_rows == 1
    assert result.errors[0].row == 2
    assert result.errors[0].code == "duplicate_partition_key"
    assert "concurrent import" in result.errors[0].message
    assert result.is_complete is True
