"""
tests/conftest.py

Shared fixtures: fresh services per test, and an in-memory SQLite engine
for the SQLAlchemy repositories.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401 registers all ORM models on Base.metadata
from app.config import TripImportSettings
from app.domain.trip_import import PartitionContext
from app.services.trip_import_service import TripImportService, build_trip_import_service
from db.base import Base
from db.session import build_session_factory

SAHRAWI = PartitionContext(
    opco_id="SAHRAWI",
    broker_id="MODIVCARE",
    broker_account_id="MODIVCARE_SAHRAWI",
)
METRIX = PartitionContext(
    opco_id="METRIX",
    broker_id="MODIVCARE",
    broker_account_id="MODIVCARE_METRIX",
)
MTM_SAHRAWI = PartitionContext(
    opco_id="SAHRAWI",
    broker_id="MTM",
    broker_account_id="MTM_MAIN",
)


@pytest.fixture()
def settings() -> TripImportSettings:
    return TripImportSettings()


@pytest.fixture()
def service(settings: TripImportSettings) -> TripImportService:
    """Fresh in-memory service for each test."""
    return build_trip_import_service(settings)


@pytest.fixture()
def sqlite_session_factory() -> Iterator[sessionmaker[Session]]:
    """
    In-memory SQLite shared across sessions via StaticPool.

    pysqlite's implicit transaction handling is disabled so SAVEPOINT works.
    """

    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection) -> None:
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    try:
        yield build_session_factory(engine)
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def sql_service(settings: TripImportSettings, sqlite_session_factory: sessionmaker[Session]) -> TripImportService:
    return build_trip_import_service(settings, session_factory=sqlite_session_factory)
