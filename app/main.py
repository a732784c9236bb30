from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from app.config import TripImportSettings, get_trip_import_settings
from app.schemas.trip_import import HealthResponse
from app.services.trip_import_service import build_trip_import_service


def _validate_env(settings: TripImportSettings) -> None:
    """
    Validate required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import configured_database_url

    errors: list[str] = []

    if settings.uses_database and configured_database_url() is None:
        errors.append(
            "TRIP_IMPORT_STORE_BACKEND=database but no database URL is configured. "
            "Set TRIP_IMPORT_DATABASE_URL, DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


def _build_lifespan(check_database: bool):
    @asynccontextmanager
    async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
        """Validate DB connectivity and schema on boot when the database store is used."""
        log = logging.getLogger(__name__)
        if check_database:
            _check_db()
            log.info("Database connectivity confirmed")
            _check_schema()
            log.info("Database schema validated")
        log.info("Trip import API ready (store_backend=%s)", application.state.settings.store_backend)
        yield

    return _lifespan


def create_app(
    settings: TripImportSettings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    ``session_factory`` overrides the configured database and skips the
    startup connectivity checks; tests use it with an in-memory engine.
    """

    settings = settings or get_trip_import_settings()
    _validate_env(settings)
    _configure_logging()

    application = FastAPI(
        title="Trip Import API",
        version="1.0.0",
        lifespan=_build_lifespan(settings.uses_database and session_factory is None),
    )
    application.state.settings = settings
    application.state.trip_import_service = build_trip_import_service(settings, session_factory)

    from app.api.routers import trip_import_router, trip_queries_router

    application.include_router(trip_import_router)
    application.include_router(trip_queries_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        return HealthResponse(status="ok", store_backend=settings.store_backend)

    return application


app = create_app()
