"""
db/session.py

SQLAlchemy engine and session factory.
"""

from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import get_engine_pool_settings, resolve_database_url


def create_db_engine() -> Engine:
    """
    Build the PostgreSQL engine backing the trip, ledger and alias tables.

    The partition-key insert relies on ON CONFLICT, so other dialects are
    refused here; tests build their own SQLite engine instead.
    """

    database_url = resolve_database_url()
    if not database_url.startswith("postgresql"):
        raise RuntimeError("The trip import store supports PostgreSQL URLs only.")

    pool_settings = get_engine_pool_settings()
    return create_engine(
        database_url,
        echo=pool_settings.echo,
        pool_pre_ping=True,
        pool_recycle=pool_settings.pool_recycle,
        pool_size=pool_settings.pool_size,
        max_overflow=pool_settings.max_overflow,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory with the settings every repository expects."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


def SessionLocal() -> Session:
    """Lazy session factory. Drop-in replacement for a sessionmaker() call."""
    return get_session_factory()()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def __getattr__(name: str) -> object:
    # Lazy `from db.session import engine`; the engine is created on first access.
    if name == "engine":
        return get_engine()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
