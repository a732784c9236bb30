from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import STORE_BACKEND_DATABASE, TripImportSettings, get_trip_import_settings
from app.main import create_app
from db.config import configured_database_url, normalize_postgres_url


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_trip_import_settings.cache_clear()
    yield
    get_trip_import_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TRIP_IMPORT_STORE_BACKEND",
        "TRIP_IMPORT_MAX_VALIDATION_ERRORS",
        "TRIP_IMPORT_ALLOW_DEFAULT_PARTITION",
        "TRIP_IMPORT_DEFAULT_OPCO_ID",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = get_trip_import_settings()

    assert settings.store_backend == "memory"
    assert settings.max_validation_errors == 500
    assert settings.allow_default_partition is True
    assert settings.default_opco_id == "UNASSIGNED"
    assert settings.uses_database is False


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_IMPORT_MAX_VALIDATION_ERRORS", "25")
    monkeypatch.setenv("TRIP_IMPORT_ALLOW_DEFAULT_PARTITION", "false")
    monkeypatch.setenv("TRIP_IMPORT_ON_TIME_WINDOW_MINUTES", "not-a-number")
    monkeypatch.setenv("TRIP_IMPORT_DEFAULT_OPCO_ID", "  ")

    settings = get_trip_import_settings()

    assert settings.max_validation_errors == 25
    assert settings.allow_default_partition is False
    assert settings.on_time_window_minutes == 15
    assert settings.default_opco_id == "UNASSIGNED"


def test_unknown_store_backend_fails_loudly(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_IMPORT_STORE_BACKEND", "redis")

    with pytest.raises(RuntimeError, match="TRIP_IMPORT_STORE_BACKEND"):
        get_trip_import_settings()


def test_database_backend_requires_a_url(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TRIP_IMPORT_DATABASE_URL", "DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL"):
        monkeypatch.setenv(name, "")

    assert configured_database_url() is None
    with pytest.raises(RuntimeError, match="Startup validation failed"):
        create_app(TripImportSettings(store_backend=STORE_BACKEND_DATABASE))


def test_database_url_priority(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRIP_IMPORT_DATABASE_URL", "postgres://u:p@trips/db")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@shared/db")

    assert configured_database_url() == "postgresql+psycopg://u:p@trips/db"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://h/db", "postgresql+psycopg://h/db"),
        ("postgresql://h/db", "postgresql+psycopg://h/db"),
        ("postgresql+psycopg://h/db", "postgresql+psycopg://h/db"),
    ],
)
def test_normalize_postgres_url(raw: str, expected: str) -> None:
    assert normalize_postgres_url(raw) == expected
