"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

STORE_BACKEND_MEMORY = "memory"
STORE_BACKEND_DATABASE = "database"
_ALLOWED_STORE_BACKENDS = {STORE_BACKEND_MEMORY, STORE_BACKEND_DATABASE}

UNASSIGNED_PARTITION = "UNASSIGNED"


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _require_store_backend() -> str:
    """
    Read and validate TRIP_IMPORT_STORE_BACKEND.

    Unknown values raise RuntimeError rather than silently falling back to
    the in-memory store.
    """

    raw = _get_str_env("TRIP_IMPORT_STORE_BACKEND", STORE_BACKEND_MEMORY)
    backend = raw.lower()
    if backend not in _ALLOWED_STORE_BACKENDS:
        raise RuntimeError(
            f"TRIP_IMPORT_STORE_BACKEND '{raw}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_STORE_BACKENDS)}."
        )
    return backend


@dataclass(frozen=True)
class TripImportSettings:
    """
    Runtime settings for completed-trip imports.
    """

    store_backend: str = STORE_BACKEND_MEMORY
    max_validation_errors: int = 500
    log_validation_errors: bool = True
    on_time_window_minutes: int = 15
    allow_default_partition: bool = True
    default_opco_id: str = UNASSIGNED_PARTITION
    default_broker_id: str = UNASSIGNED_PARTITION
    default_broker_account_id: str = UNASSIGNED_PARTITION
    preview_sample_rows: int = 5

    @property
    def uses_database(self) -> bool:
        return self.store_backend == STORE_BACKEND_DATABASE


@lru_cache(maxsize=1)
def get_trip_import_settings() -> TripImportSettings:
    """
    Return cached trip import settings from environment variables.

    Raises RuntimeError if TRIP_IMPORT_STORE_BACKEND names an unknown backend.
    """

    return TripImportSettings(
        store_backend=_require_store_backend(),
        max_validation_errors=max(1, _get_int_env("TRIP_IMPORT_MAX_VALIDATION_ERRORS", 500)),
        log_validation_errors=_get_bool_env("TRIP_IMPORT_LOG_VALIDATION_ERRORS", True),
        on_time_window_minutes=max(0, _get_int_env("TRIP_IMPORT_ON_TIME_WINDOW_MINUTES", 15)),
        allow_default_partition=_get_bool_env("TRIP_IMPORT_ALLOW_DEFAULT_PARTITION", True),
        default_opco_id=_get_str_env("TRIP_IMPORT_DEFAULT_OPCO_ID", UNASSIGNED_PARTITION),
        default_broker_id=_get_str_env("TRIP_IMPORT_DEFAULT_BROKER_ID", UNASSIGNED_PARTITION),
        default_broker_account_id=_get_str_env(
            "TRIP_IMPORT_DEFAULT_BROKER_ACCOUNT_ID", UNASSIGNED_PARTITION
        ),
        preview_sample_rows=max(0, _get_int_env("TRIP_IMPORT_PREVIEW_SAMPLE_ROWS", 5)),
    )
