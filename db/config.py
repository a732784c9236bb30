"""
db/config.py

Environment-driven database settings for the trip import store.

The URL is looked up in this order:

    1) TRIP_IMPORT_DATABASE_URL
    2) DATABASE_URL
    3) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    4) LOCAL_DATABASE_URL
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_FILES = (".env", ".env.local")
CLOUD_LIKE_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if key.startswith("export "):
        key = key[len("export ") :].strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files(project_root: Path | None = None) -> None:
    """
    Load KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    root = project_root or Path(__file__).resolve().parents[1]
    for filename in ENV_FILES:
        env_path = root / filename
        if not env_path.exists():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None and parsed[0] not in os.environ:
                os.environ[parsed[0]] = parsed[1]


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite postgres URLs to SQLAlchemy's psycopg (v3) driver form.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def configured_database_url() -> str | None:
    """
    Return the normalized database URL, or ``None`` when none is configured.
    """

    load_env_files()

    for name in ("TRIP_IMPORT_DATABASE_URL", "DATABASE_URL"):
        value = (os.getenv(name) or "").strip()
        if value:
            return normalize_postgres_url(value)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = (os.getenv("CLOUD_DATABASE_URL") or "").strip()
    if environment in CLOUD_LIKE_ENVIRONMENTS and cloud_url:
        return normalize_postgres_url(cloud_url)

    local_url = (os.getenv("LOCAL_DATABASE_URL") or "").strip()
    if local_url:
        return normalize_postgres_url(local_url)
    return None


def resolve_database_url() -> str:
    url = configured_database_url()
    if url is None:
        raise RuntimeError(
            "No database URL configured for the trip import store. Set TRIP_IMPORT_DATABASE_URL "
            "or DATABASE_URL, or configure LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
        )
    return url


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class EnginePoolSettings:
    echo: bool = False
    pool_recycle: int = 1800
    pool_size: int = 5
    max_overflow: int = 10


def get_engine_pool_settings() -> EnginePoolSettings:
    load_env_files()
    return EnginePoolSettings(
        echo=_env_bool("SQL_ECHO", False),
        pool_recycle=_env_int("DB_POOL_RECYCLE", 1800),
        pool_size=_env_int("DB_POOL_SIZE", 5),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
    )
