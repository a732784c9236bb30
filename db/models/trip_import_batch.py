"""
db/models/trip_import_batch.py

Import ledger row: one per accepted file, unique on content hash.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class TripImportBatchRecord(Base, TimestampMixin):
    __tablename__ = "trip_import_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    file_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 hex digest of the raw file bytes",
    )
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    opco_id: Mapped[str] = mapped_column(String(100), nullable=False)
    broker_id: Mapped[str] = mapped_column(String(100), nullable=False)
    broker_account_id: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="validating, committed",
    )
    expected_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    imported_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accounted_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    missing_rows: Mapped[list[int]] = mapped_column(JSONVariant, nullable=False, default=list)
    is_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    service_date_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    service_date_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    extracted_columns: Mapped[list[str]] = mapped_column(JSONVariant, nullable=False, default=list)
    ignored_columns: Mapped[list[str]] = mapped_column(
        JSONVariant,
        nullable=False,
        default=list,
        comment="Header names only; cell values of ignored columns are never stored",
    )
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    committed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("file_hash", name="uq_trip_import_batches_file_hash"),
        Index("ix_trip_import_batches_opco_id", "opco_id"),
        Index("ix_trip_import_batches_broker_account_id", "broker_account_id"),
        Index("ix_trip_import_batches_state", "state"),
    )
