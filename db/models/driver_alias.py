"""
db/models/driver_alias.py

Driver alias registry rows: one per (canonical name, accepted spelling).
"""

from __future__ import annotations

import uuid

from sqlalchemy import Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class DriverAliasRecord(Base, TimestampMixin):
    __tablename__ = "driver_aliases"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    canonical_name: Mapped[str] = mapped_column(String(200), nullable=False)
    alias: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Spelling as observed or registered",
    )
    alias_key: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Lowercased, whitespace-collapsed alias",
    )

    __table_args__ = (
        UniqueConstraint("canonical_name", "alias", name="uq_driver_aliases_canonical_alias"),
        Index("ix_driver_aliases_alias_key", "alias_key"),
        Index("ix_driver_aliases_canonical_name", "canonical_name"),
    )
