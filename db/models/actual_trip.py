"""
db/models/actual_trip.py

Committed PHI-free trip. Columns mirror the allowlisted canonical fields;
there is deliberately no generic metadata column that could carry
unreviewed vendor data.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Time,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class ActualTripRecord(Base):
    __tablename__ = "actual_trips"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    import_batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("trip_import_batches.id"),
        nullable=False,
    )
    trip_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="External trip id; unique only within a partition and date",
    )
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    opco_id: Mapped[str] = mapped_column(String(100), nullable=False)
    broker_id: Mapped[str] = mapped_column(String(100), nullable=False)
    broker_account_id: Mapped[str] = mapped_column(String(100), nullable=False)
    driver_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Canonical driver name at import time",
    )
    driver_name_raw: Mapped[str] = mapped_column(String(200), nullable=False)
    vehicle_unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    mobility_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="ambulatory, wheelchair, stretcher, or unrecognized vendor value",
    )
    trip_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    routed_distance: Mapped[float | None] = mapped_column(Float, nullable=True)
    miles_actual: Mapped[float | None] = mapped_column(Float, nullable=True)
    sched_pickup_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    appointment_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    actual_pickup_arrive: Mapped[time | None] = mapped_column(Time, nullable=True)
    actual_pickup_perform: Mapped[time | None] = mapped_column(Time, nullable=True)
    actual_dropoff_arrive: Mapped[time | None] = mapped_column(Time, nullable=True)
    actual_dropoff_perform: Mapped[time | None] = mapped_column(Time, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="completed, cancelled, no_show",
    )
    is_standing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_will_call: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    was_on_time: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "opco_id",
            "broker_account_id",
            "service_date",
            "trip_id",
            name="uq_actual_trips_partition_key",
        ),
        Index("ix_actual_trips_service_date", "service_date"),
        Index("ix_actual_trips_import_batch_id", "import_batch_id"),
        Index("ix_actual_trips_service_date_opco", "service_date", "opco_id"),
        Index("ix_actual_trips_service_date_driver", "service_date", "driver_name"),
    )
