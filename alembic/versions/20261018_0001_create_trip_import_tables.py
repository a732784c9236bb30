"""create trip import tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "trip_import_batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("file_hash", sa.String(length=64), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("opco_id", sa.String(length=100), nullable=False),
        sa.Column("broker_id", sa.String(length=100), nullable=False),
        sa.Column("broker_account_id", sa.String(length=100), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("expected_rows", sa.Integer(), nullable=False),
        sa.Column("imported_rows", sa.Integer(), nullable=False),
        sa.Column("skipped_rows", sa.Integer(), nullable=False),
        sa.Column("error_rows", sa.Integer(), nullable=False),
        sa.Column("accounted_rows", sa.Integer(), nullable=False),
        sa.Column("missing_rows", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_complete", sa.Boolean(), nullable=False),
        sa.Column("service_date_from", sa.Date(), nullable=True),
        sa.Column("service_date_to", sa.Date(), nullable=True),
        sa.Column("extracted_columns", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("ignored_columns", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_trip_import_batches"),
        sa.UniqueConstraint("file_hash", name="uq_trip_import_batches_file_hash"),
    )
    op.create_index("ix_trip_import_batches_opco_id", "trip_import_batches", ["opco_id"], unique=False)
    op.create_index(
        "ix_trip_import_batches_broker_account_id",
        "trip_import_batches",
        ["broker_account_id"],
        unique=False,
    )
    op.create_index("ix_trip_import_batches_state", "trip_import_batches", ["state"], unique=False)

    op.create_table(
        "actual_trips",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("import_batch_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("trip_id", sa.String(length=100), nullable=False),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("opco_id", sa.String(length=100), nullable=False),
        sa.Column("broker_id", sa.String(length=100), nullable=False),
        sa.Column("broker_account_id", sa.String(length=100), nullable=False),
        sa.Column("driver_name", sa.String(length=200), nullable=False),
        sa.Column("driver_name_raw", sa.String(length=200), nullable=False),
        sa.Column("vehicle_unit", sa.String(length=50), nullable=True),
        sa.Column("mobility_type", sa.String(length=50), nullable=False),
        sa.Column("trip_type", sa.String(length=20), nullable=True),
        sa.Column("routed_distance", sa.Float(), nullable=True),
        sa.Column("miles_actual", sa.Float(), nullable=True),
        sa.Column("sched_pickup_time", sa.Time(), nullable=True),
        sa.Column("appointment_time", sa.Time(), nullable=True),
        sa.Column("actual_pickup_arrive", sa.Time(), nullable=True),
        sa.Column("actual_pickup_perform", sa.Time(), nullable=True),
        sa.Column("actual_dropoff_arrive", sa.Time(), nullable=True),
        sa.Column("actual_dropoff_perform", sa.Time(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("is_standing", sa.Boolean(), nullable=False),
        sa.Column("is_will_call", sa.Boolean(), nullable=False),
        sa.Column("was_on_time", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["import_batch_id"],
            ["trip_import_batches.id"],
            name="fk_actual_trips_import_batch_id_trip_import_batches",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_actual_trips"),
        sa.UniqueConstraint(
            "opco_id",
            "broker_account_id",
            "service_date",
            "trip_id",
            name="uq_actual_trips_partition_key",
        ),
    )
    op.create_index("ix_actual_trips_service_date", "actual_trips", ["service_date"], unique=False)
    op.create_index("ix_actual_trips_import_batch_id", "actual_trips", ["import_batch_id"], unique=False)
    op.create_index(
        "ix_actual_trips_service_date_opco",
        "actual_trips",
        ["service_date", "opco_id"],
        unique=False,
    )
    op.create_index(
        "ix_actual_trips_service_date_driver",
        "actual_trips",
        ["service_date", "driver_name"],
        unique=False,
    )

    op.create_table(
        "driver_aliases",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("canonical_name", sa.String(length=200), nullable=False),
        sa.Column("alias", sa.String(length=200), nullable=False),
        sa.Column("alias_key", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_driver_aliases"),
        sa.UniqueConstraint("canonical_name", "alias", name="uq_driver_aliases_canonical_alias"),
    )
    op.create_index("ix_driver_aliases_alias_key", "driver_aliases", ["alias_key"], unique=False)
    op.create_index("ix_driver_aliases_canonical_name", "driver_aliases", ["canonical_name"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_driver_aliases_canonical_name", table_name="driver_aliases")
    op.drop_index("ix_driver_aliases_alias_key", table_name="driver_aliases")
    op.drop_table("driver_aliases")

    op.drop_index("ix_actual_trips_service_date_driver", table_name="actual_trips")
    op.drop_index("ix_actual_trips_service_date_opco", table_name="actual_trips")
    op.drop_index("ix_actual_trips_import_batch_id", table_name="actual_trips")
    op.drop_index("ix_actual_trips_service_date", table_name="actual_trips")
    op.drop_table("actual_trips")

    op.drop_index("ix_trip_import_batches_state", table_name="trip_import_batches")
    op.drop_index("ix_trip_import_batches_broker_account_id", table_name="trip_import_batches")
    op.drop_index("ix_trip_import_batches_opco_id", table_name="trip_import_batches")
    op.drop_table("trip_import_batches")
