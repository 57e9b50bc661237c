"""Booking pipeline schema

Revision ID: 0001_booking_pipeline
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_booking_pipeline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "studios",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("approved_engineer_ids", sa.JSON(), nullable=False),
        sa.Column("operating_schedule", sa.JSON(), nullable=True),
        sa.Column("auto_approve_requests", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hourly_rate_cents", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_studios_owner_id", "studios", ["owner_id"])

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("studio_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("hourly_rate_cents", sa.Integer(), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["studio_id"], ["studios.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rooms_studio_id", "rooms", ["studio_id"])

    op.create_table(
        "engineer_settings",
        sa.Column("engineer_id", sa.String(length=128), nullable=False),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("instant_book_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("main_studio_id", sa.String(length=64), nullable=True),
        sa.Column("allow_other_studios", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("default_session_duration_minutes", sa.Integer(), nullable=False, server_default="120"),
        sa.PrimaryKeyConstraint("engineer_id"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("artist_id", sa.String(length=128), nullable=False),
        sa.Column("engineer_id", sa.String(length=128), nullable=False),
        sa.Column("studio_id", sa.String(length=64), nullable=False),
        sa.Column("room_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("requested_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("requested_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("pricing", sa.JSON(), nullable=True),
        sa.Column("instant_book", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approval", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookings_artist_id", "bookings", ["artist_id"])
    op.create_index("ix_bookings_engineer_id", "bookings", ["engineer_id"])
    op.create_index("ix_bookings_studio_id", "bookings", ["studio_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "availability_entries",
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("studio_id", sa.String(length=64), nullable=True),
        sa.Column("room_id", sa.String(length=64), nullable=True),
        sa.Column("engineer_id", sa.String(length=128), nullable=True),
        sa.Column("source_booking_id", sa.String(length=64), nullable=True),
        sa.Column("source_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("owner_id", "id"),
    )
    op.create_index("ix_availability_owner_start", "availability_entries", ["owner_id", "start_date"])
    op.create_index(
        "ix_availability_entries_source_booking_id", "availability_entries", ["source_booking_id"]
    )

    op.create_table(
        "alerts",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False, server_default="booking"),
        sa.Column("deeplink", sa.String(length=255), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alerts_user_id", "alerts", ["user_id"])

    op.create_table(
        "booking_changes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("booking_id", sa.String(length=64), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_booking_changes_booking_id", "booking_changes", ["booking_id"])
    op.create_index("ix_booking_changes_processed_at", "booking_changes", ["processed_at"])


def downgrade() -> None:
    op.drop_table("booking_changes")
    op.drop_table("alerts")
    op.drop_table("availability_entries")
    op.drop_table("bookings")
    op.drop_table("engineer_settings")
    op.drop_table("rooms")
    op.drop_table("studios")
