"""Initial schema: users, schedules, day availability, reservations, refunds, payments.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'USER'")),
        sa.Column("is_member", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('USER', 'ADMIN', 'TREASURER')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("lane_count", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_schedule_day_of_week"),
        sa.CheckConstraint("max_capacity >= 0", name="check_schedule_capacity_non_negative"),
        sa.CheckConstraint("lane_count > 0", name="check_schedule_lane_count_positive"),
        sa.CheckConstraint("start_time < end_time", name="check_schedule_time_window"),
    )
    op.create_index("ix_schedules_id", "schedules", ["id"])
    # One active session per weekday; inactive ones are kept for history
    op.create_index(
        "uq_schedules_active_day",
        "schedules",
        ["day_of_week"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "day_availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id"), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("capacity_override", sa.Integer(), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("date", "schedule_id", name="uq_day_availability_date_schedule"),
        sa.CheckConstraint(
            "capacity_override IS NULL OR capacity_override >= 0",
            name="check_capacity_override_non_negative",
        ),
    )
    op.create_index("ix_day_availability_id", "day_availability", ["id"])
    op.create_index("ix_day_availability_schedule_id", "day_availability", ["schedule_id"])
    # "Is next month open?" scans by date range and the open flag
    op.create_index("ix_day_availability_date_available", "day_availability", ["date", "is_available"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("schedules.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_confirmed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="check_reservation_status",
        ),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    # Occupancy count for a day: WHERE schedule_id = ? AND date = ? AND status != 'CANCELLED'
    op.create_index("ix_reservations_schedule_date_status", "reservations", ["schedule_id", "date", "status"])
    # At most one live booking per member and session day
    op.create_index(
        "uq_reservations_active_user_schedule_date",
        "reservations",
        ["user_id", "schedule_id", "date"],
        unique=True,
        postgresql_where=sa.text("status <> 'CANCELLED'"),
    )

    op.create_table(
        "cancellation_refunds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="check_refund_amount_non_negative"),
        sa.CheckConstraint("status IN ('PENDING', 'APPLIED')", name="check_refund_status"),
    )
    op.create_index("ix_cancellation_refunds_id", "cancellation_refunds", ["id"])
    op.create_index("ix_cancellation_refunds_reservation_id", "cancellation_refunds", ["reservation_id"])
    op.create_index("ix_cancellation_refunds_user_status", "cancellation_refunds", ["user_id", "status"])

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=False),
        sa.Column("transaction_id", sa.String(100), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("confirmed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="check_payment_amount_positive"),
    )
    op.create_index("ix_payment_records_id", "payment_records", ["id"])
    op.create_index("ix_payment_records_reservation_id", "payment_records", ["reservation_id"])


def downgrade() -> None:
    op.drop_table("payment_records")
    op.drop_table("cancellation_refunds")
    op.drop_table("reservations")
    op.drop_table("day_availability")
    op.drop_table("schedules")
    op.drop_table("users")
