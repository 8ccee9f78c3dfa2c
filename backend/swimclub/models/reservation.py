"""
A member's booking of one schedule on one date.

Key design decisions:
- Cancelled rows are kept; re-booking after a cancellation inserts a new row
- Partial unique index: one non-cancelled reservation per (user, schedule, date)
- Status changes go through `transition_to`, which refuses to leave
  CANCELLED or COMPLETED
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Index, CheckConstraint, text

from swimclub.core.exceptions import TerminalStateViolation
from swimclub.db.base import Base, TimestampMixin


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


ALLOWED_TRANSITIONS = {
    ReservationStatus.PENDING: {
        ReservationStatus.CONFIRMED,
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
    },
    ReservationStatus.CONFIRMED: {
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
    },
    ReservationStatus.COMPLETED: set(),
    ReservationStatus.CANCELLED: set(),
}


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    is_paid = Column(Boolean, nullable=False, default=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_confirmed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED')",
            name="check_reservation_status",
        ),
        # Occupancy count for a day: WHERE schedule_id = ? AND date = ? AND status != 'CANCELLED'
        Index("ix_reservations_schedule_date_status", "schedule_id", "date", "status"),
        Index(
            "uq_reservations_active_user_schedule_date",
            "user_id",
            "schedule_id",
            "date",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    @property
    def is_cancelled(self) -> bool:
        return self.status == ReservationStatus.CANCELLED

    def transition_to(self, new_status: ReservationStatus) -> None:
        current = ReservationStatus(self.status)
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise TerminalStateViolation(
                f"RESERVATION_CANNOT_{new_status.value}_FROM_{current.value}",
                f"Reservation {self.id} cannot move from {current.value} to {new_status.value}",
            )
        self.status = new_status.value

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, user={self.user_id}, schedule={self.schedule_id}, date={self.date}, status={self.status})>"
