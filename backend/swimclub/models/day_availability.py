"""
Per-date override of a schedule: open/closed for booking and an optional
capacity for that date only.

Key design decisions:
- Unique on (date, schedule_id) so opening a day twice is an upsert
- `version` is bumped by every booking transaction on the day. The UPDATE
  holds the row's write lock until commit, which serializes the
  count-then-insert of concurrent bookings for the same day.
"""

from sqlalchemy import Column, Integer, Boolean, Date, ForeignKey, UniqueConstraint, CheckConstraint, Index

from swimclub.db.base import Base, TimestampMixin


class DayAvailability(Base, TimestampMixin):
    __tablename__ = "day_availability"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    is_available = Column(Boolean, nullable=False, default=True)
    capacity_override = Column(Integer, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("date", "schedule_id", name="uq_day_availability_date_schedule"),
        CheckConstraint(
            "capacity_override IS NULL OR capacity_override >= 0",
            name="check_capacity_override_non_negative",
        ),
        Index("ix_day_availability_date_available", "date", "is_available"),
    )

    def __repr__(self) -> str:
        return (
            f"<DayAvailability(date={self.date}, schedule={self.schedule_id}, "
            f"available={self.is_available}, override={self.capacity_override})>"
        )
