"""
Weekly pool session slot.

Key design decisions:
- `day_of_week` follows `date.weekday()`: 0 = Monday ... 6 = Sunday
- At most one active schedule per weekday, enforced by a partial unique index
- Schedules referenced by reservations are deactivated, never deleted
"""

from sqlalchemy import Column, Integer, Boolean, Time, Index, CheckConstraint, text

from swimclub.db.base import Base, TimestampMixin


class Schedule(Base, TimestampMixin):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    lane_count = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_schedule_day_of_week"),
        CheckConstraint("max_capacity >= 0", name="check_schedule_capacity_non_negative"),
        CheckConstraint("lane_count > 0", name="check_schedule_lane_count_positive"),
        CheckConstraint("start_time < end_time", name="check_schedule_time_window"),
        Index(
            "uq_schedules_active_day",
            "day_of_week",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Schedule(id={self.id}, day={self.day_of_week}, {self.start_time}-{self.end_time}, cap={self.max_capacity})>"
