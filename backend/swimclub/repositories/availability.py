"""
Day Availability Store.

Rows are written with a dialect-level upsert keyed by (date, schedule_id),
so opening a day twice, or overriding the capacity of a day that is
already open, never creates a second row.

`lock` is the serialization point for bookings: it bumps the row's
`version` with an UPDATE, which keeps the row write-locked until the
transaction ends (a row lock on PostgreSQL, the database write lock on
SQLite). Every transaction that counts and then inserts reservations for
a day takes this lock first, so two concurrent bookings for the same day
cannot both read the same occupancy.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.core.logging import get_logger
from swimclub.core.metrics import day_locks
from swimclub.db.base import utcnow
from swimclub.models.day_availability import DayAvailability
from swimclub.models.schedule import Schedule

logger = get_logger(__name__)

_UNSET = object()


def effective_capacity(schedule: Schedule, availability: Optional[DayAvailability]) -> int:
    """Capacity for one date: the day's override if set, else the schedule default."""
    if availability is not None and availability.capacity_override is not None:
        return availability.capacity_override
    return schedule.max_capacity


class DayAvailabilityRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, day: date, schedule_id: int) -> Optional[DayAvailability]:
        result = await self.db.execute(
            select(DayAvailability)
            .where(DayAvailability.date == day, DayAvailability.schedule_id == schedule_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_for_range(
        self, schedule_id: Optional[int], date_from: date, date_to: date
    ) -> dict[tuple[int, date], DayAvailability]:
        """Rows in the range, keyed by (schedule_id, date). A None schedule_id covers every schedule."""
        query = select(DayAvailability).where(
            DayAvailability.date >= date_from, DayAvailability.date <= date_to
        )
        if schedule_id is not None:
            query = query.where(DayAvailability.schedule_id == schedule_id)
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return {(row.schedule_id, row.date): row for row in result.scalars().all()}

    async def available_dates(self, date_from: date, date_to: date) -> list[date]:
        result = await self.db.execute(
            select(DayAvailability.date)
            .where(
                DayAvailability.date >= date_from,
                DayAvailability.date <= date_to,
                DayAvailability.is_available.is_(True),
            )
            .distinct()
            .order_by(DayAvailability.date.asc())
        )
        return list(result.scalars().all())

    def _insert(self):
        dialect = self.db.bind.dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise NotImplementedError(f"No upsert support for dialect {dialect}")

    async def upsert(
        self,
        day: date,
        schedule_id: int,
        *,
        is_available=_UNSET,
        capacity_override=_UNSET,
        created_by_id: Optional[int] = None,
    ) -> DayAvailability:
        """
        Insert or update the (day, schedule) row. Only the fields passed are
        overwritten on an existing row; a new row defaults to open with no
        capacity override.
        """
        now = utcnow()
        insert = self._insert()
        stmt = insert(DayAvailability).values(
            date=day,
            schedule_id=schedule_id,
            is_available=True if is_available is _UNSET else is_available,
            capacity_override=None if capacity_override is _UNSET else capacity_override,
            created_by_id=created_by_id,
            version=1,
            created_at=now,
            updated_at=now,
        )

        changes = {"updated_at": stmt.excluded.updated_at}
        if is_available is not _UNSET:
            changes["is_available"] = stmt.excluded.is_available
        if capacity_override is not _UNSET:
            changes["capacity_override"] = stmt.excluded.capacity_override

        stmt = stmt.on_conflict_do_update(index_elements=["date", "schedule_id"], set_=changes)
        await self.db.execute(stmt)

        row = await self.find(day, schedule_id)
        logger.debug(
            "day_availability_upserted",
            date=str(day),
            schedule_id=schedule_id,
            is_available=row.is_available,
            capacity_override=row.capacity_override,
        )
        return row

    async def lock(self, day: date, schedule_id: int) -> Optional[DayAvailability]:
        """Write-lock the day's row for the rest of the transaction and return it fresh."""
        result = await self.db.execute(
            update(DayAvailability)
            .where(DayAvailability.date == day, DayAvailability.schedule_id == schedule_id)
            .values(version=DayAvailability.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None

        day_locks.inc()
        return await self.find(day, schedule_id)
