from typing import Optional

from sqlalchemy import delete, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.models.day_availability import DayAvailability
from swimclub.models.reservation import Reservation
from swimclub.models.schedule import Schedule


class ScheduleRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self) -> list[Schedule]:
        result = await self.db.execute(
            select(Schedule)
            .where(Schedule.is_active.is_(True))
            .order_by(Schedule.day_of_week.asc(), Schedule.start_time.asc())
        )
        return list(result.scalars().all())

    async def active_by_weekday(self) -> dict[int, Schedule]:
        return {schedule.day_of_week: schedule for schedule in await self.list_active()}

    async def find_by_id(self, schedule_id: int) -> Optional[Schedule]:
        result = await self.db.execute(select(Schedule).where(Schedule.id == schedule_id))
        return result.scalar_one_or_none()

    async def find_by_day_of_week(self, day_of_week: int) -> Optional[Schedule]:
        result = await self.db.execute(
            select(Schedule).where(
                Schedule.day_of_week == day_of_week,
                Schedule.is_active.is_(True),
            )
        )
        return result.scalars().first()

    async def create(self, **fields) -> Schedule:
        schedule = Schedule(**fields)
        self.db.add(schedule)
        await self.db.flush()
        await self.db.refresh(schedule)
        return schedule

    async def update(self, schedule: Schedule, **fields) -> Schedule:
        for name, value in fields.items():
            setattr(schedule, name, value)
        await self.db.flush()
        await self.db.refresh(schedule)
        return schedule

    async def count_reservations(self, schedule_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Reservation.id)).where(Reservation.schedule_id == schedule_id)
        )
        return result.scalar_one()

    async def delete(self, schedule: Schedule) -> bool:
        """
        Deactivate the schedule if any reservation references it, otherwise
        delete the row with its day overrides. Returns True for a soft delete.
        """
        if await self.count_reservations(schedule.id) > 0:
            schedule.is_active = False
            await self.db.flush()
            return True

        await self.db.execute(delete(DayAvailability).where(DayAvailability.schedule_id == schedule.id))
        await self.db.delete(schedule)
        await self.db.flush()
        return False
