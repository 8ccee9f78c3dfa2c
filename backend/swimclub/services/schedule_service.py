"""
Schedule Registry service: the weekly timetable and per-day availability
lookups for it.
"""

from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.core.dates import parse_day
from swimclub.core.exceptions import Conflict, InvalidInput, NotFound
from swimclub.core.logging import get_logger
from swimclub.models.schedule import Schedule
from swimclub.repositories import DayAvailabilityRepository, ReservationRepository, ScheduleRepository
from swimclub.repositories.availability import effective_capacity
from swimclub.schemas.schedule import ScheduleCreate, ScheduleResponse, ScheduleUpdate
from swimclub.services.cache_service import (
    get_cached_schedules,
    invalidate_schedule_cache,
    set_cached_schedules,
)

logger = get_logger(__name__)


async def list_active_schedules(db: AsyncSession) -> list[dict]:
    """Active timetable, served from Redis when warm."""
    cached = await get_cached_schedules()
    if cached is not None:
        return cached

    schedules = await ScheduleRepository(db).list_active()
    data = [ScheduleResponse.model_validate(s).model_dump(mode="json", by_alias=True) for s in schedules]
    await set_cached_schedules(data)
    return data


async def get_schedule(db: AsyncSession, schedule_id: int) -> Schedule:
    schedule = await ScheduleRepository(db).find_by_id(schedule_id)
    if not schedule:
        raise NotFound("SCHEDULE_NOT_FOUND", f"Schedule {schedule_id} not found")
    return schedule


async def _ensure_weekday_free(repo: ScheduleRepository, day_of_week: int, exclude_id: Optional[int] = None) -> None:
    existing = await repo.find_by_day_of_week(day_of_week)
    if existing and existing.id != exclude_id:
        raise Conflict(
            "SCHEDULE_DAY_TAKEN",
            f"Schedule {existing.id} is already active on weekday {day_of_week}",
        )


async def create_schedule(db: AsyncSession, data: ScheduleCreate) -> Schedule:
    repo = ScheduleRepository(db)
    if data.is_active:
        await _ensure_weekday_free(repo, data.day_of_week)

    schedule = await repo.create(**data.model_dump())
    await invalidate_schedule_cache()

    logger.info(
        "schedule_created",
        schedule_id=schedule.id,
        day_of_week=schedule.day_of_week,
        capacity=schedule.max_capacity,
    )
    return schedule


async def update_schedule(db: AsyncSession, schedule_id: int, data: ScheduleUpdate) -> Schedule:
    repo = ScheduleRepository(db)
    schedule = await get_schedule(db, schedule_id)
    changes = data.model_dump(exclude_unset=True)

    start = changes.get("start_time", schedule.start_time)
    end = changes.get("end_time", schedule.end_time)
    if start >= end:
        raise InvalidInput("SCHEDULE_INVALID_TIME_WINDOW", "startTime must be before endTime")

    day_of_week = changes.get("day_of_week", schedule.day_of_week)
    if changes.get("is_active", schedule.is_active):
        await _ensure_weekday_free(repo, day_of_week, exclude_id=schedule.id)

    schedule = await repo.update(schedule, **changes)
    await invalidate_schedule_cache()

    logger.info("schedule_updated", schedule_id=schedule.id, fields=sorted(changes))
    return schedule


async def delete_schedule(db: AsyncSession, schedule_id: int) -> bool:
    """Returns True when the schedule was only deactivated."""
    schedule = await get_schedule(db, schedule_id)
    deactivated = await ScheduleRepository(db).delete(schedule)
    await invalidate_schedule_cache()

    logger.info("schedule_deleted", schedule_id=schedule_id, soft=deactivated)
    return deactivated


async def check_availability(db: AsyncSession, schedule_id: int, day_value: str) -> dict:
    """Occupancy of one schedule on one date, using the day's effective capacity."""
    day: date = parse_day(day_value)
    schedule = await get_schedule(db, schedule_id)

    availability = await DayAvailabilityRepository(db).find(day, schedule.id)
    reserved = await ReservationRepository(db).count_active(schedule.id, day)
    capacity = effective_capacity(schedule, availability)
    available = max(0, capacity - reserved)

    return {
        "schedule": ScheduleResponse.model_validate(schedule),
        "date": day,
        "is_open": availability.is_available if availability else None,
        "total_capacity": capacity,
        "reserved_spots": reserved,
        "available_spots": available,
        "is_full": available == 0,
    }
