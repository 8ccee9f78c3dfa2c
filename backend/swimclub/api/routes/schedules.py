"""
Weekly timetable endpoints. Reads are public and the active list is
served from Redis; writes are admin only and invalidate the cache.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.core.security import require_roles
from swimclub.db.session import get_db
from swimclub.models.user import Role, User
from swimclub.schemas.schedule import (
    ScheduleAvailabilityResponse,
    ScheduleCreate,
    ScheduleDeleteResponse,
    ScheduleResponse,
    ScheduleUpdate,
)
from swimclub.services.schedule_service import (
    check_availability,
    create_schedule,
    delete_schedule,
    get_schedule,
    list_active_schedules,
    update_schedule,
)

router = APIRouter(prefix="/schedules", tags=["Schedules"])

require_admin = require_roles(Role.ADMIN)


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules_endpoint(db: AsyncSession = Depends(get_db)):
    """Active schedules, one per weekday at most. Cached for REDIS_CACHE_TTL seconds."""
    return await list_active_schedules(db)


@router.get("/availability", response_model=ScheduleAvailabilityResponse)
async def availability_endpoint(
    schedule_id: int = Query(..., alias="scheduleId"),
    day: str = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
):
    """Places left on one date, using the day's capacity override when set."""
    return await check_availability(db, schedule_id, day)


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule_endpoint(schedule_id: int, db: AsyncSession = Depends(get_db)):
    return await get_schedule(db, schedule_id)


@router.post("", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule_endpoint(
    payload: ScheduleCreate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await create_schedule(db, payload)


@router.put("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule_endpoint(
    schedule_id: int,
    payload: ScheduleUpdate,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await update_schedule(db, schedule_id, payload)


@router.delete("/{schedule_id}", response_model=ScheduleDeleteResponse)
async def delete_schedule_endpoint(
    schedule_id: int,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Remove a schedule. One with reservations is deactivated instead so
    its booking history stays intact.
    """
    deactivated = await delete_schedule(db, schedule_id)
    return ScheduleDeleteResponse(id=schedule_id, deactivated=deactivated)
