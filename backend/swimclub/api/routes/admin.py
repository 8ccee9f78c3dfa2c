"""
Administrator endpoints for the club calendar: opening next month,
cancelling days with refunds, per-day capacity and the occupancy view.
"""

from fastapi import APIRouter, Depends, Query

from swimclub.api.dependencies import get_booking_engine
from swimclub.core.security import require_roles
from swimclub.models.user import Role, User
from swimclub.schemas.admin import (
    AdminCalendarResponse,
    AppliedRefundsResponse,
    CancelDaysResponse,
    CapacityUpdateRequest,
    DatesRequest,
    DayCapacityResponse,
    OpenMonthResponse,
)
from swimclub.services.booking_engine import BookingEngine

router = APIRouter(prefix="/admin", tags=["Admin"])

require_admin = require_roles(Role.ADMIN)


@router.get("/reservations/calendar", response_model=AdminCalendarResponse)
async def admin_calendar(
    month_year: str = Query(..., alias="monthYear"),
    _: User = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Reserved count against effective capacity for every session day of the month."""
    return await engine.get_admin_calendar(month_year)


@router.post("/reservations/open-month", response_model=OpenMonthResponse)
async def open_month(
    payload: DatesRequest,
    admin: User = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """
    Open next-month days for enrollment. Dates outside next month or
    without a session are ignored; the response lists the days opened.
    """
    opened = await engine.open_next_month(admin, payload.dates)
    return OpenMonthResponse(opened=opened)


@router.post("/reservations/cancel-days", response_model=CancelDaysResponse)
async def cancel_days(
    payload: DatesRequest,
    admin: User = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Close days, cancel their bookings and credit a refund to each member."""
    return await engine.cancel_days(admin, payload.dates)


@router.put("/reservations/capacity", response_model=DayCapacityResponse)
async def update_capacity(
    payload: CapacityUpdateRequest,
    admin: User = Depends(require_admin),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.update_day_capacity(admin, payload.date, payload.schedule_id, payload.capacity_override)


@router.post("/refunds/{user_id}/apply", response_model=AppliedRefundsResponse)
async def apply_refunds(
    user_id: int,
    _: User = Depends(require_roles(Role.ADMIN, Role.TREASURER)),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Mark a member's pending refunds as settled."""
    applied, amount = await engine.apply_pending_refunds(user_id)
    return AppliedRefundsResponse(user_id=user_id, applied=applied, amount=amount)
