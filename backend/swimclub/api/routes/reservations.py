"""
Member reservation endpoints: monthly calendar, batch enrollment and
self-release, plus single bookings and the payment lifecycle.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from swimclub.api.dependencies import get_booking_engine
from swimclub.core.security import get_current_user, require_roles
from swimclub.models.reservation import ReservationStatus
from swimclub.models.user import Role, User
from swimclub.schemas.reservation import (
    BatchReservationCreate,
    BatchReservationResponse,
    ConfirmPaymentRequest,
    MonthlyContextResponse,
    ReleaseRequest,
    ReleaseResponse,
    ReservationCreate,
    ReservationResponse,
)
from swimclub.services.booking_engine import BookingEngine

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.get("/context", response_model=MonthlyContextResponse)
async def monthly_context(
    month_year: str = Query(..., alias="monthYear"),
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """
    The caller's calendar for one month: every session day with the
    caller's booking status, whether next month is open for enrollment,
    the caller's price per session and pending refunds.
    """
    return await engine.get_monthly_context(user, month_year)


@router.post("/batch", response_model=BatchReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    payload: BatchReservationCreate,
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """
    Book a set of next-month dates in one transaction.

    Either every date is booked or none is; the first failing date, in the
    order sent, decides the error returned.
    """
    return await engine.create_batch_reservations(user, payload.dates)


@router.post("/release", response_model=ReleaseResponse)
async def release(
    payload: ReleaseRequest,
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Give back future bookings. Past or already closed ones are skipped."""
    return await engine.release_slots(user, payload.reservation_ids)


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.create_reservation(user, payload.schedule_id, payload.date, payload.notes)


@router.get("/my-reservations", response_model=list[ReservationResponse])
async def my_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.list_user_reservations(user, status_filter)


@router.get("", response_model=list[ReservationResponse])
async def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    day: Optional[str] = Query(None, alias="date"),
    user_id: Optional[int] = Query(None, alias="userId"),
    schedule_id: Optional[int] = Query(None, alias="scheduleId"),
    _: User = Depends(require_roles(Role.ADMIN, Role.TREASURER)),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """All reservations, filtered. Staff only."""
    return await engine.list_reservations(status_filter, day, user_id, schedule_id)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int,
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.get_reservation(user, reservation_id)


@router.put("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    user: User = Depends(get_current_user),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Cancel one reservation. Owners cancel their own; admins cancel any."""
    return await engine.cancel_reservation(user, reservation_id)


@router.put("/{reservation_id}/confirm-payment", response_model=ReservationResponse)
async def confirm_payment(
    reservation_id: int,
    payload: ConfirmPaymentRequest,
    staff: User = Depends(require_roles(Role.ADMIN, Role.TREASURER)),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Record a payment and confirm the reservation. Paying twice is a 409."""
    return await engine.confirm_payment(
        reservation_id,
        payload.amount,
        payload.payment_method,
        staff,
        transaction_id=payload.transaction_id,
        notes=payload.notes,
    )


@router.put("/{reservation_id}/complete", response_model=ReservationResponse)
async def complete_reservation(
    reservation_id: int,
    _: User = Depends(require_roles(Role.ADMIN)),
    engine: BookingEngine = Depends(get_booking_engine),
):
    return await engine.complete_reservation(reservation_id)
