"""
Pydantic schemas for reservation requests and responses.

Dates travel as YYYY-MM-DD strings and are parsed by the booking engine,
so a malformed date is reported with the same error kind from every entry
point.
"""

import datetime as dt
from typing import Optional

from pydantic import Field

from swimclub.models.reservation import ReservationStatus
from swimclub.schemas.base import CamelModel

DAY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ReservationCreate(CamelModel):
    schedule_id: int = Field(..., gt=0)
    date: str = Field(..., pattern=DAY_PATTERN)
    notes: Optional[str] = Field(None, max_length=500)


class BatchReservationCreate(CamelModel):
    dates: list[str] = Field(..., min_length=1, max_length=31)


class ReleaseRequest(CamelModel):
    reservation_ids: list[int] = Field(..., min_length=1)


class ConfirmPaymentRequest(CamelModel):
    amount: int = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1, max_length=50)
    transaction_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)


class ReservationResponse(CamelModel):
    id: int
    user_id: int
    schedule_id: int
    date: dt.date
    status: ReservationStatus
    is_paid: bool
    payment_date: Optional[dt.datetime] = None
    notes: Optional[str] = None
    created_at: dt.datetime


class BatchReservationResponse(CamelModel):
    reservation_ids: list[int]
    dates: list[dt.date]
    session_count: int
    price_per_session: int
    pending_refunds: int
    total_amount: int


class ReleaseResponse(CamelModel):
    released: int
    reservation_ids: list[int]
    dates: list[dt.date]


class CalendarDay(CamelModel):
    date: dt.date
    day_of_week: int
    schedule_id: int
    status: Optional[str] = None
    reservation_id: Optional[int] = None


class ContextSchedule(CamelModel):
    id: int
    day_of_week: int
    label: str


class Pricing(CamelModel):
    is_member: bool
    price_per_session: int


class MonthlyContextResponse(CamelModel):
    month_year: str
    calendar: list[CalendarDay]
    can_reserve_next_month: bool
    next_month_available_dates: list[dt.date]
    pricing: Pricing
    pending_refunds: int
    schedules: list[ContextSchedule]
