"""
Pydantic schemas for administrator calendar operations.
"""

import datetime as dt
from typing import Optional

from pydantic import Field

from swimclub.schemas.base import CamelModel
from swimclub.schemas.reservation import DAY_PATTERN


class DatesRequest(CamelModel):
    dates: list[str] = Field(..., min_length=1, max_length=62)


class CapacityUpdateRequest(CamelModel):
    date: str = Field(..., pattern=DAY_PATTERN)
    schedule_id: int = Field(..., gt=0)
    capacity_override: int


class OpenMonthResponse(CamelModel):
    opened: list[dt.date]


class CancelDaysResponse(CamelModel):
    cancelled_dates: list[dt.date]
    cancelled_reservations: int
    refunds_created: int
    refund_total: int


class DayCapacityResponse(CamelModel):
    date: dt.date
    schedule_id: int
    is_available: bool
    capacity_override: Optional[int]
    effective_capacity: int


class AdminCalendarDay(CamelModel):
    date: dt.date
    day_of_week: int
    schedule_id: int
    is_available: Optional[bool]
    reserved_count: int
    effective_capacity: int
    available_spots: int


class AdminCalendarResponse(CamelModel):
    month_year: str
    days: list[AdminCalendarDay]


class AppliedRefundsResponse(CamelModel):
    user_id: int
    applied: int
    amount: int
