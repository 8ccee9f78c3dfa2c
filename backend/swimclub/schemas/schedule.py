"""
Pydantic schemas for the weekly timetable.
"""

import datetime as dt
from typing import Optional

from pydantic import Field, model_validator

from swimclub.schemas.base import CamelModel


class ScheduleCreate(CamelModel):
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: dt.time
    end_time: dt.time
    max_capacity: int = Field(..., ge=0, le=500)
    lane_count: int = Field(..., ge=1, le=20)
    is_active: bool = True

    @model_validator(mode="after")
    def check_time_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        return self


class ScheduleUpdate(CamelModel):
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    max_capacity: Optional[int] = Field(None, ge=0, le=500)
    lane_count: Optional[int] = Field(None, ge=1, le=20)
    is_active: Optional[bool] = None


class ScheduleResponse(CamelModel):
    id: int
    day_of_week: int
    start_time: dt.time
    end_time: dt.time
    max_capacity: int
    lane_count: int
    is_active: bool


class ScheduleDeleteResponse(CamelModel):
    id: int
    deactivated: bool


class ScheduleAvailabilityResponse(CamelModel):
    schedule: ScheduleResponse
    date: dt.date
    is_open: Optional[bool]
    total_capacity: int
    reserved_spots: int
    available_spots: int
    is_full: bool
