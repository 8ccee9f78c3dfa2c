from swimclub.schemas.schedule import ScheduleCreate, ScheduleUpdate, ScheduleResponse
from swimclub.schemas.reservation import (
    ReservationCreate, BatchReservationCreate, ReleaseRequest, ConfirmPaymentRequest,
    ReservationResponse, BatchReservationResponse, ReleaseResponse, MonthlyContextResponse,
)
from swimclub.schemas.admin import (
    DatesRequest, CapacityUpdateRequest, OpenMonthResponse, CancelDaysResponse,
    DayCapacityResponse, AdminCalendarResponse, AppliedRefundsResponse,
)

__all__ = [
    "ScheduleCreate", "ScheduleUpdate", "ScheduleResponse",
    "ReservationCreate", "BatchReservationCreate", "ReleaseRequest", "ConfirmPaymentRequest",
    "ReservationResponse", "BatchReservationResponse", "ReleaseResponse", "MonthlyContextResponse",
    "DatesRequest", "CapacityUpdateRequest", "OpenMonthResponse", "CancelDaysResponse",
    "DayCapacityResponse", "AdminCalendarResponse", "AppliedRefundsResponse",
]
