from swimclub.models.user import User, Role
from swimclub.models.schedule import Schedule
from swimclub.models.day_availability import DayAvailability
from swimclub.models.reservation import Reservation, ReservationStatus
from swimclub.models.refund import CancellationRefund, RefundStatus
from swimclub.models.payment import PaymentRecord

__all__ = [
    "User", "Role",
    "Schedule",
    "DayAvailability",
    "Reservation", "ReservationStatus",
    "CancellationRefund", "RefundStatus",
    "PaymentRecord",
]
