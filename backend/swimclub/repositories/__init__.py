"""
Data access for the reservation engine: one repository per store, each
bound to the caller's AsyncSession so several stores can share a
transaction.
"""

from swimclub.repositories.schedules import ScheduleRepository
from swimclub.repositories.availability import DayAvailabilityRepository, effective_capacity
from swimclub.repositories.reservations import ReservationRepository
from swimclub.repositories.ledger import RefundRepository, PaymentRepository
from swimclub.repositories.users import UserRepository

__all__ = [
    "ScheduleRepository",
    "DayAvailabilityRepository", "effective_capacity",
    "ReservationRepository",
    "RefundRepository", "PaymentRepository",
    "UserRepository",
]
