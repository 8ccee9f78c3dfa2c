"""
Notification sender interface.
Allows swapping the delivery channel without touching the booking engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

from swimclub.models.user import User


@dataclass(frozen=True)
class BatchConfirmation:
    dates: list[date]
    session_count: int
    price_per_session: int
    pending_refunds: int
    total_amount: int


@dataclass(frozen=True)
class ReleaseConfirmation:
    dates: list[date]


class Notifier(ABC):
    """
    Interface for member notifications.

    Implementations:
    - LogNotifier: writes the notification to the structured log
    - SmtpNotifier: sends a plain-text email

    Called only after the booking transaction has committed. Implementations
    may raise; the engine logs the failure and keeps the booking.
    """

    @abstractmethod
    async def send_batch_confirmation(self, user: User, details: BatchConfirmation) -> None:
        pass

    @abstractmethod
    async def send_release_confirmation(self, user: User, details: ReleaseConfirmation) -> None:
        pass
