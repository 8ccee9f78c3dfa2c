"""
Notifier implementations.

SmtpNotifier runs the blocking smtplib exchange in a worker thread so a slow
mail server never stalls the event loop.
"""

import asyncio
import smtplib
from email.message import EmailMessage

from swimclub.core.config import Settings
from swimclub.core.logging import get_logger
from swimclub.models.user import User
from swimclub.services.interfaces.notifier import Notifier, BatchConfirmation, ReleaseConfirmation

logger = get_logger(__name__)


def _format_dates(dates) -> str:
    return "\n".join(f"  - {day.strftime('%A %d/%m/%Y')}" for day in sorted(dates))


def render_batch_confirmation(user: User, details: BatchConfirmation) -> tuple[str, str]:
    subject = f"Reservation confirmed: {details.session_count} pool session(s)"
    body = (
        f"Hello {user.name},\n\n"
        f"Your reservations for the following dates were registered:\n"
        f"{_format_dates(details.dates)}\n\n"
        f"Sessions: {details.session_count}\n"
        f"Price per session: ${details.price_per_session:,}\n"
        f"Pending refunds applied: ${details.pending_refunds:,}\n"
        f"Total to pay: ${details.total_amount:,}\n"
    )
    return subject, body


def render_release_confirmation(user: User, details: ReleaseConfirmation) -> tuple[str, str]:
    subject = f"Released {len(details.dates)} pool session(s)"
    body = (
        f"Hello {user.name},\n\n"
        f"The following sessions were released and are available to other members:\n"
        f"{_format_dates(details.dates)}\n"
    )
    return subject, body


class LogNotifier(Notifier):
    """Writes notifications to the log. Default outside production."""

    async def send_batch_confirmation(self, user: User, details: BatchConfirmation) -> None:
        logger.info(
            "batch_confirmation_notified",
            user_id=user.id,
            dates=[str(day) for day in details.dates],
            sessions=details.session_count,
            total_amount=details.total_amount,
        )

    async def send_release_confirmation(self, user: User, details: ReleaseConfirmation) -> None:
        logger.info(
            "release_confirmation_notified",
            user_id=user.id,
            dates=[str(day) for day in details.dates],
        )


class SmtpNotifier(Notifier):
    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME
        self.use_tls = settings.SMTP_USE_TLS

        if not self.host or not self.from_email:
            raise ValueError("SMTP_HOST and SMTP_FROM_EMAIL are required for the smtp notifier")

    def _send(self, to_email: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def _deliver(self, user: User, subject: str, body: str) -> None:
        await asyncio.to_thread(self._send, user.email, subject, body)
        logger.info("email_sent", user_id=user.id, subject=subject)

    async def send_batch_confirmation(self, user: User, details: BatchConfirmation) -> None:
        await self._deliver(user, *render_batch_confirmation(user, details))

    async def send_release_confirmation(self, user: User, details: ReleaseConfirmation) -> None:
        await self._deliver(user, *render_release_confirmation(user, details))
