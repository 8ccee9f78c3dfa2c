"""
Notifier factory.
Configures which notification channel the booking engine uses.
"""

from typing import Optional

from swimclub.core.config import get_settings
from swimclub.services.interfaces.notifier import Notifier
from swimclub.services.notification_service import LogNotifier, SmtpNotifier


def build_notifier() -> Notifier:
    """
    Build the configured notifier.

    - log (default): structured log only, for development and tests
    - smtp: email through the configured SMTP relay
    """
    settings = get_settings()
    if settings.NOTIFIER == "smtp":
        return SmtpNotifier(settings)
    return LogNotifier()


# Singleton instance
_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """FastAPI dependency: the process-wide notifier."""
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier
