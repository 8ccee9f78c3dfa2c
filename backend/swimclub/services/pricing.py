"""
Session pricing by membership tier.

Club members and non-members pay a different price per pool session; the
table comes from settings so the treasurer can change it without a deploy.
"""

from dataclasses import dataclass

from swimclub.core.config import get_settings
from swimclub.models.user import User


@dataclass(frozen=True)
class PriceTable:
    member: int
    non_member: int

    @classmethod
    def from_settings(cls) -> "PriceTable":
        settings = get_settings()
        return cls(member=settings.PRICE_MEMBER, non_member=settings.PRICE_NON_MEMBER)

    def price_for(self, user: User) -> int:
        return self.member if user.is_member else self.non_member


def compute_total(session_count: int, price_per_session: int, pending_refunds: int) -> int:
    """Amount due for a batch, net of pending refunds and never negative."""
    return max(0, session_count * price_per_session - pending_refunds)
