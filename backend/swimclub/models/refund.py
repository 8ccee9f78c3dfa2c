"""
Credit owed to a member after an administrator cancelled a day they had
booked. PENDING refunds are netted against the member's next batch total.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index

from swimclub.db.base import Base, TimestampMixin


class RefundStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPLIED = "APPLIED"


class CancellationRefund(Base, TimestampMixin):
    __tablename__ = "cancellation_refunds"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=RefundStatus.PENDING.value)
    applied_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_refund_amount_non_negative"),
        CheckConstraint("status IN ('PENDING', 'APPLIED')", name="check_refund_status"),
        Index("ix_cancellation_refunds_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<CancellationRefund(id={self.id}, user={self.user_id}, amount={self.amount}, status={self.status})>"
