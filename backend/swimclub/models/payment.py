"""
Append-only audit of a confirmed payment for a reservation.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint

from swimclub.db.base import Base, utcnow


class PaymentRecord(Base):
    __tablename__ = "payment_records"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    payment_method = Column(String(50), nullable=False)
    transaction_id = Column(String(100), nullable=True)
    notes = Column(String(500), nullable=True)
    confirmed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_payment_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<PaymentRecord(id={self.id}, reservation={self.reservation_id}, amount={self.amount})>"
