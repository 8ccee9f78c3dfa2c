"""
Refund Ledger and Payment Record Store.

Both are append-mostly: refunds only move PENDING -> APPLIED, payment
records are never updated or deleted.
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.db.base import utcnow
from swimclub.models.payment import PaymentRecord
from swimclub.models.refund import CancellationRefund, RefundStatus


class RefundRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def pending_total(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(CancellationRefund.amount), 0)).where(
                CancellationRefund.user_id == user_id,
                CancellationRefund.status == RefundStatus.PENDING.value,
            )
        )
        return int(result.scalar_one())

    async def list_pending(self, user_id: int) -> list[CancellationRefund]:
        result = await self.db.execute(
            select(CancellationRefund)
            .where(
                CancellationRefund.user_id == user_id,
                CancellationRefund.status == RefundStatus.PENDING.value,
            )
            .order_by(CancellationRefund.id.asc())
        )
        return list(result.scalars().all())

    async def create(self, user_id: int, reservation_id: int, amount: int) -> CancellationRefund:
        refund = CancellationRefund(
            user_id=user_id,
            reservation_id=reservation_id,
            amount=amount,
            status=RefundStatus.PENDING.value,
        )
        self.db.add(refund)
        await self.db.flush()
        return refund

    async def mark_applied(self, refunds: list[CancellationRefund]) -> None:
        now = utcnow()
        for refund in refunds:
            refund.status = RefundStatus.APPLIED.value
            refund.applied_at = now
        await self.db.flush()


class PaymentRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        reservation_id: int,
        amount: int,
        payment_method: str,
        confirmed_by_id: int,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PaymentRecord:
        record = PaymentRecord(
            reservation_id=reservation_id,
            amount=amount,
            payment_method=payment_method,
            confirmed_by_id=confirmed_by_id,
            transaction_id=transaction_id,
            notes=notes,
        )
        self.db.add(record)
        await self.db.flush()
        return record
