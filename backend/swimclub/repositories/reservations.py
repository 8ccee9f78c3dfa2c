"""
Reservation Ledger.

"Active" means any status other than CANCELLED. Occupancy counts, the
duplicate check and the per-user calendar all go through the composite
(schedule_id, date, status) index.
"""

from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.models.reservation import Reservation, ReservationStatus, ACTIVE_STATUSES


class ReservationRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, reservation_id: int) -> Optional[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_owned(self, user_id: int, reservation_ids: Iterable[int]) -> list[Reservation]:
        ids = set(reservation_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.user_id == user_id, Reservation.id.in_(ids))
            .order_by(Reservation.date.asc())
        )
        return list(result.scalars().all())

    async def find_active(self, user_id: int, schedule_id: int, day: date) -> Optional[Reservation]:
        result = await self.db.execute(
            select(Reservation).where(
                Reservation.user_id == user_id,
                Reservation.schedule_id == schedule_id,
                Reservation.date == day,
                Reservation.status != ReservationStatus.CANCELLED.value,
            )
        )
        return result.scalars().first()

    async def count_active(self, schedule_id: int, day: date) -> int:
        result = await self.db.execute(
            select(func.count(Reservation.id)).where(
                Reservation.schedule_id == schedule_id,
                Reservation.date == day,
                Reservation.status != ReservationStatus.CANCELLED.value,
            )
        )
        return result.scalar_one()

    async def count_active_by_day(self, date_from: date, date_to: date) -> dict[tuple[int, date], int]:
        """Occupancy for every (schedule_id, date) in the range that has bookings."""
        result = await self.db.execute(
            select(Reservation.schedule_id, Reservation.date, func.count(Reservation.id))
            .where(
                Reservation.date >= date_from,
                Reservation.date <= date_to,
                Reservation.status != ReservationStatus.CANCELLED.value,
            )
            .group_by(Reservation.schedule_id, Reservation.date)
        )
        return {(schedule_id, day): count for schedule_id, day, count in result.all()}

    async def find_for_user_in_range(self, user_id: int, date_from: date, date_to: date) -> list[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.user_id == user_id,
                Reservation.date >= date_from,
                Reservation.date <= date_to,
            )
            .order_by(Reservation.date.asc(), Reservation.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_cancellable_on(self, schedule_id: int, day: date) -> list[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.schedule_id == schedule_id,
                Reservation.date == day,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Reservation.id.asc())
        )
        return list(result.scalars().all())

    async def create(self, user_id: int, schedule_id: int, day: date, notes: Optional[str] = None) -> Reservation:
        reservation = Reservation(
            user_id=user_id,
            schedule_id=schedule_id,
            date=day,
            status=ReservationStatus.PENDING.value,
            is_paid=False,
            notes=notes,
        )
        self.db.add(reservation)
        await self.db.flush()
        return reservation

    async def list_for_user(self, user_id: int, status: Optional[ReservationStatus] = None) -> list[Reservation]:
        query = select(Reservation).where(Reservation.user_id == user_id)
        if status:
            query = query.where(Reservation.status == status.value)
        result = await self.db.execute(query.order_by(Reservation.date.asc()))
        return list(result.scalars().all())

    async def list_filtered(
        self,
        status: Optional[ReservationStatus] = None,
        day: Optional[date] = None,
        user_id: Optional[int] = None,
        schedule_id: Optional[int] = None,
    ) -> list[Reservation]:
        query = select(Reservation)
        if status:
            query = query.where(Reservation.status == status.value)
        if day:
            query = query.where(Reservation.date == day)
        if user_id:
            query = query.where(Reservation.user_id == user_id)
        if schedule_id:
            query = query.where(Reservation.schedule_id == schedule_id)

        result = await self.db.execute(
            query.order_by(Reservation.date.asc(), Reservation.created_at.asc())
        )
        return list(result.scalars().all())
