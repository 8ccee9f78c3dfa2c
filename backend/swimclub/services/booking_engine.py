"""
Booking engine: monthly enrollment, releases and admin day management on
top of the schedule, availability, reservation and refund stores.

CONCURRENCY STRATEGY: per-day write lock
========================================

Problem:
  Two members book the last place of a day at the same time. Both count
  4 of 5 places taken, both insert. Result: 6 of 5.

Solution:
  Every transaction that inserts reservations for a day first bumps the
  day's DayAvailability.version:

    UPDATE day_availability SET version = version + 1
    WHERE date = :date AND schedule_id = :schedule_id

  The UPDATE keeps that row write-locked until commit, so the second
  transaction waits there and only counts after the first has committed.
  Locks for a batch are taken in (date, schedule_id) order so two batches
  over overlapping days cannot deadlock.

  Validation runs once without locks, in the order the caller sent the
  dates, so the first failing date decides the error. The capacity and
  duplicate checks run again under the locks before anything is inserted.
  The partial unique index on active reservations is the final safety net
  for duplicates.

Transactions:
  Multi-row operations commit inside `_transaction`: all rows or none.
  Notifications go out only after commit and can never undo a booking.
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.core.dates import (
    Clock,
    club_today,
    current_month_window,
    in_window,
    iter_month,
    month_bounds,
    next_month_window,
    parse_day,
    parse_days,
    parse_month,
)
from swimclub.core.exceptions import (
    BookingError,
    Conflict,
    DependencyFailure,
    Forbidden,
    InvalidInput,
    InvalidWindow,
    NotFound,
    TerminalStateViolation,
)
from swimclub.core.logging import get_logger
from swimclub.core.metrics import (
    batch_latency,
    day_cancellations,
    record_notification,
    record_reservation_attempt,
    refunds_created,
)
from swimclub.db.base import utcnow
from swimclub.models.day_availability import DayAvailability
from swimclub.models.reservation import Reservation, ReservationStatus
from swimclub.models.schedule import Schedule
from swimclub.models.user import Role, User
from swimclub.repositories import (
    DayAvailabilityRepository,
    PaymentRepository,
    RefundRepository,
    ReservationRepository,
    ScheduleRepository,
    UserRepository,
    effective_capacity,
)
from swimclub.services.interfaces.notifier import BatchConfirmation, Notifier, ReleaseConfirmation
from swimclub.services.pricing import PriceTable, compute_total

logger = get_logger(__name__)

WEEKDAY_LABELS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _outcome(error: BookingError) -> str:
    if isinstance(error, Conflict):
        return "conflict"
    if isinstance(error, DependencyFailure):
        return "error"
    return "invalid"


@dataclass
class BatchResult:
    reservation_ids: list[int]
    dates: list[date]
    session_count: int
    price_per_session: int
    pending_refunds: int
    total_amount: int


@dataclass
class ReleaseResult:
    released: int
    reservation_ids: list[int]
    dates: list[date]


@dataclass
class CancelDaysResult:
    cancelled_dates: list[date]
    cancelled_reservations: int
    refunds_created: int
    refund_total: int


@dataclass
class DayCapacityResult:
    date: date
    schedule_id: int
    is_available: bool
    capacity_override: Optional[int]
    effective_capacity: int


class BookingEngine:
    def __init__(
        self,
        db: AsyncSession,
        *,
        schedules: ScheduleRepository,
        availability: DayAvailabilityRepository,
        reservations: ReservationRepository,
        refunds: RefundRepository,
        payments: PaymentRepository,
        users: UserRepository,
        notifier: Notifier,
        prices: PriceTable,
        clock: Clock = club_today,
    ):
        self.db = db
        self.schedules = schedules
        self.availability = availability
        self.reservations = reservations
        self.refunds = refunds
        self.payments = payments
        self.users = users
        self.notifier = notifier
        self.prices = prices
        self.clock = clock

    @classmethod
    def for_session(
        cls,
        db: AsyncSession,
        notifier: Notifier,
        prices: PriceTable,
        clock: Clock = club_today,
    ) -> "BookingEngine":
        return cls(
            db,
            schedules=ScheduleRepository(db),
            availability=DayAvailabilityRepository(db),
            reservations=ReservationRepository(db),
            refunds=RefundRepository(db),
            payments=PaymentRepository(db),
            users=UserRepository(db),
            notifier=notifier,
            prices=prices,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self, operation: str):
        try:
            yield
            await self.db.commit()
        except BookingError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("booking_integrity_conflict", operation=operation, error=str(e.orig))
            raise Conflict("RESERVATION_CONFLICT", "The reservation conflicts with an existing booking")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("booking_transaction_failed", operation=operation, error=str(e))
            raise DependencyFailure("STORAGE_UNAVAILABLE", "The reservation store is unavailable")

    @asynccontextmanager
    async def _snapshot(self, operation: str):
        """
        One read transaction for an aggregated view, so every query sees the
        same committed state.

        PostgreSQL runs it at REPEATABLE READ. The SQLite driver only opens a
        transaction before writes, so an explicit BEGIN is issued; its shared
        lock keeps the reads consistent until the commit below.
        """
        dialect = self.db.bind.dialect.name
        try:
            # isolation can only be set at the start of a transaction
            if self.db.in_transaction():
                await self.db.commit()
            if dialect == "postgresql":
                await self.db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
            elif dialect == "sqlite":
                conn = await self.db.connection()
                await conn.exec_driver_sql("BEGIN")
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("booking_read_failed", operation=operation, error=str(e))
            raise DependencyFailure("STORAGE_UNAVAILABLE", "The reservation store is unavailable")

    async def _notify(self, kind: str, send, user: User, details) -> None:
        try:
            await send(user, details)
            record_notification(kind, sent=True)
        except Exception as e:
            record_notification(kind, sent=False)
            logger.error("notification_failed", kind=kind, user_id=user.id, error=str(e))

    # ------------------------------------------------------------------
    # Booking rules
    # ------------------------------------------------------------------

    async def _check_bookable(
        self,
        user: User,
        schedule: Schedule,
        day: date,
        availability: Optional[DayAvailability],
    ) -> None:
        if availability is None or not availability.is_available:
            raise Conflict("DAY_NOT_AVAILABLE", f"{day} is not open for reservations")

        capacity = effective_capacity(schedule, availability)
        reserved = await self.reservations.count_active(schedule.id, day)
        if reserved + 1 > capacity:
            logger.warning(
                "reservation_no_capacity",
                schedule_id=schedule.id,
                date=str(day),
                reserved=reserved,
                capacity=capacity,
            )
            raise Conflict("RESERVATION_NO_CAPACITY", f"No places left on {day}")

        if await self.reservations.find_active(user.id, schedule.id, day):
            raise Conflict("RESERVATION_ALREADY_EXISTS", f"You already have a reservation on {day}")

    async def _lock_and_create(
        self,
        user: User,
        plan: list[tuple[date, Schedule]],
        notes: Optional[str] = None,
    ) -> list[Reservation]:
        """Lock every planned day, re-check it and insert. Runs inside the caller's transaction."""
        locked: dict[tuple[int, date], Optional[DayAvailability]] = {}
        for day, schedule in sorted(plan, key=lambda item: (item[0], item[1].id)):
            locked[(schedule.id, day)] = await self.availability.lock(day, schedule.id)

        for day, schedule in plan:
            await self._check_bookable(user, schedule, day, locked[(schedule.id, day)])

        return [await self.reservations.create(user.id, schedule.id, day, notes) for day, schedule in plan]

    def _unique_days(self, values: list[str]) -> list[date]:
        if not values:
            raise InvalidInput("NO_DATES", "Select at least one date")
        days = parse_days(values)
        if len(set(days)) != len(days):
            raise InvalidInput("DUPLICATE_DATES", "Each date may appear only once")
        return days

    # ------------------------------------------------------------------
    # Member operations
    # ------------------------------------------------------------------

    async def get_monthly_context(self, user: User, month_year: str) -> dict:
        year, month = parse_month(month_year)
        first, last = month_bounds(year, month)
        # bookable window is relative to today, whatever month is being viewed
        next_first, next_last = next_month_window(self.clock())
        price = self.prices.price_for(user)

        async with self._snapshot("monthly_context"):
            schedules = await self.schedules.list_active()
            by_weekday = {s.day_of_week: s for s in schedules}
            own = await self.reservations.find_for_user_in_range(user.id, first, last)
            next_month_dates = await self.availability.available_dates(next_first, next_last)
            pending_refunds = await self.refunds.pending_total(user.id)

        # An active booking wins over earlier cancelled ones for the same day
        by_day: dict[tuple[int, date], Reservation] = {}
        for reservation in own:
            key = (reservation.schedule_id, reservation.date)
            current = by_day.get(key)
            if current is None or current.is_cancelled:
                by_day[key] = reservation

        calendar = []
        for day in iter_month(year, month):
            schedule = by_weekday.get(day.weekday())
            if schedule is None:
                continue
            reservation = by_day.get((schedule.id, day))
            status = None
            if reservation is not None:
                status = "CANCELLED" if reservation.is_cancelled else "RESERVED"
            calendar.append({
                "date": day,
                "day_of_week": day.weekday(),
                "schedule_id": schedule.id,
                "status": status,
                "reservation_id": reservation.id if reservation else None,
            })

        return {
            "month_year": f"{year:04d}-{month:02d}",
            "calendar": calendar,
            "can_reserve_next_month": bool(next_month_dates),
            "next_month_available_dates": next_month_dates,
            "pricing": {"is_member": bool(user.is_member), "price_per_session": price},
            "pending_refunds": pending_refunds,
            "schedules": [
                {
                    "id": s.id,
                    "day_of_week": s.day_of_week,
                    "label": f"{WEEKDAY_LABELS[s.day_of_week]} {s.start_time:%H:%M}-{s.end_time:%H:%M}",
                }
                for s in schedules
            ],
        }

    async def create_batch_reservations(self, user: User, dates: list[str]) -> BatchResult:
        """Book every requested next-month date, or none of them."""
        started = time.perf_counter()
        try:
            days = self._unique_days(dates)
            window = next_month_window(self.clock())

            async with self._transaction("batch_create"):
                by_weekday = await self.schedules.active_by_weekday()
                plan = []
                for day in days:
                    if not in_window(day, window):
                        raise InvalidWindow(
                            "DATE_OUTSIDE_NEXT_MONTH",
                            f"{day} is outside {window[0]:%Y-%m}; only next month can be booked",
                        )
                    schedule = by_weekday.get(day.weekday())
                    if schedule is None:
                        raise NotFound("SCHEDULE_NOT_FOUND", f"There is no pool session on {day}")
                    await self._check_bookable(user, schedule, day, await self.availability.find(day, schedule.id))
                    plan.append((day, schedule))

                created = await self._lock_and_create(user, plan)
                price = self.prices.price_for(user)
                pending = await self.refunds.pending_total(user.id)
        except BookingError as e:
            record_reservation_attempt("batch", _outcome(e))
            raise
        finally:
            batch_latency.observe(time.perf_counter() - started)

        record_reservation_attempt("batch", "success")
        result = BatchResult(
            reservation_ids=[r.id for r in created],
            dates=[r.date for r in created],
            session_count=len(created),
            price_per_session=price,
            pending_refunds=pending,
            total_amount=compute_total(len(created), price, pending),
        )
        logger.info(
            "batch_reservations_created",
            user_id=user.id,
            reservation_ids=result.reservation_ids,
            sessions=result.session_count,
            total_amount=result.total_amount,
        )

        await self._notify(
            "batch",
            self.notifier.send_batch_confirmation,
            user,
            BatchConfirmation(
                dates=result.dates,
                session_count=result.session_count,
                price_per_session=result.price_per_session,
                pending_refunds=result.pending_refunds,
                total_amount=result.total_amount,
            ),
        )
        return result

    async def create_reservation(
        self,
        user: User,
        schedule_id: int,
        day_value: str,
        notes: Optional[str] = None,
    ) -> Reservation:
        """Single booking of any future open day."""
        day = parse_day(day_value)
        if day < self.clock():
            raise InvalidWindow("RESERVATION_PAST_DATE", "Reservations cannot be made for past dates")

        try:
            async with self._transaction("single_create"):
                schedule = await self.schedules.find_by_id(schedule_id)
                if not schedule:
                    raise NotFound("SCHEDULE_NOT_FOUND", f"Schedule {schedule_id} not found")
                if not schedule.is_active:
                    raise Conflict("SCHEDULE_INACTIVE", f"Schedule {schedule_id} is not active")
                if schedule.day_of_week != day.weekday():
                    raise InvalidInput("SCHEDULE_DAY_MISMATCH", f"Schedule {schedule_id} does not run on {day}")

                await self._check_bookable(user, schedule, day, await self.availability.find(day, schedule.id))
                (reservation,) = await self._lock_and_create(user, [(day, schedule)], notes)
        except BookingError as e:
            record_reservation_attempt("single", _outcome(e))
            raise

        record_reservation_attempt("single", "success")
        logger.info("reservation_created", reservation_id=reservation.id, user_id=user.id, date=str(day))
        return reservation

    async def release_slots(self, user: User, reservation_ids: list[int]) -> ReleaseResult:
        """Cancel the caller's own future bookings; no refund is generated."""
        today = self.clock()

        async with self._transaction("release"):
            owned = await self.reservations.find_owned(user.id, reservation_ids)
            releasable = [
                r for r in owned
                if r.date > today
                and r.status not in (ReservationStatus.CANCELLED, ReservationStatus.COMPLETED)
            ]
            if not releasable:
                raise Conflict("NOTHING_TO_RELEASE", "None of the selected reservations can be released")

            for reservation in releasable:
                reservation.transition_to(ReservationStatus.CANCELLED)

        result = ReleaseResult(
            released=len(releasable),
            reservation_ids=[r.id for r in releasable],
            dates=[r.date for r in releasable],
        )
        logger.info(
            "reservations_released",
            user_id=user.id,
            reservation_ids=result.reservation_ids,
            skipped=len(set(reservation_ids)) - result.released,
        )

        await self._notify(
            "release",
            self.notifier.send_release_confirmation,
            user,
            ReleaseConfirmation(dates=result.dates),
        )
        return result

    async def cancel_reservation(self, actor: User, reservation_id: int) -> Reservation:
        async with self._transaction("cancel"):
            reservation = await self._get_reservation(reservation_id)
            if reservation.user_id != actor.id and actor.role != Role.ADMIN:
                raise Forbidden(
                    "RESERVATION_INSUFFICIENT_PERMISSIONS",
                    "You can only cancel your own reservations",
                )
            reservation.transition_to(ReservationStatus.CANCELLED)

        logger.info("reservation_cancelled", reservation_id=reservation.id, actor_id=actor.id)
        return reservation

    async def get_reservation(self, actor: User, reservation_id: int) -> Reservation:
        reservation = await self._get_reservation(reservation_id)
        if reservation.user_id != actor.id and not actor.is_staff:
            raise Forbidden("RESERVATION_INSUFFICIENT_PERMISSIONS", "Not your reservation")
        return reservation

    async def list_user_reservations(self, user: User, status: Optional[ReservationStatus] = None) -> list[Reservation]:
        return await self.reservations.list_for_user(user.id, status)

    async def list_reservations(
        self,
        status: Optional[ReservationStatus] = None,
        day_value: Optional[str] = None,
        user_id: Optional[int] = None,
        schedule_id: Optional[int] = None,
    ) -> list[Reservation]:
        day = parse_day(day_value) if day_value else None
        return await self.reservations.list_filtered(status, day, user_id, schedule_id)

    async def _get_reservation(self, reservation_id: int) -> Reservation:
        reservation = await self.reservations.find_by_id(reservation_id)
        if not reservation:
            raise NotFound("RESERVATION_NOT_FOUND", f"Reservation {reservation_id} not found")
        return reservation

    # ------------------------------------------------------------------
    # Administrator operations
    # ------------------------------------------------------------------

    async def open_next_month(self, admin: User, dates: list[str]) -> list[date]:
        """Open next-month days for booking. Days outside the window or without a session are skipped."""
        days = sorted(set(parse_days(dates)))
        window = next_month_window(self.clock())

        opened = []
        async with self._transaction("open_month"):
            by_weekday = await self.schedules.active_by_weekday()
            for day in days:
                schedule = by_weekday.get(day.weekday())
                if schedule is None or not in_window(day, window):
                    continue
                await self.availability.upsert(day, schedule.id, is_available=True, created_by_id=admin.id)
                opened.append(day)

        logger.info("month_opened", admin_id=admin.id, opened=len(opened), skipped=len(days) - len(opened))
        return opened

    async def cancel_days(self, admin: User, dates: list[str]) -> CancelDaysResult:
        """
        Close days and cancel every booking on them, crediting each owner the
        session price of their tier. One transaction: either every day is
        closed with all its cancellations and refunds, or nothing changes.
        """
        days = sorted(set(parse_days(dates)))

        cancelled_dates = []
        cancelled = 0
        refund_count = 0
        refund_total = 0
        async with self._transaction("cancel_days"):
            by_weekday = await self.schedules.active_by_weekday()
            for day in days:
                schedule = by_weekday.get(day.weekday())
                if schedule is None:
                    continue

                await self.availability.upsert(day, schedule.id, is_available=False, created_by_id=admin.id)
                await self.availability.lock(day, schedule.id)

                reservations = await self.reservations.list_cancellable_on(schedule.id, day)
                owners = await self.users.by_ids(r.user_id for r in reservations)
                for reservation in reservations:
                    reservation.transition_to(ReservationStatus.CANCELLED)
                    amount = self.prices.price_for(owners[reservation.user_id])
                    await self.refunds.create(reservation.user_id, reservation.id, amount)
                    refund_count += 1
                    refund_total += amount

                cancelled += len(reservations)
                cancelled_dates.append(day)

        day_cancellations.inc(len(cancelled_dates))
        refunds_created.inc(refund_count)
        logger.info(
            "days_cancelled",
            admin_id=admin.id,
            dates=[str(d) for d in cancelled_dates],
            reservations_cancelled=cancelled,
            refund_total=refund_total,
        )
        return CancelDaysResult(
            cancelled_dates=cancelled_dates,
            cancelled_reservations=cancelled,
            refunds_created=refund_count,
            refund_total=refund_total,
        )

    async def update_day_capacity(
        self,
        admin: User,
        day_value: str,
        schedule_id: int,
        capacity_override: int,
    ) -> DayCapacityResult:
        """
        Override the capacity of one current-month day. Existing bookings are
        left in place even if the new capacity is below occupancy.
        """
        day = parse_day(day_value)
        if capacity_override is None or capacity_override < 0:
            raise InvalidInput("INVALID_CAPACITY", "capacityOverride must be zero or greater")
        if not in_window(day, current_month_window(self.clock())):
            raise InvalidWindow("DATE_OUTSIDE_CURRENT_MONTH", "Capacity can only be changed for days of the current month")

        async with self._transaction("update_capacity"):
            schedule = await self.schedules.find_by_id(schedule_id)
            if not schedule:
                raise NotFound("SCHEDULE_NOT_FOUND", f"Schedule {schedule_id} not found")
            if schedule.day_of_week != day.weekday():
                raise InvalidInput("SCHEDULE_DAY_MISMATCH", f"Schedule {schedule_id} does not run on {day}")

            row = await self.availability.upsert(
                day, schedule.id, capacity_override=capacity_override, created_by_id=admin.id
            )
            result = DayCapacityResult(
                date=day,
                schedule_id=schedule.id,
                is_available=row.is_available,
                capacity_override=row.capacity_override,
                effective_capacity=effective_capacity(schedule, row),
            )

        logger.info(
            "day_capacity_updated",
            admin_id=admin.id,
            date=str(day),
            schedule_id=schedule_id,
            capacity_override=capacity_override,
        )
        return result

    async def get_admin_calendar(self, month_year: str) -> dict:
        year, month = parse_month(month_year)
        first, last = month_bounds(year, month)

        async with self._snapshot("admin_calendar"):
            schedules = await self.schedules.list_active()
            rows = await self.availability.find_for_range(None, first, last)
            counts = await self.reservations.count_active_by_day(first, last)

        by_weekday = {s.day_of_week: s for s in schedules}
        days = []
        for day in iter_month(year, month):
            schedule = by_weekday.get(day.weekday())
            if schedule is None:
                continue
            row = rows.get((schedule.id, day))
            capacity = effective_capacity(schedule, row)
            reserved = counts.get((schedule.id, day), 0)
            days.append({
                "date": day,
                "day_of_week": day.weekday(),
                "schedule_id": schedule.id,
                "is_available": row.is_available if row else None,
                "reserved_count": reserved,
                "effective_capacity": capacity,
                "available_spots": max(0, capacity - reserved),
            })

        return {"month_year": f"{year:04d}-{month:02d}", "days": days}

    async def confirm_payment(
        self,
        reservation_id: int,
        amount: int,
        payment_method: str,
        confirmed_by: User,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Reservation:
        if amount is None or amount <= 0:
            raise InvalidInput("INVALID_AMOUNT", "amount must be positive")

        async with self._transaction("confirm_payment"):
            reservation = await self._get_reservation(reservation_id)
            if reservation.status == ReservationStatus.CANCELLED:
                raise TerminalStateViolation(
                    "RESERVATION_CANNOT_CONFIRM_CANCELLED",
                    "Cannot confirm payment for a cancelled reservation",
                )
            if reservation.is_paid:
                raise Conflict("RESERVATION_ALREADY_PAID", f"Reservation {reservation_id} is already paid")

            await self.payments.create(
                reservation.id,
                amount,
                payment_method,
                confirmed_by.id,
                transaction_id=transaction_id,
                notes=notes,
            )
            if reservation.status == ReservationStatus.PENDING:
                reservation.transition_to(ReservationStatus.CONFIRMED)
            reservation.is_paid = True
            reservation.payment_date = utcnow()
            reservation.payment_confirmed_by_id = confirmed_by.id

        logger.info(
            "payment_confirmed",
            reservation_id=reservation.id,
            amount=amount,
            method=payment_method,
            confirmed_by=confirmed_by.id,
        )
        return reservation

    async def complete_reservation(self, reservation_id: int) -> Reservation:
        async with self._transaction("complete"):
            reservation = await self._get_reservation(reservation_id)
            if reservation.status == ReservationStatus.CANCELLED:
                raise TerminalStateViolation(
                    "RESERVATION_CANNOT_COMPLETE_CANCELLED",
                    "Cannot complete a cancelled reservation",
                )
            if reservation.status != ReservationStatus.COMPLETED:
                reservation.transition_to(ReservationStatus.COMPLETED)

        logger.info("reservation_completed", reservation_id=reservation.id)
        return reservation

    async def apply_pending_refunds(self, user_id: int) -> tuple[int, int]:
        """Mark a member's pending refunds as applied. Returns (count, amount)."""
        async with self._transaction("apply_refunds"):
            pending = await self.refunds.list_pending(user_id)
            await self.refunds.mark_applied(pending)

        amount = sum(r.amount for r in pending)
        logger.info("refunds_applied", user_id=user_id, count=len(pending), amount=amount)
        return len(pending), amount
