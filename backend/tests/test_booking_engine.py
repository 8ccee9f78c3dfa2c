"""
Booking engine tests for member operations: batch enrollment, self-release,
single bookings and the monthly calendar, including the concurrent race for
the last place of a day.
"""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from conftest import FRIDAY, MONDAY, PRICES, TODAY, WEDNESDAY
from swimclub.core.exceptions import Conflict, InvalidInput, InvalidWindow, NotFound
from swimclub.models import CancellationRefund, Reservation
from swimclub.services.booking_engine import BookingEngine
from swimclub.services.pricing import PriceTable


async def active_reservations(fetch, schedule_id: int, day: date) -> list[Reservation]:
    return await fetch(
        select(Reservation).where(
            Reservation.schedule_id == schedule_id,
            Reservation.date == day,
            Reservation.status != "CANCELLED",
        )
    )


# ----------------------------------------------------------------------
# Batch enrollment
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_batch_books_every_date(engine, notifier, fetch, non_member, monday_schedule, wednesday_schedule, open_day):
    """Dates come back in the order sent, priced at the non-member rate."""
    await open_day(MONDAY, monday_schedule)
    await open_day(WEDNESDAY, wednesday_schedule)

    result = await engine.create_batch_reservations(non_member, ["2025-01-08", "2025-01-06"])

    assert result.dates == [WEDNESDAY, MONDAY]
    assert result.session_count == 2
    assert result.price_per_session == 3000
    assert result.pending_refunds == 0
    assert result.total_amount == 6000

    rows = await fetch(select(Reservation).where(Reservation.user_id == non_member.id))
    assert sorted(r.id for r in rows) == sorted(result.reservation_ids)
    assert all(r.status == "PENDING" and not r.is_paid for r in rows)

    kind, user_id, details = notifier.sent[0]
    assert (kind, user_id) == ("batch", non_member.id)
    assert details.total_amount == 6000
    assert details.dates == [WEDNESDAY, MONDAY]


@pytest.mark.asyncio
async def test_batch_member_price(engine, member, monday_schedule, open_day):
    await open_day(MONDAY, monday_schedule)

    result = await engine.create_batch_reservations(member, ["2025-01-06"])

    assert result.price_per_session == 2000
    assert result.total_amount == 2000


@pytest.mark.asyncio
async def test_batch_rejects_full_day(engine, fetch, member, make_users, monday_schedule, open_day, add_reservation):
    """Monday holds 5 and already has 5 bookings: Conflict and nothing written."""
    await open_day(MONDAY, monday_schedule)
    for user in await make_users(5):
        await add_reservation(user, monday_schedule, MONDAY)

    with pytest.raises(Conflict) as exc:
        await engine.create_batch_reservations(member, ["2025-01-06"])

    assert exc.value.code == "RESERVATION_NO_CAPACITY"
    assert len(await active_reservations(fetch, monday_schedule.id, MONDAY)) == 5
    assert await fetch(select(Reservation).where(Reservation.user_id == member.id)) == []


@pytest.mark.asyncio
async def test_batch_cancelled_bookings_do_not_count(engine, member, make_users, friday_schedule, open_day, add_reservation):
    await open_day(FRIDAY, friday_schedule)
    (other,) = await make_users(1)
    await add_reservation(other, friday_schedule, FRIDAY, status="CANCELLED")

    result = await engine.create_batch_reservations(member, ["2025-01-10"])

    assert result.session_count == 1


@pytest.mark.asyncio
async def test_batch_uses_capacity_override(engine, member, make_users, monday_schedule, open_day, add_reservation):
    await open_day(MONDAY, monday_schedule, capacity_override=1)
    (other,) = await make_users(1)
    await add_reservation(other, monday_schedule, MONDAY)

    with pytest.raises(Conflict) as exc:
        await engine.create_batch_reservations(member, ["2025-01-06"])

    assert exc.value.code == "RESERVATION_NO_CAPACITY"


@pytest.mark.asyncio
async def test_batch_is_all_or_nothing(engine, fetch, member, monday_schedule, wednesday_schedule, open_day):
    """Monday is bookable, Wednesday is not opened: neither gets a row."""
    await open_day(MONDAY, monday_schedule)

    with pytest.raises(Conflict) as exc:
        await engine.create_batch_reservations(member, ["2025-01-06", "2025-01-08"])

    assert exc.value.code == "DAY_NOT_AVAILABLE"
    assert await fetch(select(Reservation).where(Reservation.user_id == member.id)) == []


@pytest.mark.asyncio
async def test_batch_closed_day_is_not_bookable(engine, member, monday_schedule, open_day):
    await open_day(MONDAY, monday_schedule, is_available=False)

    with pytest.raises(Conflict) as exc:
        await engine.create_batch_reservations(member, ["2025-01-06"])

    assert exc.value.code == "DAY_NOT_AVAILABLE"


@pytest.mark.asyncio
async def test_batch_first_failing_date_decides_error(engine, member, monday_schedule, wednesday_schedule, open_day):
    await open_day(MONDAY, monday_schedule)

    with pytest.raises(Conflict):
        await engine.create_batch_reservations(member, ["2025-01-08", "2025-02-03"])

    with pytest.raises(InvalidWindow):
        await engine.create_batch_reservations(member, ["2025-02-03", "2025-01-08"])


@pytest.mark.asyncio
@pytest.mark.parametrize("day", ["2024-12-16", "2025-02-03", "2024-12-09"])
async def test_batch_outside_next_month(engine, member, monday_schedule, day):
    with pytest.raises(InvalidWindow) as exc:
        await engine.create_batch_reservations(member, [day])

    assert exc.value.code == "DATE_OUTSIDE_NEXT_MONTH"


@pytest.mark.asyncio
async def test_batch_weekday_without_schedule(engine, member, monday_schedule):
    with pytest.raises(NotFound) as exc:
        await engine.create_batch_reservations(member, ["2025-01-07"])

    assert exc.value.code == "SCHEDULE_NOT_FOUND"


@pytest.mark.asyncio
async def test_batch_rejects_existing_booking(engine, member, monday_schedule, open_day, add_reservation):
    await open_day(MONDAY, monday_schedule)
    await add_reservation(member, monday_schedule, MONDAY, status="CONFIRMED")

    with pytest.raises(Conflict) as exc:
        await engine.create_batch_reservations(member, ["2025-01-06"])

    assert exc.value.code == "RESERVATION_ALREADY_EXISTS"


@pytest.mark.asyncio
async def test_batch_rebook_after_cancellation(engine, fetch, member, monday_schedule, open_day, add_reservation):
    await open_day(MONDAY, monday_schedule)
    await add_reservation(member, monday_schedule, MONDAY, status="CANCELLED")

    await engine.create_batch_reservations(member, ["2025-01-06"])

    rows = await fetch(select(Reservation).where(Reservation.user_id == member.id))
    assert sorted(r.status for r in rows) == ["CANCELLED", "PENDING"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "dates, code",
    [
        ([], "NO_DATES"),
        (["2025-01-06", "2025-01-06"], "DUPLICATE_DATES"),
        (["06-01-2025"], "INVALID_DATE"),
        (["2025-02-30"], "INVALID_DATE"),
    ],
)
async def test_batch_rejects_bad_input(engine, member, monday_schedule, dates, code):
    with pytest.raises(InvalidInput) as exc:
        await engine.create_batch_reservations(member, dates)

    assert exc.value.code == code


@pytest.mark.asyncio
async def test_batch_total_nets_pending_refunds(
    db_session, notifier, non_member, monday_schedule, wednesday_schedule, open_day, add_reservation, add_refund, fetch
):
    """Non-member at 10000 books 3 sessions with 5000 pending: 25000, refunds untouched."""
    engine = BookingEngine.for_session(
        db_session, notifier, PriceTable(member=8000, non_member=10000), clock=lambda: TODAY
    )
    await open_day(MONDAY, monday_schedule)
    await open_day(date(2025, 1, 13), monday_schedule)
    await open_day(WEDNESDAY, wednesday_schedule)
    past = await add_reservation(non_member, monday_schedule, date(2024, 12, 2), status="CANCELLED")
    await add_refund(non_member, past, 5000)

    result = await engine.create_batch_reservations(non_member, ["2025-01-06", "2025-01-08", "2025-01-13"])

    assert result.pending_refunds == 5000
    assert result.total_amount == 25000

    refunds = await fetch(select(CancellationRefund).where(CancellationRefund.user_id == non_member.id))
    assert [r.status for r in refunds] == ["PENDING"]


@pytest.mark.asyncio
async def test_batch_total_never_negative(
    db_session, notifier, non_member, monday_schedule, open_day, add_reservation, add_refund
):
    engine = BookingEngine.for_session(
        db_session, notifier, PriceTable(member=8000, non_member=10000), clock=lambda: TODAY
    )
    await open_day(MONDAY, monday_schedule)
    past = await add_reservation(non_member, monday_schedule, date(2024, 12, 2), status="CANCELLED")
    await add_refund(non_member, past, 20000)

    result = await engine.create_batch_reservations(non_member, ["2025-01-06"])

    assert result.total_amount == 0


@pytest.mark.asyncio
async def test_batch_survives_notification_failure(engine, notifier, fetch, member, monday_schedule, open_day):
    await open_day(MONDAY, monday_schedule)
    notifier.fail = True

    result = await engine.create_batch_reservations(member, ["2025-01-06"])

    assert result.session_count == 1
    assert len(await active_reservations(fetch, monday_schedule.id, MONDAY)) == 1
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_concurrent_batches_never_overbook(session_factory, notifier, fetch, make_users, friday_schedule, open_day):
    """Four members race for the single Friday place, each in their own session."""
    await open_day(FRIDAY, friday_schedule)
    contenders = await make_users(4, prefix="racer")

    async def attempt(user):
        async with session_factory() as session:
            engine = BookingEngine.for_session(session, notifier, PRICES, clock=lambda: TODAY)
            return await engine.create_batch_reservations(user, ["2025-01-10"])

    outcomes = await asyncio.gather(*(attempt(u) for u in contenders), return_exceptions=True)

    booked = [o for o in outcomes if not isinstance(o, Exception)]
    rejected = [o for o in outcomes if isinstance(o, Exception)]
    assert len(booked) == 1
    assert len(rejected) == 3
    assert all(isinstance(e, Conflict) for e in rejected)
    assert len(await active_reservations(fetch, friday_schedule.id, FRIDAY)) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_batches_book_once(session_factory, notifier, fetch, member, monday_schedule, open_day):
    await open_day(MONDAY, monday_schedule)

    async def attempt():
        async with session_factory() as session:
            engine = BookingEngine.for_session(session, notifier, PRICES, clock=lambda: TODAY)
            return await engine.create_batch_reservations(member, ["2025-01-06"])

    outcomes = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    assert sum(not isinstance(o, Exception) for o in outcomes) == 1
    rows = await active_reservations(fetch, monday_schedule.id, MONDAY)
    assert [r.user_id for r in rows] == [member.id]


# ----------------------------------------------------------------------
# Self-release
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_release_only_future_open_bookings(
    engine, notifier, fetch, member, non_member, monday_schedule, add_reservation
):
    future = await add_reservation(member, monday_schedule, MONDAY)
    today = await add_reservation(member, monday_schedule, TODAY)
    completed = await add_reservation(member, monday_schedule, date(2025, 1, 13), status="COMPLETED")
    cancelled = await add_reservation(member, monday_schedule, date(2025, 1, 20), status="CANCELLED")
    not_mine = await add_reservation(non_member, monday_schedule, MONDAY)

    result = await engine.release_slots(
        member, [future.id, today.id, completed.id, cancelled.id, not_mine.id]
    )

    assert result.released == 1
    assert result.reservation_ids == [future.id]
    assert result.dates == [MONDAY]

    rows = {r.id: r.status for r in await fetch(select(Reservation))}
    assert rows[future.id] == "CANCELLED"
    assert rows[today.id] == "PENDING"
    assert rows[completed.id] == "COMPLETED"
    assert rows[not_mine.id] == "PENDING"

    assert await fetch(select(CancellationRefund)) == []
    kind, _, details = notifier.sent[0]
    assert kind == "release"
    assert details.dates == [MONDAY]


@pytest.mark.asyncio
async def test_release_past_booking_only_is_nothing_to_release(engine, notifier, member, monday_schedule, add_reservation):
    yesterday = await add_reservation(member, monday_schedule, date(2024, 12, 14))

    with pytest.raises(Conflict) as exc:
        await engine.release_slots(member, [yesterday.id])

    assert exc.value.code == "NOTHING_TO_RELEASE"
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_release_frees_the_place(engine, member, non_member, friday_schedule, open_day):
    await open_day(FRIDAY, friday_schedule)
    booked = await engine.create_batch_reservations(member, ["2025-01-10"])

    with pytest.raises(Conflict):
        await engine.create_batch_reservations(non_member, ["2025-01-10"])

    await engine.release_slots(member, booked.reservation_ids)
    result = await engine.create_batch_reservations(non_member, ["2025-01-10"])

    assert result.session_count == 1


# ----------------------------------------------------------------------
# Single bookings
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_reservation_on_open_day(engine, member, monday_schedule, open_day):
    day = date(2024, 12, 16)
    await open_day(day, monday_schedule)

    reservation = await engine.create_reservation(member, monday_schedule.id, "2024-12-16", notes="lane 2")

    assert reservation.status == "PENDING"
    assert reservation.date == day
    assert reservation.notes == "lane 2"


@pytest.mark.asyncio
async def test_create_reservation_past_date(engine, member, monday_schedule):
    with pytest.raises(InvalidWindow):
        await engine.create_reservation(member, monday_schedule.id, "2024-12-09")


@pytest.mark.asyncio
async def test_create_reservation_weekday_mismatch(engine, member, monday_schedule):
    with pytest.raises(InvalidInput) as exc:
        await engine.create_reservation(member, monday_schedule.id, "2024-12-17")

    assert exc.value.code == "SCHEDULE_DAY_MISMATCH"


@pytest.mark.asyncio
async def test_create_reservation_unknown_schedule(engine, member):
    with pytest.raises(NotFound):
        await engine.create_reservation(member, 999, "2024-12-16")


@pytest.mark.asyncio
async def test_create_reservation_requires_open_day(engine, member, monday_schedule):
    with pytest.raises(Conflict) as exc:
        await engine.create_reservation(member, monday_schedule.id, "2024-12-16")

    assert exc.value.code == "DAY_NOT_AVAILABLE"


# ----------------------------------------------------------------------
# Monthly context
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_monthly_context(
    engine, member, monday_schedule, wednesday_schedule, open_day, add_reservation, add_refund
):
    await add_reservation(member, monday_schedule, date(2024, 12, 16))
    cancelled = await add_reservation(member, wednesday_schedule, date(2024, 12, 18), status="CANCELLED")
    await add_reservation(member, monday_schedule, date(2024, 12, 23), status="CANCELLED")
    rebooked = await add_reservation(member, monday_schedule, date(2024, 12, 23))
    await add_refund(member, cancelled, 2000)
    await open_day(MONDAY, monday_schedule)
    await open_day(WEDNESDAY, wednesday_schedule)
    await open_day(date(2025, 1, 13), monday_schedule, is_available=False)

    context = await engine.get_monthly_context(member, "2024-12")

    assert context["month_year"] == "2024-12"
    # 5 Mondays and 4 Wednesdays in December 2024
    assert len(context["calendar"]) == 9
    by_day = {entry["date"]: entry for entry in context["calendar"]}
    assert by_day[date(2024, 12, 16)]["status"] == "RESERVED"
    assert by_day[date(2024, 12, 18)]["status"] == "CANCELLED"
    assert by_day[date(2024, 12, 23)]["status"] == "RESERVED"
    assert by_day[date(2024, 12, 23)]["reservation_id"] == rebooked.id
    assert by_day[date(2024, 12, 2)]["status"] is None

    assert context["can_reserve_next_month"] is True
    assert context["next_month_available_dates"] == [MONDAY, WEDNESDAY]
    assert context["pricing"] == {"is_member": True, "price_per_session": 2000}
    assert context["pending_refunds"] == 2000
    assert [s["day_of_week"] for s in context["schedules"]] == [0, 2]


@pytest.mark.asyncio
async def test_monthly_context_next_month_closed(engine, non_member, monday_schedule):
    context = await engine.get_monthly_context(non_member, "2024-12")

    assert context["can_reserve_next_month"] is False
    assert context["next_month_available_dates"] == []
    assert context["pricing"]["price_per_session"] == 3000


@pytest.mark.asyncio
async def test_monthly_context_other_month_offers_bookable_dates(engine, member, monday_schedule, open_day):
    """Browsing January or November still offers January, the month a batch accepts."""
    await open_day(MONDAY, monday_schedule)
    await open_day(date(2024, 12, 23), monday_schedule)

    january = await engine.get_monthly_context(member, "2025-01")
    november = await engine.get_monthly_context(member, "2024-11")

    assert january["can_reserve_next_month"] is True
    assert january["next_month_available_dates"] == [MONDAY]
    assert november["next_month_available_dates"] == [MONDAY]

    result = await engine.create_batch_reservations(
        member, [str(day) for day in november["next_month_available_dates"]]
    )
    assert result.dates == [MONDAY]


@pytest.mark.asyncio
async def test_monthly_context_reads_in_one_sqlite_transaction(engine, member):
    """Every read of an aggregated view runs inside one driver transaction."""
    if engine.db.bind.dialect.name != "sqlite":
        pytest.skip("PostgreSQL uses REPEATABLE READ instead")

    async with engine._snapshot("calendar_view"):
        await engine.refunds.pending_total(member.id)
        conn = await engine.db.connection()
        raw = await conn.get_raw_connection()
        assert raw.driver_connection.in_transaction is True

    assert not engine.db.in_transaction()


@pytest.mark.asyncio
@pytest.mark.parametrize("month", ["2024-13", "2024-1", "december", ""])
async def test_monthly_context_bad_month(engine, member, month):
    with pytest.raises(InvalidInput):
        await engine.get_monthly_context(member, month)
