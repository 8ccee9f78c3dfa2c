"""
FastAPI dependencies that assemble the booking engine for a request.

The engine gets its stores, clock, prices and notifier passed in here;
tests override `get_clock` and `get_notifier` instead of patching globals.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from swimclub.core.dates import Clock, club_today
from swimclub.db.session import get_db
from swimclub.services.booking_engine import BookingEngine
from swimclub.services.interfaces.notifier import Notifier
from swimclub.services.notifier_factory import get_notifier
from swimclub.services.pricing import PriceTable


def get_clock() -> Clock:
    return club_today


def get_price_table() -> PriceTable:
    return PriceTable.from_settings()


def get_booking_engine(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    prices: PriceTable = Depends(get_price_table),
    clock: Clock = Depends(get_clock),
) -> BookingEngine:
    return BookingEngine.for_session(db, notifier, prices, clock)
