"""
Calendar helpers: parsing request dates, month windows and the club clock.

All booking dates are plain `datetime.date` values. Strings are accepted
only as `YYYY-MM-DD` (days) and `YYYY-MM` (months); anything else is an
InvalidInput error. "Today" is evaluated in the club's configured timezone,
so a request at 23:30 local time never lands on tomorrow's date.
"""

import calendar
import re
from datetime import date, datetime
from typing import Callable, Iterator
from zoneinfo import ZoneInfo

from swimclub.core.config import get_settings
from swimclub.core.exceptions import InvalidInput

Clock = Callable[[], date]

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def club_today() -> date:
    """Current calendar date in the club's timezone."""
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


def parse_day(value: str) -> date:
    if not isinstance(value, str) or not _DAY_RE.match(value):
        raise InvalidInput("INVALID_DATE", f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidInput("INVALID_DATE", f"Invalid date '{value}'")


def parse_days(values: list[str]) -> list[date]:
    return [parse_day(v) for v in values]


def parse_month(value: str) -> tuple[int, int]:
    match = _MONTH_RE.match(value or "")
    if not match:
        raise InvalidInput("INVALID_MONTH", f"Invalid month '{value}', expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidInput("INVALID_MONTH", f"Invalid month '{value}'")
    return year, month


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def next_month_of(day: date) -> tuple[int, int]:
    if day.month == 12:
        return day.year + 1, 1
    return day.year, day.month + 1


def next_month_window(today: date) -> tuple[date, date]:
    return month_bounds(*next_month_of(today))


def current_month_window(today: date) -> tuple[date, date]:
    return month_bounds(today.year, today.month)


def iter_month(year: int, month: int) -> Iterator[date]:
    first, last = month_bounds(year, month)
    for day_number in range(first.day, last.day + 1):
        yield date(year, month, day_number)


def in_window(day: date, window: tuple[date, date]) -> bool:
    return window[0] <= day <= window[1]
