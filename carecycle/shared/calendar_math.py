"""
Calendar date arithmetic for recurring schedules.

All values are calendar days (``datetime.date``). Datetimes coming from the
outside are normalized to their UTC calendar day, so the same input always
resolves to the same day regardless of the host timezone.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

DATE_FORMAT = "%Y-%m-%d"

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """Normalize a date, datetime or ISO string to a UTC calendar day"""
    if isinstance(value, str):
        return parse_date(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Unsupported date value: {value!r}")


def add_days(value: DateLike, days: int) -> date:
    return to_date(value) + timedelta(days=days)


def add_weeks(value: DateLike, weeks: int) -> date:
    return add_days(value, 7 * weeks)


def add_months(value: DateLike, months: int) -> date:
    """
    Advance the month field by ``months``.

    When the day-of-month does not exist in the target month the result is
    clamped to that month's last day (Jan 31 + 1 month -> Feb 28, or Feb 29
    in a leap year). It never overflows into the following month.
    """
    return to_date(value) + relativedelta(months=months)


def format_date(value: DateLike) -> str:
    """Format as YYYY-MM-DD"""
    return to_date(value).strftime(DATE_FORMAT)


def parse_date(value: str) -> date:
    """
    Parse a YYYY-MM-DD string (or a full ISO timestamp) to a calendar day.

    Timestamps carrying an offset are converted to UTC before the day is
    taken; naive timestamps are read as UTC.

    Raises:
        ValueError: If the string is not a valid ISO date
    """
    text = value.strip()
    if len(text) == 10:
        return datetime.strptime(text, DATE_FORMAT).date()

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def days_between(a: DateLike, b: DateLike) -> int:
    """Absolute number of whole calendar days between two dates"""
    return abs((to_date(b) - to_date(a)).days)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def is_today_or_future(value: DateLike, today: Optional[date] = None) -> bool:
    """Compare by calendar day only"""
    return to_date(value) >= (today or utc_today())


def is_valid_calendar_date(year: int, month: int, day: int) -> bool:
    if not 1 <= month <= 12:
        return False
    return 1 <= day <= calendar.monthrange(year, month)[1]
