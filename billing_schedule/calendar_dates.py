from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, timedelta

ISO_DATE_FORMAT = "%Y-%m-%d"


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def shift_date(date_value: date, years: int = 0, months: int = 0, days: int = 0) -> date:
    """Shift a calendar date by whole years, months and days.

    Years and months move first and clamp the day-of-month to the length of
    the month they land in. The day offset is applied afterwards as an exact
    day count, so Jan 31 + 1 month + 1 day is Mar 1 (via Feb 29/28).
    """
    total_month = date_value.month - 1 + months + years * 12
    year = date_value.year + total_month // 12
    month = total_month % 12 + 1
    day = min(date_value.day, days_in_month(year, month))
    shifted = date(year, month, day)
    if days:
        shifted += timedelta(days=days)
    return shifted


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def to_calendar_date(value: date | datetime | str | None) -> date | None:
    """Coerce a stored or user-supplied value to a bare calendar date.

    Time of day is dropped without timezone conversion. Strings must be
    ``YYYY-MM-DD`` (a trailing ``T...`` time part is ignored). Anything that
    cannot be read as a date returns None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    try:
        return datetime.strptime(trimmed[:10], ISO_DATE_FORMAT).date()
    except ValueError:
        return None
