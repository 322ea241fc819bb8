from __future__ import annotations

from datetime import date
from typing import Dict, Hashable, Iterable, List, Set, Tuple, TypeVar

from billing_schedule.calendar_dates import days_in_month, month_bounds, months_between, shift_date
from billing_schedule.recurrence import (
    INTERVAL_UNIT_DAY,
    INTERVAL_UNIT_MONTH,
    INTERVAL_UNIT_WEEK,
    INTERVAL_UNIT_YEAR,
    IntervalRecurrence,
    MonthlyByDate,
    OneTime,
    RecurrenceDescriptor,
    YearlyByDate,
)

DAYS_PER_WEEK = 7

K = TypeVar("K", bound=Hashable)


def step_from_anchor(anchor: date, interval_count: int, interval_unit: str, steps: int) -> date | None:
    """Return the occurrence ``steps`` intervals away from ``anchor``.

    Month and year steps are always measured from the anchor itself, so a
    schedule anchored on the 31st keeps coming back to the 31st in long
    months instead of settling on the 28th after February.
    """
    if interval_unit == INTERVAL_UNIT_DAY:
        return shift_date(anchor, days=interval_count * steps)
    if interval_unit == INTERVAL_UNIT_WEEK:
        return shift_date(anchor, days=interval_count * DAYS_PER_WEEK * steps)
    if interval_unit == INTERVAL_UNIT_MONTH:
        return shift_date(anchor, months=interval_count * steps)
    if interval_unit == INTERVAL_UNIT_YEAR:
        return shift_date(anchor, years=interval_count * steps)
    return None


def occurrences_in_month(
    descriptor: RecurrenceDescriptor | None, year: int, month: int
) -> Set[int]:
    if descriptor is None or not 1 <= month <= 12:
        return set()

    if isinstance(descriptor, OneTime):
        billing_date = descriptor.next_billing_date
        if billing_date is not None and (billing_date.year, billing_date.month) == (year, month):
            return {billing_date.day}
        return set()

    if isinstance(descriptor, MonthlyByDate):
        return _clamped_day(descriptor.monthly_day, year, month)

    if isinstance(descriptor, YearlyByDate):
        if descriptor.yearly_month != month:
            return set()
        return _clamped_day(descriptor.yearly_day, year, month)

    if isinstance(descriptor, IntervalRecurrence):
        return _interval_occurrences(descriptor, year, month)

    return set()


def group_by_billing_day(
    subscriptions: Iterable[Tuple[K, RecurrenceDescriptor | None]],
    year: int,
    month: int,
) -> Dict[int, List[K]]:
    """Map each day of the month to the subscriptions billing on it.

    Subscriptions keep their input order within a day.
    """
    billing_map: Dict[int, List[K]] = {}
    for key, descriptor in subscriptions:
        for day in sorted(occurrences_in_month(descriptor, year, month)):
            billing_map.setdefault(day, []).append(key)
    return billing_map


def _clamped_day(day: int, year: int, month: int) -> Set[int]:
    if day < 1:
        return set()
    return {min(day, days_in_month(year, month))}


def _interval_occurrences(descriptor: IntervalRecurrence, year: int, month: int) -> Set[int]:
    anchor = descriptor.next_billing_date
    count = descriptor.interval_count
    if anchor is None or count <= 0:
        return set()

    month_start, month_end = month_bounds(year, month)
    step = _first_step_near(anchor, count, descriptor.interval_unit, month_start)
    if step is None:
        return set()

    # The first candidate can still fall before the month (month/year units)
    # or past it (the interval skips this month entirely).
    days: Set[int] = set()
    cursor = _safe_step(anchor, count, descriptor.interval_unit, step)
    while cursor is not None and cursor <= month_end:
        if cursor >= month_start:
            days.add(cursor.day)
        step += 1
        cursor = _safe_step(anchor, count, descriptor.interval_unit, step)
    return days


def _first_step_near(anchor: date, count: int, unit: str, month_start: date) -> int | None:
    """Pick the step index to start walking from for the month at ``month_start``.

    Equivalent to rewinding from the anchor one interval at a time while past
    the month, but computed directly so far-away anchors cost nothing extra.
    """
    if unit in {INTERVAL_UNIT_DAY, INTERVAL_UNIT_WEEK}:
        step_days = count if unit == INTERVAL_UNIT_DAY else count * DAYS_PER_WEEK
        days_between = (month_start - anchor).days
        return -((-days_between) // step_days)
    if unit == INTERVAL_UNIT_MONTH:
        return months_between(anchor, month_start) // count
    if unit == INTERVAL_UNIT_YEAR:
        return (month_start.year - anchor.year) // count
    return None


def _safe_step(anchor: date, count: int, unit: str, steps: int) -> date | None:
    try:
        return step_from_anchor(anchor, count, unit, steps)
    except (OverflowError, ValueError):
        # Past the supported date range; nothing further can bill.
        return None
