from __future__ import annotations

from datetime import date

from billing_schedule.calendar_dates import days_in_month, months_between, shift_date
from billing_schedule.occurrences import DAYS_PER_WEEK, step_from_anchor
from billing_schedule.recurrence import (
    INTERVAL_UNIT_DAY,
    INTERVAL_UNIT_MONTH,
    INTERVAL_UNIT_WEEK,
    SUPPORTED_INTERVAL_UNITS,
    IntervalRecurrence,
    MonthlyByDate,
    RecurrenceDescriptor,
    YearlyByDate,
)


def next_billing_date_on_or_after(
    descriptor: RecurrenceDescriptor | None, today: date
) -> date | None:
    """Roll an overdue recurring billing date forward to ``today`` or later.

    Returns None when the stored date should be left alone: one-time
    charges, dates already on or after ``today``, and schedules whose
    fields are out of range.
    """
    if descriptor is None or descriptor.next_billing_date is None:
        return None
    current = descriptor.next_billing_date
    if current >= today:
        return None

    try:
        candidate = _next_occurrence(descriptor, current, today)
    except (OverflowError, ValueError):
        # The next occurrence lies past the supported date range.
        return None
    if candidate is None or candidate <= current:
        return None
    return candidate


def _next_occurrence(descriptor: RecurrenceDescriptor, current: date, today: date) -> date | None:
    if isinstance(descriptor, IntervalRecurrence):
        if descriptor.interval_count < 1 or descriptor.interval_unit not in SUPPORTED_INTERVAL_UNITS:
            return None
        return _next_interval_occurrence(
            current, today, descriptor.interval_count, descriptor.interval_unit
        )
    if isinstance(descriptor, MonthlyByDate):
        if not 1 <= descriptor.monthly_day <= 31:
            return None
        return _next_monthly_occurrence(today, descriptor.monthly_day)
    if isinstance(descriptor, YearlyByDate):
        if not 1 <= descriptor.yearly_month <= 12 or not 1 <= descriptor.yearly_day <= 31:
            return None
        return _next_yearly_occurrence(today, descriptor.yearly_month, descriptor.yearly_day)
    return None


def _next_interval_occurrence(anchor: date, minimum_date: date, count: int, unit: str) -> date:
    if unit in {INTERVAL_UNIT_DAY, INTERVAL_UNIT_WEEK}:
        step_days = count if unit == INTERVAL_UNIT_DAY else count * DAYS_PER_WEEK
        days_between = (minimum_date - anchor).days
        steps = (days_between + step_days - 1) // step_days
    elif unit == INTERVAL_UNIT_MONTH:
        steps = months_between(anchor, minimum_date) // count
    else:
        steps = (minimum_date.year - anchor.year) // count

    candidate = step_from_anchor(anchor, count, unit, steps)
    while candidate < minimum_date:
        steps += 1
        candidate = step_from_anchor(anchor, count, unit, steps)
    return candidate


def _next_monthly_occurrence(minimum_date: date, day: int) -> date:
    candidate = _build_date(minimum_date.year, minimum_date.month, day)
    if candidate < minimum_date:
        following = shift_date(date(minimum_date.year, minimum_date.month, 1), months=1)
        candidate = _build_date(following.year, following.month, day)
    return candidate


def _next_yearly_occurrence(minimum_date: date, month: int, day: int) -> date:
    candidate = _build_date(minimum_date.year, month, day)
    if candidate < minimum_date:
        candidate = _build_date(minimum_date.year + 1, month, day)
    return candidate


def _build_date(year: int, month: int, preferred_day: int) -> date:
    return date(year, month, min(preferred_day, days_in_month(year, month)))
