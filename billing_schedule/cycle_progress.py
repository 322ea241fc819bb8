from __future__ import annotations

from datetime import date, datetime

from billing_schedule.calendar_dates import shift_date, to_calendar_date
from billing_schedule.occurrences import step_from_anchor
from billing_schedule.recurrence import (
    IntervalRecurrence,
    MonthlyByDate,
    OneTime,
    RecurrenceDescriptor,
    YearlyByDate,
)


def previous_cycle_start(descriptor: RecurrenceDescriptor | None) -> date | None:
    """Return the date the current billing cycle started.

    One-time purchases use the purchase date, so the bar keeps measuring
    purchase -> due date even after the due date has passed. An interval
    count below 1 has no previous cycle (None) rather than falling back to
    a single-unit step.
    """
    if descriptor is None or descriptor.next_billing_date is None:
        return None
    next_date = descriptor.next_billing_date

    if isinstance(descriptor, OneTime):
        return descriptor.created_at
    if isinstance(descriptor, MonthlyByDate):
        return shift_date(next_date, months=-1)
    if isinstance(descriptor, YearlyByDate):
        return shift_date(next_date, years=-1)
    if isinstance(descriptor, IntervalRecurrence):
        if descriptor.interval_count <= 0:
            return None
        return step_from_anchor(
            next_date, descriptor.interval_count, descriptor.interval_unit, -1
        )
    return None


def cycle_progress_percent(
    descriptor: RecurrenceDescriptor | None,
    today: date | datetime | str | None = None,
) -> float | None:
    """Percentage (0-100) of the current billing cycle elapsed as of ``today``.

    None means there is nothing to draw: no scheduled billing date, no
    defined previous cycle, a cycle of zero or negative length, or a
    ``today`` that cannot be read as a date. ``today=None`` means the
    current date.
    """
    if descriptor is None or descriptor.next_billing_date is None:
        return None
    next_date = descriptor.next_billing_date
    try:
        cycle_start = previous_cycle_start(descriptor)
    except (OverflowError, ValueError):
        return None
    if cycle_start is None:
        return None

    cycle_duration = (next_date - cycle_start).days
    if cycle_duration <= 0:
        return None

    if today is None:
        reference = date.today()
    else:
        reference = to_calendar_date(today)
        if reference is None:
            return None
    elapsed = (reference - cycle_start).days
    ratio = elapsed / cycle_duration
    if ratio <= 0:
        return 0.0
    if ratio >= 1:
        return 100.0
    return ratio * 100
