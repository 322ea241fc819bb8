from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List

from billing_schedule.recurrence import (
    INTERVAL_UNIT_DAY,
    INTERVAL_UNIT_MONTH,
    INTERVAL_UNIT_WEEK,
    INTERVAL_UNIT_YEAR,
    IntervalRecurrence,
    MonthlyByDate,
    RecurrenceDescriptor,
    YearlyByDate,
)

CRLF = "\r\n"
MAX_LINE_OCTETS = 75
CALENDAR_NAME = "Subscription Billing"
PRODUCT_ID = "-//billing-schedule//Calendar//EN"

INTERVAL_UNIT_TO_FREQ = {
    INTERVAL_UNIT_DAY: "DAILY",
    INTERVAL_UNIT_WEEK: "WEEKLY",
    INTERVAL_UNIT_MONTH: "MONTHLY",
    INTERVAL_UNIT_YEAR: "YEARLY",
}


@dataclass(frozen=True)
class FeedEntry:
    subscription_id: int
    name: str
    amount: Decimal
    currency: str
    descriptor: RecurrenceDescriptor | None
    notes: str | None = None


def build_rrule(descriptor: RecurrenceDescriptor | None) -> str | None:
    """Return the RRULE value for a recurring schedule, or None.

    One-time charges and schedules with out-of-range fields get no rule, so
    the event shows up once on its billing date.
    """
    if isinstance(descriptor, IntervalRecurrence):
        freq = INTERVAL_UNIT_TO_FREQ.get(descriptor.interval_unit)
        if freq is None or descriptor.interval_count < 1:
            return None
        return f"FREQ={freq};INTERVAL={descriptor.interval_count}"
    if isinstance(descriptor, MonthlyByDate):
        if not 1 <= descriptor.monthly_day <= 31:
            return None
        return f"FREQ=MONTHLY;BYMONTHDAY={descriptor.monthly_day}"
    if isinstance(descriptor, YearlyByDate):
        if not 1 <= descriptor.yearly_month <= 12 or not 1 <= descriptor.yearly_day <= 31:
            return None
        return f"FREQ=YEARLY;BYMONTH={descriptor.yearly_month};BYMONTHDAY={descriptor.yearly_day}"
    return None


def ical_escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
        .replace("\r", "")
    )


def ical_fold(line: str) -> str:
    """Fold a content line at 75 octets with CRLF plus one space."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line
    parts: List[str] = []
    octets = 0
    for char in line:
        size = len(char.encode("utf-8"))
        if octets + size > MAX_LINE_OCTETS:
            parts.append(CRLF + " ")
            # The leading space counts toward the continuation line.
            octets = 1
        parts.append(char)
        octets += size
    return "".join(parts)


def build_ical_feed(entries: Iterable[FeedEntry]) -> str:
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODUCT_ID}",
        ical_fold(f"X-WR-CALNAME:{CALENDAR_NAME}"),
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for entry in entries:
        if entry.descriptor is None or entry.descriptor.next_billing_date is None:
            continue
        date_value = entry.descriptor.next_billing_date.strftime("%Y%m%d")
        summary = f"{entry.name} - {entry.amount:.2f} {entry.currency}"
        lines.append("BEGIN:VEVENT")
        lines.append(ical_fold(f"UID:billing-schedule-sub-{entry.subscription_id}@billing-schedule"))
        lines.append(ical_fold(f"DTSTART;VALUE=DATE:{date_value}"))
        lines.append(ical_fold(f"DTEND;VALUE=DATE:{date_value}"))
        lines.append(ical_fold(f"SUMMARY:{ical_escape(summary)}"))
        if entry.notes:
            lines.append(ical_fold(f"DESCRIPTION:{ical_escape(entry.notes)}"))
        rrule = build_rrule(entry.descriptor)
        if rrule:
            lines.append(ical_fold(f"RRULE:{rrule}"))
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF
