from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Union

from billing_schedule.calendar_dates import to_calendar_date

BILLING_TYPE_RECURRING = "recurring"
BILLING_TYPE_ONE_TIME = "one_time"
BILLING_TYPE_LIFETIME = "lifetime"
SUPPORTED_BILLING_TYPES = {BILLING_TYPE_RECURRING, BILLING_TYPE_ONE_TIME}

RECURRENCE_TYPE_INTERVAL = "interval"
RECURRENCE_TYPE_MONTHLY_DATE = "monthly_date"
RECURRENCE_TYPE_YEARLY_DATE = "yearly_date"
SUPPORTED_RECURRENCE_TYPES = {
    RECURRENCE_TYPE_INTERVAL,
    RECURRENCE_TYPE_MONTHLY_DATE,
    RECURRENCE_TYPE_YEARLY_DATE,
}

INTERVAL_UNIT_DAY = "day"
INTERVAL_UNIT_WEEK = "week"
INTERVAL_UNIT_MONTH = "month"
INTERVAL_UNIT_YEAR = "year"
SUPPORTED_INTERVAL_UNITS = {
    INTERVAL_UNIT_DAY,
    INTERVAL_UNIT_WEEK,
    INTERVAL_UNIT_MONTH,
    INTERVAL_UNIT_YEAR,
}


@dataclass(frozen=True)
class OneTime:
    next_billing_date: date | None = None
    created_at: date | None = None


@dataclass(frozen=True)
class IntervalRecurrence:
    interval_count: int
    interval_unit: str
    next_billing_date: date | None = None
    created_at: date | None = None


@dataclass(frozen=True)
class MonthlyByDate:
    monthly_day: int
    next_billing_date: date | None = None
    created_at: date | None = None


@dataclass(frozen=True)
class YearlyByDate:
    yearly_month: int
    yearly_day: int
    next_billing_date: date | None = None
    created_at: date | None = None


RecurrenceDescriptor = Union[OneTime, IntervalRecurrence, MonthlyByDate, YearlyByDate]


def normalize_billing_type(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized == BILLING_TYPE_LIFETIME:
        return BILLING_TYPE_ONE_TIME
    return normalized


def _normalize_token(value: str | None) -> str:
    return (value or "").strip().lower()


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def descriptor_from_record(record: Mapping[str, Any]) -> RecurrenceDescriptor | None:
    """Build a descriptor from a stored subscription row.

    Rows come from a loosely typed table where every recurrence column is
    optional. A row that does not carry the fields its kind needs returns
    None instead of raising.
    """
    billing_type = normalize_billing_type(record.get("billing_type")) or BILLING_TYPE_RECURRING
    next_billing_date = to_calendar_date(record.get("next_billing_date"))
    created_at = to_calendar_date(record.get("created_at"))

    if billing_type == BILLING_TYPE_ONE_TIME:
        return OneTime(next_billing_date=next_billing_date, created_at=created_at)
    if billing_type != BILLING_TYPE_RECURRING:
        return None

    recurrence_type = _normalize_token(record.get("recurrence_type")) or RECURRENCE_TYPE_INTERVAL
    if recurrence_type == RECURRENCE_TYPE_INTERVAL:
        interval_count = _optional_int(record.get("interval_count"))
        interval_unit = _normalize_token(record.get("interval_unit"))
        if interval_count is None or not interval_unit:
            return None
        return IntervalRecurrence(
            interval_count=interval_count,
            interval_unit=interval_unit,
            next_billing_date=next_billing_date,
            created_at=created_at,
        )
    if recurrence_type == RECURRENCE_TYPE_MONTHLY_DATE:
        monthly_day = _optional_int(record.get("monthly_day"))
        if monthly_day is None:
            return None
        return MonthlyByDate(
            monthly_day=monthly_day,
            next_billing_date=next_billing_date,
            created_at=created_at,
        )
    if recurrence_type == RECURRENCE_TYPE_YEARLY_DATE:
        yearly_month = _optional_int(record.get("yearly_month"))
        yearly_day = _optional_int(record.get("yearly_day"))
        if yearly_month is None or yearly_day is None:
            return None
        return YearlyByDate(
            yearly_month=yearly_month,
            yearly_day=yearly_day,
            next_billing_date=next_billing_date,
            created_at=created_at,
        )
    return None


def normalize_billing_fields(
    billing_type: str | None,
    next_billing_date: date | datetime | str | None,
    recurrence_type: str | None = None,
    interval_count: int | None = None,
    interval_unit: str | None = None,
    monthly_day: int | None = None,
    yearly_month: int | None = None,
    yearly_day: int | None = None,
) -> Dict[str, Any]:
    """Validate recurrence columns before they are written.

    Returns the full set of recurrence columns with the ones that do not
    apply to the chosen kind cleared.
    """
    normalized_billing_type = normalize_billing_type(billing_type) or BILLING_TYPE_RECURRING
    if normalized_billing_type not in SUPPORTED_BILLING_TYPES:
        raise ValueError("billing_type must be one of: recurring, one_time.")

    if next_billing_date is None:
        if normalized_billing_type == BILLING_TYPE_RECURRING:
            raise ValueError("next_billing_date is required for recurring subscriptions.")
        raise ValueError("next_billing_date is required for one-time subscriptions.")
    normalized_date = to_calendar_date(next_billing_date)
    if normalized_date is None:
        raise ValueError("Invalid date format, expected YYYY-MM-DD.")

    fields: Dict[str, Any] = {
        "billing_type": normalized_billing_type,
        "recurrence_type": None,
        "interval_count": None,
        "interval_unit": None,
        "monthly_day": None,
        "yearly_month": None,
        "yearly_day": None,
        "next_billing_date": normalized_date,
    }
    if normalized_billing_type == BILLING_TYPE_ONE_TIME:
        return fields

    normalized_recurrence = _normalize_token(recurrence_type) or RECURRENCE_TYPE_INTERVAL
    if normalized_recurrence not in SUPPORTED_RECURRENCE_TYPES:
        raise ValueError("recurrence_type must be one of: interval, monthly_date, yearly_date.")
    fields["recurrence_type"] = normalized_recurrence

    if normalized_recurrence == RECURRENCE_TYPE_INTERVAL:
        if interval_count is None or interval_count < 1:
            raise ValueError("interval_count must be at least 1 for interval recurrence.")
        normalized_unit = _normalize_token(interval_unit)
        if normalized_unit not in SUPPORTED_INTERVAL_UNITS:
            raise ValueError("interval_unit must be one of: day, week, month, year.")
        fields["interval_count"] = interval_count
        fields["interval_unit"] = normalized_unit
    elif normalized_recurrence == RECURRENCE_TYPE_MONTHLY_DATE:
        if monthly_day is None or not 1 <= monthly_day <= 31:
            raise ValueError("monthly_day must be between 1 and 31 for monthly date recurrence.")
        fields["monthly_day"] = monthly_day
    else:
        if yearly_month is None or not 1 <= yearly_month <= 12:
            raise ValueError("yearly_month must be between 1 and 12 for yearly date recurrence.")
        if yearly_day is None or not 1 <= yearly_day <= 31:
            raise ValueError("yearly_day must be between 1 and 31 for yearly date recurrence.")
        fields["yearly_month"] = yearly_month
        fields["yearly_day"] = yearly_day
    return fields
