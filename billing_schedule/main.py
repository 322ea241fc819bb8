import logging
import os
from datetime import date, datetime
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Header, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
    true,
    update,
)

from billing_schedule.calendar_feed import FeedEntry, build_ical_feed
from billing_schedule.cycle_progress import cycle_progress_percent
from billing_schedule.occurrences import group_by_billing_day
from billing_schedule.recurrence import (
    BILLING_TYPE_RECURRING,
    descriptor_from_record,
    normalize_billing_fields,
)
from billing_schedule.rollover import next_billing_date_on_or_after

logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = os.getenv("DATABASE_URL", "sqlite:///./billing_schedule.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def get_system_default_currency() -> str:
    raw = os.getenv("DEFAULT_CURRENCY", "USD")
    try:
        return normalize_currency(raw)
    except ValueError:
        return "USD"


SYSTEM_DEFAULT_CURRENCY = get_system_default_currency()

subscriptions = Table(
    "subscriptions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False, server_default=SYSTEM_DEFAULT_CURRENCY),
    Column("enabled", Boolean, nullable=False, server_default=true()),
    Column("billing_type", String(30), nullable=False, server_default="recurring"),
    Column("recurrence_type", String(30)),
    Column("interval_count", Integer),
    Column("interval_unit", String(10)),
    Column("monthly_day", Integer),
    Column("yearly_month", Integer),
    Column("yearly_day", Integer),
    Column("next_billing_date", Date),
    Column("notes", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class SubscriptionPayload(BaseModel):
    name: str
    amount: Decimal
    currency: str | None = None
    enabled: bool = True
    billing_type: str = "recurring"
    recurrence_type: str | None = None
    interval_count: int | None = None
    interval_unit: str | None = None
    monthly_day: int | None = None
    yearly_month: int | None = None
    yearly_day: int | None = None
    next_billing_date: date | None = None
    notes: str | None = None


class SubscriptionResponse(BaseModel):
    id: int
    user_id: int
    name: str
    amount: Decimal
    currency: str
    enabled: bool
    billing_type: str
    recurrence_type: str | None = None
    interval_count: int | None = None
    interval_unit: str | None = None
    monthly_day: int | None = None
    yearly_month: int | None = None
    yearly_day: int | None = None
    next_billing_date: date | None = None
    notes: str | None = None
    created_at: datetime | None = None
    cycle_progress: float | None = None


class CalendarDayResponse(BaseModel):
    day: int
    subscription_ids: list[int]


def current_date() -> date:
    return date.today()


def get_user_id(x_user_id: str | None) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc


def _load_descriptor(row):
    descriptor = descriptor_from_record(row)
    if descriptor is None:
        logger.warning("Subscription %s has an unusable billing schedule.", row["id"])
    return descriptor


def advance_overdue_billing_dates(conn, user_id: int, today: date) -> int:
    """Move past-due recurring billing dates forward to ``today`` or later.

    Returns the number of subscriptions updated.
    """
    rows = conn.execute(
        select(subscriptions).where(
            subscriptions.c.user_id == user_id,
            subscriptions.c.billing_type == BILLING_TYPE_RECURRING,
            subscriptions.c.next_billing_date.is_not(None),
            subscriptions.c.next_billing_date < today,
        )
    ).mappings().all()

    advanced = 0
    for row in rows:
        next_billing_date = next_billing_date_on_or_after(_load_descriptor(row), today)
        if next_billing_date is None:
            continue
        conn.execute(
            update(subscriptions)
            .where(subscriptions.c.id == row["id"], subscriptions.c.user_id == user_id)
            .values(next_billing_date=next_billing_date)
        )
        logger.debug(
            "Advanced subscription %s billing date from %s to %s.",
            row["id"],
            row["next_billing_date"],
            next_billing_date,
        )
        advanced += 1
    return advanced


def _subscription_response(row, today: date) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        amount=row["amount"],
        currency=row["currency"],
        enabled=row["enabled"],
        billing_type=row["billing_type"],
        recurrence_type=row["recurrence_type"],
        interval_count=row["interval_count"],
        interval_unit=row["interval_unit"],
        monthly_day=row["monthly_day"],
        yearly_month=row["yearly_month"],
        yearly_day=row["yearly_day"],
        next_billing_date=row["next_billing_date"],
        notes=row["notes"],
        created_at=row["created_at"],
        cycle_progress=cycle_progress_percent(_load_descriptor(row), today),
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/subscriptions", response_model=list[SubscriptionResponse])
def list_subscriptions(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[SubscriptionResponse]:
    user_id = get_user_id(x_user_id)
    today = current_date()
    with engine.begin() as conn:
        advance_overdue_billing_dates(conn, user_id, today)
        rows = conn.execute(
            select(subscriptions)
            .where(subscriptions.c.user_id == user_id)
            .order_by(subscriptions.c.next_billing_date.asc(), subscriptions.c.id.asc())
        ).mappings().all()
    return [_subscription_response(row, today) for row in rows]


@app.post("/subscriptions", response_model=SubscriptionResponse)
def create_subscription(
    payload: SubscriptionPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> SubscriptionResponse:
    user_id = get_user_id(x_user_id)
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Subscription name required.")
    if payload.amount < 0:
        raise HTTPException(status_code=400, detail="Subscription amount must not be negative.")
    try:
        currency = normalize_currency(payload.currency) if payload.currency else SYSTEM_DEFAULT_CURRENCY
        billing_fields = normalize_billing_fields(
            payload.billing_type,
            payload.next_billing_date,
            recurrence_type=payload.recurrence_type,
            interval_count=payload.interval_count,
            interval_unit=payload.interval_unit,
            monthly_day=payload.monthly_day,
            yearly_month=payload.yearly_month,
            yearly_day=payload.yearly_day,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        result = conn.execute(
            insert(subscriptions).values(
                user_id=user_id,
                name=name,
                amount=payload.amount,
                currency=currency,
                enabled=payload.enabled,
                notes=payload.notes.strip() if payload.notes else None,
                **billing_fields,
            )
        )
        subscription_id = result.inserted_primary_key[0]
        row = conn.execute(
            select(subscriptions).where(subscriptions.c.id == subscription_id)
        ).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create subscription.")
    return _subscription_response(row, current_date())


@app.get("/calendar", response_model=list[CalendarDayResponse])
def billing_calendar(
    year: int = Query(...),
    month: int = Query(...),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[CalendarDayResponse]:
    user_id = get_user_id(x_user_id)
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12.")
    if not 1 <= year <= 9999:
        raise HTTPException(status_code=400, detail="Year must be between 1 and 9999.")

    with engine.begin() as conn:
        rows = conn.execute(
            select(subscriptions)
            .where(
                subscriptions.c.user_id == user_id,
                subscriptions.c.enabled.is_(True),
            )
            .order_by(subscriptions.c.id.asc())
        ).mappings().all()

    billing_map = group_by_billing_day(
        ((row["id"], _load_descriptor(row)) for row in rows), year, month
    )
    return [
        CalendarDayResponse(day=day, subscription_ids=subscription_ids)
        for day, subscription_ids in sorted(billing_map.items())
    ]


@app.get("/calendar/feed")
def billing_calendar_feed(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> Response:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        rows = conn.execute(
            select(subscriptions)
            .where(
                subscriptions.c.user_id == user_id,
                subscriptions.c.enabled.is_(True),
                subscriptions.c.next_billing_date.is_not(None),
            )
            .order_by(subscriptions.c.next_billing_date.asc(), subscriptions.c.id.asc())
        ).mappings().all()

    feed = build_ical_feed(
        FeedEntry(
            subscription_id=row["id"],
            name=row["name"],
            amount=row["amount"],
            currency=row["currency"],
            descriptor=_load_descriptor(row),
            notes=row["notes"],
        )
        for row in rows
    )
    return Response(
        content=feed,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="billing-schedule.ics"'},
    )
