import logging
import os
from datetime import date
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Header, Query
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
    select,
)

from cadence.calendar_utils import InvalidDateFormat, month_end, parse_month_value
from cadence.projection_summary import (
    monthly_equivalent,
    monthly_projection,
    scheduled_totals_by_category,
    upcoming_occurrences,
)
from cadence.recurring_projection import next_occurrence
from cadence.recurring_schedule import (
    RecurringSchedule,
    ScheduleKind,
    frequency_label,
    load_schedules,
    schedule_from_record,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
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

database_url = os.getenv("DATABASE_URL", "sqlite:///./cadence.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()


def get_default_days_ahead() -> int:
    raw = os.getenv("UPCOMING_DAYS_DEFAULT", "30")
    try:
        return max(int(raw), 0)
    except ValueError:
        return 30


UPCOMING_DAYS_DEFAULT = get_default_days_ahead()

recurring_payments = Table(
    "recurring_payments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("category_id", Integer),
    Column("frequency", String(20), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("business_days_only", Boolean, nullable=False, server_default="0"),
    Column("last_business_day_of_month", Boolean, nullable=False, server_default="0"),
    Column("notes", String(500)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class RecurringPaymentResponse(BaseModel):
    id: int
    name: str
    amount: Decimal
    type: str
    category_id: int | None = None
    frequency: str
    frequency_label: str
    start_date: date
    end_date: date | None = None
    is_active: bool
    business_days_only: bool
    last_business_day_of_month: bool
    notes: str | None = None
    next_date: date | None = None
    monthly_equivalent: Decimal | None = None


class NextOccurrenceResponse(BaseModel):
    id: int
    next_date: date | None = None
    days_until: int | None = None


class UpcomingPaymentEntry(BaseModel):
    id: int
    name: str | None = None
    amount: Decimal
    type: str
    category_id: int | None = None
    date: date
    days_until: int


class ProjectedPaymentEntry(BaseModel):
    id: int
    name: str | None = None
    amount: Decimal
    type: str
    category_id: int | None = None
    date: date


class MonthlyProjectionResponse(BaseModel):
    month: str
    income: Decimal
    expenses: Decimal
    net: Decimal
    payments: list[ProjectedPaymentEntry]


class CategoryTotalEntry(BaseModel):
    category_id: int | None = None
    total: Decimal


def get_user_id(x_user_id: str | None = Header(None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc


def fetch_payment_rows(user_id: int, active_only: bool = False) -> list[dict]:
    query = select(recurring_payments).where(recurring_payments.c.user_id == user_id)
    if active_only:
        query = query.where(recurring_payments.c.is_active.is_(True))
    query = query.order_by(recurring_payments.c.id)
    with engine.begin() as conn:
        return [dict(row) for row in conn.execute(query).mappings().all()]


def fetch_schedules(user_id: int) -> list[RecurringSchedule]:
    return load_schedules(fetch_payment_rows(user_id, active_only=True))


def build_payment_response(row: dict, from_date: date) -> RecurringPaymentResponse:
    next_date = None
    equivalent = None
    try:
        schedule = schedule_from_record(row)
    except ValueError as exc:
        logger.warning("Recurring payment %s cannot be projected: %s", row["id"], exc)
    else:
        if schedule.active:
            next_date = next_occurrence(schedule, from_date)
        equivalent = monthly_equivalent(schedule)
    return RecurringPaymentResponse(
        id=row["id"],
        name=row["name"],
        amount=row["amount"],
        type=row["type"],
        category_id=row["category_id"],
        frequency=row["frequency"],
        frequency_label=frequency_label(row["frequency"]),
        start_date=row["start_date"],
        end_date=row["end_date"],
        is_active=bool(row["is_active"]),
        business_days_only=bool(row["business_days_only"]),
        last_business_day_of_month=bool(row["last_business_day_of_month"]),
        notes=row["notes"],
        next_date=next_date,
        monthly_equivalent=equivalent,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/recurring-payments", response_model=list[RecurringPaymentResponse])
def list_recurring_payments(
    from_date: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[RecurringPaymentResponse]:
    user_id = get_user_id(x_user_id)
    reference = from_date or date.today()
    return [build_payment_response(row, reference) for row in fetch_payment_rows(user_id)]


@app.get("/recurring-payments/upcoming", response_model=list[UpcomingPaymentEntry])
def upcoming_payments(
    days_ahead: int = Query(UPCOMING_DAYS_DEFAULT, ge=0, le=366),
    today: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[UpcomingPaymentEntry]:
    user_id = get_user_id(x_user_id)
    schedules = fetch_schedules(user_id)
    upcoming = upcoming_occurrences(schedules, days_ahead, today or date.today())
    return [
        UpcomingPaymentEntry(
            id=entry.schedule.schedule_id,
            name=entry.schedule.name,
            amount=entry.schedule.amount,
            type=entry.schedule.kind.value,
            category_id=entry.schedule.category_id,
            date=entry.date,
            days_until=entry.days_until,
        )
        for entry in upcoming
    ]


@app.get("/recurring-payments/projection", response_model=MonthlyProjectionResponse)
def recurring_monthly_projection(
    month: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> MonthlyProjectionResponse:
    user_id = get_user_id(x_user_id)
    try:
        first_day = parse_month_value(month) if month else date.today().replace(day=1)
    except InvalidDateFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    projection = monthly_projection(fetch_schedules(user_id), first_day)
    return MonthlyProjectionResponse(
        month=projection.month.strftime("%Y-%m"),
        income=projection.income,
        expenses=projection.expenses,
        net=projection.net,
        payments=[
            ProjectedPaymentEntry(
                id=entry.schedule.schedule_id,
                name=entry.schedule.name,
                amount=entry.schedule.amount,
                type=entry.schedule.kind.value,
                category_id=entry.schedule.category_id,
                date=entry.date,
            )
            for entry in projection.occurrences
        ],
    )


@app.get("/recurring-payments/category-totals", response_model=list[CategoryTotalEntry])
def recurring_category_totals(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    kind: str | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[CategoryTotalEntry]:
    user_id = get_user_id(x_user_id)
    range_start = start_date or date.today().replace(day=1)
    range_end = end_date or month_end(range_start)
    if range_start > range_end:
        raise HTTPException(status_code=400, detail="Start date must be on or before end date.")
    try:
        wanted_kind = ScheduleKind.parse(kind) if kind else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    totals = scheduled_totals_by_category(
        fetch_schedules(user_id), range_start, range_end, wanted_kind
    )
    return [
        CategoryTotalEntry(category_id=category_id, total=total)
        for category_id, total in sorted(
            totals.items(), key=lambda item: (item[0] is None, item[0] or 0)
        )
    ]


@app.get(
    "/recurring-payments/{payment_id}/next-occurrence",
    response_model=NextOccurrenceResponse,
)
def recurring_payment_next_occurrence(
    payment_id: int,
    from_date: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> NextOccurrenceResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        row = conn.execute(
            select(recurring_payments).where(
                recurring_payments.c.id == payment_id,
                recurring_payments.c.user_id == user_id,
            )
        ).mappings().first()
    if not row:
        raise HTTPException(status_code=404, detail="Recurring payment not found.")
    try:
        schedule = schedule_from_record(row)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    reference = from_date or date.today()
    next_date = next_occurrence(schedule, reference) if schedule.active else None
    return NextOccurrenceResponse(
        id=payment_id,
        next_date=next_date,
        days_until=(next_date - reference).days if next_date else None,
    )
