from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from cadence.calendar_utils import month_end, normalize, parse_month_value
from cadence.recurring_projection import occurrences_in_range
from cadence.recurring_schedule import (
    Frequency,
    RecurringSchedule,
    ScheduleKind,
    UnknownFrequency,
)

ZERO = Decimal("0")
CENTS = Decimal("0.01")

MONTHLY_FACTORS = {
    Frequency.DAILY: Decimal("30.42"),
    Frequency.WEEKLY: Decimal("4.33"),
    Frequency.BIWEEKLY: Decimal("2.17"),
    Frequency.MONTHLY: Decimal("1"),
    Frequency.QUARTERLY: Decimal("1") / Decimal("3"),
    Frequency.YEARLY: Decimal("1") / Decimal("12"),
}


@dataclass(frozen=True)
class Occurrence:
    schedule: RecurringSchedule
    date: date


@dataclass(frozen=True)
class UpcomingOccurrence:
    schedule: RecurringSchedule
    date: date
    days_until: int


@dataclass(frozen=True)
class MonthlyProjection:
    month: date
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    net: Decimal = ZERO
    occurrences: List[Occurrence] = field(default_factory=list)


def upcoming_occurrences(
    schedules: Iterable[RecurringSchedule],
    days_ahead: int,
    today: date,
) -> List[UpcomingOccurrence]:
    if days_ahead < 0:
        raise ValueError("days_ahead must not be negative.")
    today = normalize(today)
    range_end = today + timedelta(days=days_ahead)
    upcoming: List[UpcomingOccurrence] = []
    for schedule in schedules:
        if not schedule.active:
            continue
        for occurrence_date in occurrences_in_range(schedule, today, range_end):
            upcoming.append(
                UpcomingOccurrence(
                    schedule=schedule,
                    date=occurrence_date,
                    days_until=(occurrence_date - today).days,
                )
            )
    upcoming.sort(key=lambda entry: entry.date)
    return upcoming


def monthly_projection(
    schedules: Iterable[RecurringSchedule],
    month: str | date,
) -> MonthlyProjection:
    """Income, expenses and net of every active schedule within one month.

    ``month`` is ``"YYYY-MM"`` or any date inside the month.
    """
    first_day = parse_month_value(month)
    last_day = month_end(first_day)
    income = ZERO
    expenses = ZERO
    occurrences: List[Occurrence] = []
    for schedule in schedules:
        if not schedule.active:
            continue
        for occurrence_date in occurrences_in_range(schedule, first_day, last_day):
            if schedule.kind is ScheduleKind.INCOME:
                income += schedule.amount
            else:
                expenses += schedule.amount
            occurrences.append(Occurrence(schedule=schedule, date=occurrence_date))
    occurrences.sort(key=lambda entry: entry.date)
    return MonthlyProjection(
        month=first_day,
        income=income,
        expenses=expenses,
        net=income - expenses,
        occurrences=occurrences,
    )


def scheduled_totals_by_category(
    schedules: Iterable[RecurringSchedule],
    range_start: date,
    range_end: date,
    kind: Optional[ScheduleKind | str] = None,
) -> Dict[Any, Decimal]:
    wanted_kind = ScheduleKind.parse(kind) if kind is not None else None
    totals: Dict[Any, Decimal] = {}
    for schedule in schedules:
        if not schedule.active:
            continue
        if wanted_kind is not None and schedule.kind is not wanted_kind:
            continue
        count = len(occurrences_in_range(schedule, range_start, range_end))
        if not count:
            continue
        totals[schedule.category_id] = (
            totals.get(schedule.category_id, ZERO) + schedule.amount * count
        )
    return totals


def remaining_this_month(
    schedules: Iterable[RecurringSchedule],
    today: date,
    kind: Optional[ScheduleKind | str] = None,
) -> Dict[Any, Decimal]:
    today = normalize(today)
    return scheduled_totals_by_category(schedules, today, month_end(today), kind)


def monthly_equivalent(schedule: RecurringSchedule) -> Decimal:
    try:
        frequency = Frequency.parse(schedule.frequency)
    except UnknownFrequency:
        return ZERO
    amount = schedule.amount * MONTHLY_FACTORS[frequency]
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
