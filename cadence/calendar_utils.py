from __future__ import annotations

import re
from calendar import monthrange
from datetime import date, datetime, timedelta

SATURDAY = 5
SUNDAY = 6

_LEADING_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


class InvalidDateFormat(ValueError):
    pass


def normalize(value: date | datetime | str) -> date:
    """Return the calendar day ``value`` shows, without any timezone shift.

    Strings are read from their leading ``YYYY-MM-DD`` component only, so
    ``"2026-01-02T23:30:00-08:00"`` is January 2nd, not whatever day that
    instant falls on in UTC.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        match = _LEADING_DATE.match(value.strip())
        if not match:
            raise InvalidDateFormat(f"Date must start with YYYY-MM-DD: {value!r}")
        year, month, day = (int(part) for part in match.groups())
        return _build_date(year, month, day, value)
    try:
        year, month, day = value.year, value.month, value.day
    except AttributeError as exc:
        raise InvalidDateFormat(f"Cannot interpret {value!r} as a date.") from exc
    return _build_date(year, month, day, value)


def _build_date(year: int, month: int, day: int, original: object) -> date:
    try:
        return date(int(year), int(month), int(day))
    except (TypeError, ValueError) as exc:
        raise InvalidDateFormat(f"Not a calendar date: {original!r}") from exc


def is_business_day(value: date) -> bool:
    return value.weekday() < SATURDAY


def business_day_adjust(value: date) -> date:
    # Nearest weekday: Saturday moves back, Sunday moves forward.
    weekday = value.weekday()
    if weekday == SATURDAY:
        return value - timedelta(days=1)
    if weekday == SUNDAY:
        return value + timedelta(days=1)
    return value


def last_business_day_of_month(year: int, month: int) -> date:
    last_day = date(year, month, monthrange(year, month)[1])
    weekday = last_day.weekday()
    if weekday == SATURDAY:
        return last_day - timedelta(days=1)
    if weekday == SUNDAY:
        return last_day - timedelta(days=2)
    return last_day


def month_index(value: date) -> int:
    return value.year * 12 + value.month - 1


def months_between(start_value: date, end_value: date) -> int:
    return month_index(end_value) - month_index(start_value)


def year_month_from_index(index: int) -> tuple[int, int]:
    return index // 12, index % 12 + 1


def add_months(start_date: date, months: int, anchor_day: int) -> date:
    year, month = year_month_from_index(month_index(start_date) + months)
    last_day = monthrange(year, month)[1]
    day = min(anchor_day, last_day)
    return date(year, month, day)


def month_start(value: date) -> date:
    return value.replace(day=1)


def month_end(value: date) -> date:
    return value.replace(day=monthrange(value.year, value.month)[1])


def parse_month_value(value: str | date) -> date:
    if isinstance(value, date):
        return month_start(normalize(value))
    try:
        return datetime.strptime(value.strip(), "%Y-%m").date()
    except ValueError:
        try:
            return month_start(datetime.strptime(value.strip(), "%Y-%m-%d").date())
        except ValueError as exc:
            raise InvalidDateFormat("Invalid month format. Use YYYY-MM.") from exc
