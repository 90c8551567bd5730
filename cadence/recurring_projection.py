from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional, Set

from cadence.calendar_utils import (
    add_months,
    business_day_adjust,
    last_business_day_of_month,
    month_index,
    months_between,
    normalize,
    year_month_from_index,
)
from cadence.recurring_schedule import (
    BusinessDayPolicy,
    Frequency,
    RecurringSchedule,
    UnknownFrequency,
)

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 366
ONE_DAY = timedelta(days=1)


def next_occurrence(schedule: RecurringSchedule, from_date: date) -> Optional[date]:
    """First occurrence of ``schedule`` on or after ``from_date``.

    Returns ``None`` once the schedule has passed its end date, or when its
    frequency is not recognized.
    """
    frequency = _resolve_frequency(schedule)
    if frequency is None:
        return None
    candidate = _aligned_on_or_after(schedule, frequency, normalize(from_date))
    if schedule.business_day_policy is BusinessDayPolicy.NEAREST_WEEKDAY:
        candidate = business_day_adjust(candidate)
    if schedule.end_date is not None and candidate > schedule.end_date:
        return None
    return candidate


def occurrences_in_range(
    schedule: RecurringSchedule,
    range_start: date,
    range_end: date,
) -> List[date]:
    range_start = normalize(range_start)
    range_end = normalize(range_end)
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    frequency = _resolve_frequency(schedule)
    if frequency is None:
        return []

    adjusting = schedule.business_day_policy is BusinessDayPolicy.NEAREST_WEEKDAY
    # A Sunday just before the range moves into it, as does a Saturday just after.
    window_start = range_start - ONE_DAY if adjusting else range_start
    window_end = range_end + ONE_DAY if adjusting else range_end

    raw_dates = _collect_aligned_dates(schedule, frequency, window_start, window_end)
    if not adjusting:
        return raw_dates

    adjusted: List[date] = []
    for raw in raw_dates:
        value = business_day_adjust(raw)
        if value < range_start or value > range_end:
            continue
        if adjusted and adjusted[-1] == value:
            continue
        adjusted.append(value)
    return adjusted


def _collect_aligned_dates(
    schedule: RecurringSchedule,
    frequency: Frequency,
    window_start: date,
    window_end: date,
) -> List[date]:
    """Raw schedule-aligned dates in the window, before any weekday shift.

    Stops at the window end, at the schedule end date, after
    ``MAX_OCCURRENCES`` dates, or as soon as a date comes back a second time.
    """
    adjusting = schedule.business_day_policy is BusinessDayPolicy.NEAREST_WEEKDAY
    collected: List[date] = []
    seen: Set[date] = set()
    cursor = window_start
    while True:
        current = _aligned_on_or_after(schedule, frequency, cursor)
        if current > window_end:
            break
        effective = business_day_adjust(current) if adjusting else current
        if schedule.end_date is not None and effective > schedule.end_date:
            break
        if current in seen:
            logger.warning(
                "Occurrence %s repeated for schedule %s; stopping enumeration.",
                current,
                schedule.schedule_id,
            )
            break
        if len(collected) >= MAX_OCCURRENCES:
            logger.warning(
                "Schedule %s reached %s occurrences before %s; result truncated.",
                schedule.schedule_id,
                MAX_OCCURRENCES,
                window_end,
            )
            break
        seen.add(current)
        collected.append(current)
        cursor = current + ONE_DAY
    logger.debug(
        "Schedule %s: %s raw occurrences in %s..%s",
        schedule.schedule_id,
        len(collected),
        window_start,
        window_end,
    )
    return collected


def _aligned_on_or_after(
    schedule: RecurringSchedule, frequency: Frequency, minimum_date: date
) -> date:
    if schedule.business_day_policy is BusinessDayPolicy.LAST_BUSINESS_DAY_OF_MONTH:
        return _last_business_day_on_or_after(
            schedule.start_date, minimum_date, frequency.step_months
        )
    if frequency.is_day_stepped:
        return _first_occurrence_on_or_after(
            schedule.start_date, minimum_date, frequency.step_days
        )
    return _first_month_step_on_or_after(
        schedule.start_date, minimum_date, frequency.step_months
    )


def _first_occurrence_on_or_after(
    start_date: date, minimum_date: date, interval_days: int
) -> date:
    if start_date >= minimum_date:
        return start_date
    days_between = (minimum_date - start_date).days
    intervals = days_between // interval_days
    candidate = start_date + timedelta(days=interval_days * intervals)
    if candidate < minimum_date:
        candidate += timedelta(days=interval_days)
    return candidate


def _first_month_step_on_or_after(
    start_date: date, minimum_date: date, interval_months: int
) -> date:
    if start_date >= minimum_date:
        return start_date
    periods = months_between(start_date, minimum_date) // interval_months
    candidate = add_months(start_date, periods * interval_months, start_date.day)
    if candidate < minimum_date:
        periods += 1
        candidate = add_months(start_date, periods * interval_months, start_date.day)
    return candidate


def _last_business_day_on_or_after(
    start_date: date, minimum_date: date, interval_months: int
) -> date:
    # The day of start_date is ignored; only its month anchors the periods.
    minimum_date = max(minimum_date, start_date)
    periods = months_between(start_date, minimum_date) // interval_months
    candidate = _last_business_day_for_period(start_date, periods * interval_months)
    if candidate < minimum_date:
        periods += 1
        candidate = _last_business_day_for_period(start_date, periods * interval_months)
    return candidate


def _last_business_day_for_period(start_date: date, months: int) -> date:
    year, month = year_month_from_index(month_index(start_date) + months)
    return last_business_day_of_month(year, month)


def _resolve_frequency(schedule: RecurringSchedule) -> Optional[Frequency]:
    try:
        return Frequency.parse(schedule.frequency)
    except UnknownFrequency:
        logger.warning(
            "Schedule %s has unsupported frequency %r; no occurrences produced.",
            schedule.schedule_id,
            schedule.frequency,
        )
        return None
