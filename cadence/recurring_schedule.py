from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional

from cadence.calendar_utils import InvalidDateFormat, normalize

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
TRUE_FLAGS = {"true", "t", "yes", "y", "1", "on"}
FALSE_FLAGS = {"false", "f", "no", "n", "0", "off", ""}

FREQUENCY_ALIASES = {
    "byweekly": "biweekly",
    "fortnightly": "biweekly",
    "annually": "yearly",
    "annual": "yearly",
}


class UnknownFrequency(ValueError):
    pass


class InvalidScheduleConfiguration(ValueError):
    pass


class Frequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def step_days(self) -> int | None:
        return _DAY_STEPS.get(self)

    @property
    def step_months(self) -> int | None:
        return _MONTH_STEPS.get(self)

    @property
    def is_day_stepped(self) -> bool:
        return self in _DAY_STEPS

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: "Frequency | str") -> "Frequency":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnknownFrequency(f"Unsupported frequency: {value!r}")
        normalized = _normalize_frequency(value)
        normalized = FREQUENCY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnknownFrequency(
                "Only daily, weekly, biweekly, monthly, quarterly, "
                f"or yearly schedules are supported, got {value!r}."
            ) from exc


_DAY_STEPS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}
_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


class BusinessDayPolicy(Enum):
    NONE = "none"
    NEAREST_WEEKDAY = "nearest_weekday"
    LAST_BUSINESS_DAY_OF_MONTH = "last_business_day_of_month"

    @classmethod
    def from_flags(
        cls, business_days_only: bool, last_business_day_of_month: bool
    ) -> "BusinessDayPolicy":
        # The last-business-day rule already lands on a weekday, so it wins.
        if last_business_day_of_month:
            return cls.LAST_BUSINESS_DAY_OF_MONTH
        if business_days_only:
            return cls.NEAREST_WEEKDAY
        return cls.NONE


class ScheduleKind(Enum):
    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def parse(cls, value: "ScheduleKind | str") -> "ScheduleKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError("Only income or expense schedules are supported.") from exc


@dataclass(frozen=True)
class RecurringSchedule:
    """A recurring payment as the projection engine sees it.

    ``frequency`` is normally a :class:`Frequency`; a raw key that does not
    parse is kept verbatim so projections can skip the schedule instead of
    failing. ``schedule_id``, ``name``, ``category_id`` and ``notes`` are
    carried through for callers and never read by the engine.
    """

    start_date: date
    frequency: Frequency | str
    amount: Decimal
    kind: ScheduleKind = ScheduleKind.EXPENSE
    end_date: Optional[date] = None
    business_day_policy: BusinessDayPolicy = BusinessDayPolicy.NONE
    active: bool = True
    schedule_id: Any = None
    name: Optional[str] = None
    category_id: Any = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_date", normalize(self.start_date))
        if self.end_date is not None:
            object.__setattr__(self, "end_date", normalize(self.end_date))
            if self.end_date < self.start_date:
                raise ValueError("end_date must be on or after start_date.")
        try:
            object.__setattr__(self, "frequency", Frequency.parse(self.frequency))
        except UnknownFrequency:
            pass
        object.__setattr__(self, "kind", ScheduleKind.parse(self.kind))
        amount = _coerce_amount(self.amount)
        if amount < ZERO:
            raise ValueError("schedule.amount must not be negative.")
        object.__setattr__(self, "amount", amount)
        if (
            self.business_day_policy is BusinessDayPolicy.LAST_BUSINESS_DAY_OF_MONTH
            and isinstance(self.frequency, Frequency)
            and self.frequency.is_day_stepped
        ):
            raise InvalidScheduleConfiguration(
                "Last business day of month requires a monthly, quarterly, "
                "or yearly frequency."
            )

    @property
    def business_days_only(self) -> bool:
        return self.business_day_policy is BusinessDayPolicy.NEAREST_WEEKDAY

    @property
    def last_business_day_of_month(self) -> bool:
        return self.business_day_policy is BusinessDayPolicy.LAST_BUSINESS_DAY_OF_MONTH


def schedule_from_record(record: Mapping[str, Any]) -> RecurringSchedule:
    """Build a schedule from a stored recurring-payment row.

    Raises ``UnknownFrequency``, ``InvalidDateFormat``,
    ``InvalidScheduleConfiguration`` or ``ValueError`` for malformed rows.
    """
    frequency = Frequency.parse(record.get("frequency") or "")
    start_value = record.get("start_date")
    if start_value is None:
        raise InvalidDateFormat("Recurring payment is missing a start date.")
    end_value = record.get("end_date")
    return RecurringSchedule(
        start_date=normalize(start_value),
        end_date=normalize(end_value) if end_value else None,
        frequency=frequency,
        amount=record.get("amount", ZERO),
        kind=ScheduleKind.parse(record.get("type") or record.get("kind") or "expense"),
        business_day_policy=BusinessDayPolicy.from_flags(
            _coerce_flag(record.get("business_days_only")),
            _coerce_flag(record.get("last_business_day_of_month")),
        ),
        active=_coerce_flag(record.get("is_active"), default=True),
        schedule_id=record.get("id"),
        name=record.get("name"),
        category_id=record.get("category_id"),
        notes=record.get("notes"),
    )


def load_schedules(records: Iterable[Mapping[str, Any]]) -> List[RecurringSchedule]:
    schedules: List[RecurringSchedule] = []
    for record in records:
        try:
            schedules.append(schedule_from_record(record))
        except ValueError as exc:
            logger.warning(
                "Skipping recurring payment %s: %s", record.get("id"), exc
            )
    return schedules


def frequency_label(frequency: Frequency | str) -> str:
    try:
        return Frequency.parse(frequency).label
    except UnknownFrequency:
        return str(frequency)


def _normalize_frequency(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())


def _coerce_amount(amount: Any) -> Decimal:
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    return value


def _coerce_flag(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_FLAGS:
            return True
        if normalized in FALSE_FLAGS:
            return False
        raise ValueError(f"Invalid flag value: {value!r}")
    return bool(value)
