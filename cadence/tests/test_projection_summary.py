import unittest
from datetime import date, timedelta
from decimal import Decimal

from cadence.projection_summary import (
    monthly_equivalent,
    monthly_projection,
    remaining_this_month,
    scheduled_totals_by_category,
    upcoming_occurrences,
)
from cadence.recurring_projection import occurrences_in_range
from cadence.recurring_schedule import (
    BusinessDayPolicy,
    Frequency,
    RecurringSchedule,
    ScheduleKind,
)


def government_loan(**kwargs) -> RecurringSchedule:
    return RecurringSchedule(
        schedule_id=1,
        name="Government Loan",
        start_date=date(2026, 1, 1),
        frequency=Frequency.MONTHLY,
        amount=Decimal("200"),
        kind=ScheduleKind.EXPENSE,
        business_day_policy=BusinessDayPolicy.LAST_BUSINESS_DAY_OF_MONTH,
        **kwargs,
    )


def regular_payment(**kwargs) -> RecurringSchedule:
    return RecurringSchedule(
        schedule_id=2,
        name="Regular Payment",
        start_date=date(2026, 1, 15),
        frequency=Frequency.MONTHLY,
        amount=Decimal("100"),
        kind=ScheduleKind.EXPENSE,
        **kwargs,
    )


class UpcomingOccurrencesTests(unittest.TestCase):
    def test_flattens_and_sorts_by_date(self) -> None:
        inactive = RecurringSchedule(
            schedule_id=3,
            start_date=date(2026, 1, 1),
            frequency=Frequency.DAILY,
            amount=Decimal("5"),
            active=False,
        )

        upcoming = upcoming_occurrences(
            [regular_payment(), government_loan(), inactive], 35, date(2026, 1, 28)
        )

        self.assertEqual(
            [(entry.schedule.schedule_id, entry.date, entry.days_until) for entry in upcoming],
            [
                (1, date(2026, 1, 30), 2),
                (2, date(2026, 2, 15), 18),
                (1, date(2026, 2, 27), 30),
            ],
        )

    def test_payment_due_today_is_included(self) -> None:
        upcoming = upcoming_occurrences([regular_payment()], 0, date(2026, 3, 15))

        self.assertEqual(len(upcoming), 1)
        self.assertEqual(upcoming[0].days_until, 0)

    def test_rejects_negative_window(self) -> None:
        with self.assertRaises(ValueError):
            upcoming_occurrences([regular_payment()], -1, date(2026, 1, 1))


class MonthlyProjectionTests(unittest.TestCase):
    def test_expenses_for_february(self) -> None:
        projection = monthly_projection([government_loan(), regular_payment()], "2026-02")

        self.assertEqual(projection.month, date(2026, 2, 1))
        self.assertEqual(projection.income, Decimal("0"))
        self.assertEqual(projection.expenses, Decimal("300"))
        self.assertEqual(projection.net, Decimal("-300"))
        self.assertEqual(
            [(entry.schedule.name, entry.date) for entry in projection.occurrences],
            [
                ("Regular Payment", date(2026, 2, 15)),
                ("Government Loan", date(2026, 2, 27)),
            ],
        )

    def test_biweekly_income_against_monthly_expense(self) -> None:
        month_start = date(2026, 3, 1)
        month_end = date(2026, 3, 31)
        paycheck = RecurringSchedule(
            start_date=month_start - timedelta(days=28),
            frequency=Frequency.BIWEEKLY,
            amount=Decimal("1000"),
            kind=ScheduleKind.INCOME,
        )
        rent = RecurringSchedule(
            start_date=date(2026, 1, 5),
            frequency=Frequency.MONTHLY,
            amount=Decimal("1200"),
            kind=ScheduleKind.EXPENSE,
        )
        paydays = occurrences_in_range(paycheck, month_start, month_end)

        projection = monthly_projection([paycheck, rent], month_start)

        self.assertEqual(len(paydays), 3)
        self.assertEqual(projection.income, Decimal("1000") * len(paydays))
        self.assertEqual(projection.expenses, Decimal("1200"))
        self.assertEqual(projection.net, projection.income - projection.expenses)
        self.assertEqual(
            [entry.date for entry in projection.occurrences],
            [date(2026, 3, 1), date(2026, 3, 5), date(2026, 3, 15), date(2026, 3, 29)],
        )

    def test_skips_inactive_and_unknown_frequency(self) -> None:
        broken = RecurringSchedule(
            start_date=date(2026, 2, 1), frequency="hourly", amount=Decimal("50")
        )

        with self.assertLogs("cadence.recurring_projection", level="WARNING"):
            projection = monthly_projection(
                [broken, regular_payment(active=False), government_loan()], "2026-02"
            )

        self.assertEqual(projection.expenses, Decimal("200"))
        self.assertEqual(len(projection.occurrences), 1)


class CategoryTotalsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.schedules = [
            RecurringSchedule(
                start_date=date(2026, 1, 2),
                frequency=Frequency.WEEKLY,
                amount=Decimal("50"),
                category_id=1,
            ),
            RecurringSchedule(
                start_date=date(2026, 1, 15),
                frequency=Frequency.MONTHLY,
                amount=Decimal("100"),
                category_id=2,
            ),
            RecurringSchedule(
                start_date=date(2026, 1, 1),
                frequency=Frequency.MONTHLY,
                amount=Decimal("3000"),
                kind=ScheduleKind.INCOME,
                category_id=3,
            ),
        ]

    def test_totals_for_range(self) -> None:
        totals = scheduled_totals_by_category(
            self.schedules, date(2026, 1, 1), date(2026, 1, 31), kind="expense"
        )

        self.assertEqual(totals, {1: Decimal("250"), 2: Decimal("100")})

    def test_remaining_this_month(self) -> None:
        totals = remaining_this_month(self.schedules, date(2026, 1, 20), ScheduleKind.EXPENSE)

        self.assertEqual(totals, {1: Decimal("100")})


class MonthlyEquivalentTests(unittest.TestCase):
    def test_scales_by_frequency(self) -> None:
        cases = [
            (Frequency.WEEKLY, "100", "433.00"),
            (Frequency.BIWEEKLY, "1000", "2170.00"),
            (Frequency.MONTHLY, "45", "45.00"),
            (Frequency.QUARTERLY, "300", "100.00"),
            (Frequency.YEARLY, "1200", "100.00"),
            ("hourly", "10", "0"),
        ]
        for frequency, amount, expected in cases:
            schedule = RecurringSchedule(
                start_date=date(2026, 1, 1), frequency=frequency, amount=Decimal(amount)
            )
            with self.subTest(frequency=frequency):
                self.assertEqual(monthly_equivalent(schedule), Decimal(expected))


if __name__ == "__main__":
    unittest.main()
