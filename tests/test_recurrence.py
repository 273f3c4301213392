from dataclasses import dataclass
from datetime import date

import pytest

from recurrence import add_months, clamp_day, days_in_month, latest_record, next_due_date


@dataclass
class Cycle:
    day_of_month: int
    cycle_months: int


@dataclass
class Paid:
    year: int
    month: int


def test_next_due_date_monthly_from_last_payment():
    assert next_due_date(Cycle(15, 1), Paid(2024, 1), 2024, 3) == date(2024, 2, 15)


def test_next_due_date_clamps_to_leap_february():
    assert next_due_date(Cycle(31, 1), Paid(2024, 1), 2024, 1) == date(2024, 2, 29)


def test_next_due_date_clamps_to_short_month():
    assert next_due_date(Cycle(31, 1), Paid(2023, 3), 2023, 3) == date(2023, 4, 30)
    assert next_due_date(Cycle(30, 1), Paid(2023, 1), 2023, 1) == date(2023, 2, 28)


def test_next_due_date_without_payment_anchors_to_reference_month():
    assert next_due_date(Cycle(10, 3), None, 2024, 6) == date(2024, 6, 10)
    # no specific day means the last day of the month
    assert next_due_date(Cycle(0, 1), None, 2024, 2) == date(2024, 2, 29)
    assert next_due_date(Cycle(31, 1), None, 2024, 11) == date(2024, 11, 30)


def test_next_due_date_end_of_month_after_cycle():
    assert next_due_date(Cycle(0, 1), Paid(2023, 1), 2023, 1) == date(2023, 2, 28)


def test_next_due_date_carries_year():
    assert next_due_date(Cycle(5, 1), Paid(2023, 12), 2024, 1) == date(2024, 1, 5)
    assert next_due_date(Cycle(5, 3), Paid(2023, 11), 2024, 1) == date(2024, 2, 5)
    assert next_due_date(Cycle(20, 12), Paid(2023, 6), 2024, 1) == date(2024, 6, 20)
    assert next_due_date(Cycle(1, 25), Paid(2023, 12), 2024, 1) == date(2026, 1, 1)


def test_next_due_date_is_repeatable():
    cycle = Cycle(31, 2)
    paid = Paid(2023, 12)
    first = next_due_date(cycle, paid, 2024, 1)
    assert next_due_date(cycle, paid, 2024, 1) == first == date(2024, 2, 29)


def test_next_due_date_always_produces_a_real_date():
    for day in range(0, 32):
        for cycle_months in range(1, 15):
            for month in range(1, 13):
                for year in (2023, 2024):
                    due = next_due_date(Cycle(day, cycle_months), Paid(year, month), year, month)
                    assert 1 <= due.day <= days_in_month(due.year, due.month)
                    if day and day <= days_in_month(due.year, due.month):
                        assert due.day == day
                    else:
                        assert due.day == days_in_month(due.year, due.month)
                    without_payment = next_due_date(Cycle(day, cycle_months), None, year, month)
                    assert (without_payment.year, without_payment.month) == (year, month)


def test_on_demand_obligations_have_no_due_date():
    with pytest.raises(ValueError):
        next_due_date(Cycle(10, 0), None, 2024, 1)


def test_helpers():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2023, 2) == 28
    assert days_in_month(2023, 12) == 31
    assert add_months(2023, 11, 2) == (2024, 1)
    assert add_months(2023, 12, 12) == (2024, 12)
    assert clamp_day(2023, 9, 31) == date(2023, 9, 30)
    assert clamp_day(2023, 9, 0) == date(2023, 9, 30)


def test_latest_record_picks_most_recent_period():
    records = [Paid(2023, 12), Paid(2024, 2), Paid(2024, 1)]
    assert latest_record(records) == Paid(2024, 2)
    assert latest_record([]) is None
