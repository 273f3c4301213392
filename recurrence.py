from datetime import date, datetime
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from config import get_settings


class CycleConfig(Protocol):
    day_of_month: int
    cycle_months: int


class PeriodRecord(Protocol):
    year: int
    month: int


def local_now() -> datetime:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(year: int, month: int, count: int) -> tuple[int, int]:
    month += count
    while month > 12:
        month -= 12
        year += 1
    return year, month


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, treating day 0 as the last day and clamping overlong days."""
    dim = days_in_month(year, month)
    if day <= 0 or day > dim:
        day = dim
    return date(year, month, day)


def next_due_date(
    obligation: CycleConfig,
    last_record: Optional[PeriodRecord],
    reference_year: int,
    reference_month: int,
) -> date:
    """Next date a recurring obligation falls due.

    Without a previous record the obligation is anchored to the reference
    month. Otherwise the cycle is counted forward from the month of the most
    recent record.
    """
    if obligation.cycle_months <= 0:
        raise ValueError("On-demand obligations have no due date")

    if last_record is None:
        year, month = reference_year, reference_month
    else:
        year, month = add_months(
            last_record.year, last_record.month, obligation.cycle_months
        )
    return clamp_day(year, month, obligation.day_of_month)


def latest_record(records) -> Optional[PeriodRecord]:
    latest = None
    for record in records:
        if latest is None or (record.year, record.month) > (latest.year, latest.month):
            latest = record
    return latest
