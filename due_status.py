from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from models import DueStatus

DUE_SOON_DAYS = 7

STATUS_PRIORITY = {
    DueStatus.overdue: 0,
    DueStatus.due_soon: 1,
    DueStatus.upcoming: 2,
}


@dataclass(frozen=True)
class DueClassification:
    due_date: date
    status: DueStatus
    days_until_due: int
    is_satisfied: bool

    @property
    def due_period(self) -> tuple[int, int]:
        return (self.due_date.year, self.due_date.month)


def _as_date(now: Union[date, datetime]) -> date:
    if isinstance(now, datetime):
        return now.date()
    return now


def days_until(due: date, now: Union[date, datetime]) -> int:
    return (due - _as_date(now)).days


def classify(
    next_due: date,
    has_record_for_period: bool,
    now: Union[date, datetime],
    reference_period: Optional[tuple[int, int]] = None,
) -> DueClassification:
    """Classify a due date relative to ``now``.

    An obligation counts as satisfied when a record covers the evaluated
    period, or when its due month lies after the reference period. Satisfied
    obligations are always reported as upcoming. A due date of today is not
    overdue.
    """
    today = _as_date(now)
    if reference_period is None:
        reference_period = (today.year, today.month)

    days = days_until(next_due, today)
    due_period = (next_due.year, next_due.month)
    is_satisfied = has_record_for_period or due_period > reference_period

    if is_satisfied:
        status = DueStatus.upcoming
    elif days < 0:
        status = DueStatus.overdue
    elif days <= DUE_SOON_DAYS:
        status = DueStatus.due_soon
    else:
        status = DueStatus.upcoming

    return DueClassification(
        due_date=next_due,
        status=status,
        days_until_due=days,
        is_satisfied=is_satisfied,
    )
