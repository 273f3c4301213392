from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rapidfuzz.distance import Levenshtein

from amounts import normalize_amount, normalize_optional_amount, sum_amounts
from config import get_settings
from due_status import STATUS_PRIORITY, classify
from models import DueStatus, Obligation, ObligationKind, Record, ReminderPreference
from recurrence import latest_record, local_now, next_due_date
from schemas import (
    ObligationIn,
    QuickAddIn,
    RecordIn,
    RecordUpdateIn,
    ReminderPreferenceIn,
)

UPCOMING_LIMIT = 5


class InvalidConfiguration(ValueError):
    pass


class NotFoundError(ValueError):
    pass


class AmbiguousMatchError(ValueError):
    pass


def get_current_user_id() -> int:
    return get_settings().user_id


def validate_cycle(day_of_month: int, cycle_months: int) -> None:
    # schemas bound these too; this covers callers that build unvalidated input
    if day_of_month < 0 or day_of_month > 31:
        raise InvalidConfiguration("Day of month must be between 0 and 31")
    if cycle_months < 0:
        raise InvalidConfiguration("Cycle must be 0 or greater")


@dataclass
class DueItem:
    obligation_id: int
    kind: ObligationKind
    name: str
    icon: Optional[str]
    color: Optional[str]
    fixed_amount: str
    day_of_month: int
    cycle_months: int
    next_due_date: str
    days_until_due: int
    status: DueStatus
    is_satisfied: bool
    last_record_year: Optional[int] = None
    last_record_month: Optional[int] = None
    last_record_amount: Optional[str] = None


@dataclass
class OnDemandItem:
    obligation_id: int
    kind: ObligationKind
    name: str
    icon: Optional[str]
    color: Optional[str]
    fixed_amount: str


@dataclass
class DashboardStats:
    year: int
    month: int
    total_spent: str
    bills_paid: int
    pending_bills: int
    pending_expenses: int
    expense_types: int
    upcoming_bills: list[DueItem] = field(default_factory=list)
    upcoming_expenses: list[DueItem] = field(default_factory=list)
    on_demand: list[OnDemandItem] = field(default_factory=list)


@dataclass
class RecordFilters:
    obligation_id: Optional[int] = None
    kind: Optional[ObligationKind] = None
    year: Optional[int] = None
    month: Optional[int] = None


def evaluate_obligation(
    obligation: Obligation,
    records: Iterable[Record],
    now: datetime,
    reference_period: Optional[tuple[int, int]] = None,
    *,
    against_due_period: bool = False,
) -> DueItem:
    """Compute the next due date and classification for one recurring obligation.

    By default the obligation is evaluated against ``reference_period`` and is
    satisfied by a record for that period (or for its due period). With
    ``against_due_period`` only a record for the due month itself satisfies it,
    which is what reminders need when the due date falls in a later month.
    """
    records = list(records)
    if reference_period is None:
        reference_period = (now.year, now.month)
    last = latest_record(records)
    due = next_due_date(obligation, last, *reference_period)
    due_period = (due.year, due.month)
    periods = {r.period for r in records}

    if against_due_period:
        evaluated_period = due_period
        has_record = due_period in periods
    else:
        evaluated_period = reference_period
        has_record = reference_period in periods or due_period in periods

    result = classify(due, has_record, now, evaluated_period)
    return DueItem(
        obligation_id=obligation.id,
        kind=obligation.kind,
        name=obligation.name,
        icon=obligation.icon,
        color=obligation.color,
        fixed_amount=obligation.fixed_amount or "",
        day_of_month=obligation.day_of_month,
        cycle_months=obligation.cycle_months,
        next_due_date=due.isoformat(),
        days_until_due=result.days_until_due,
        status=result.status,
        is_satisfied=result.is_satisfied,
        last_record_year=last.year if last else None,
        last_record_month=last.month if last else None,
        last_record_amount=last.amount if last else None,
    )


def sort_upcoming(items: list[DueItem]) -> list[DueItem]:
    return sorted(items, key=lambda item: (item.days_until_due, item.name.lower()))


def sort_due(items: list[DueItem]) -> list[DueItem]:
    return sorted(
        items,
        key=lambda item: (
            STATUS_PRIORITY[item.status],
            item.days_until_due,
            item.name.lower(),
        ),
    )


def records_by_obligation(
    session: Session, user_id: int, obligation_ids: list[int]
) -> dict[int, list[Record]]:
    grouped: dict[int, list[Record]] = {oid: [] for oid in obligation_ids}
    if not obligation_ids:
        return grouped
    stmt = select(Record).where(
        Record.user_id == user_id, Record.obligation_id.in_(obligation_ids)
    )
    for record in session.scalars(stmt):
        grouped[record.obligation_id].append(record)
    return grouped


def active_recurring(
    session: Session, user_id: int, kind: Optional[ObligationKind] = None
) -> list[Obligation]:
    stmt = select(Obligation).where(
        Obligation.user_id == user_id,
        Obligation.stopped.is_(False),
        Obligation.cycle_months > 0,
    )
    if kind is not None:
        stmt = stmt.where(Obligation.kind == kind)
    return list(session.scalars(stmt.order_by(Obligation.name)).all())


class ObligationService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def list(
        self, kind: Optional[ObligationKind] = None, include_stopped: bool = True
    ) -> list[Obligation]:
        stmt = select(Obligation).where(Obligation.user_id == self.user_id)
        if kind is not None:
            stmt = stmt.where(Obligation.kind == kind)
        if not include_stopped:
            stmt = stmt.where(Obligation.stopped.is_(False))
        stmt = stmt.order_by(Obligation.kind, Obligation.name)
        return list(self.session.scalars(stmt).all())

    def get(self, obligation_id: int) -> Obligation:
        obligation = self.session.get(Obligation, obligation_id)
        if not obligation or obligation.user_id != self.user_id:
            raise NotFoundError("Obligation not found")
        return obligation

    def _clean(self, data: ObligationIn, exclude_id: Optional[int] = None) -> dict:
        name = data.name.strip()
        if not name:
            raise InvalidConfiguration("Name cannot be empty")
        validate_cycle(data.day_of_month, data.cycle_months)
        try:
            fixed_amount = normalize_optional_amount(data.fixed_amount)
        except ValueError as exc:
            raise InvalidConfiguration(str(exc)) from exc

        stmt = select(Obligation.id).where(
            Obligation.user_id == self.user_id,
            Obligation.kind == data.kind,
            func.lower(Obligation.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Obligation.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise InvalidConfiguration(f"A {data.kind.value} named {name!r} already exists")

        return {
            "kind": data.kind,
            "name": name,
            "icon": (data.icon or "").strip() or None,
            "color": (data.color or "").strip() or None,
            "day_of_month": data.day_of_month,
            "cycle_months": data.cycle_months,
            "fixed_amount": fixed_amount,
            "stopped": data.stopped,
        }

    def create(self, data: ObligationIn) -> Obligation:
        values = self._clean(data)
        obligation = Obligation(user_id=self.user_id, **values)
        self.session.add(obligation)
        self.session.commit()
        self.session.refresh(obligation)
        return obligation

    def update(self, obligation_id: int, data: ObligationIn) -> Obligation:
        obligation = self.get(obligation_id)
        if data.kind != obligation.kind:
            raise InvalidConfiguration("Kind cannot be changed")
        values = self._clean(data, exclude_id=obligation.id)
        for key, value in values.items():
            setattr(obligation, key, value)
        self.session.commit()
        self.session.refresh(obligation)
        return obligation

    def toggle(self, obligation_id: int) -> Obligation:
        obligation = self.get(obligation_id)
        obligation.stopped = not obligation.stopped
        self.session.commit()
        self.session.refresh(obligation)
        return obligation

    def delete(self, obligation_id: int) -> None:
        obligation = self.get(obligation_id)
        self.session.delete(obligation)
        self.session.commit()


class RecordService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def get(self, record_id: int) -> Record:
        record = self.session.get(Record, record_id)
        if not record or record.user_id != self.user_id:
            raise NotFoundError("Record not found")
        return record

    def list(self, filters: Optional[RecordFilters] = None) -> list[Record]:
        filters = filters or RecordFilters()
        stmt = select(Record).where(Record.user_id == self.user_id)
        if filters.obligation_id is not None:
            stmt = stmt.where(Record.obligation_id == filters.obligation_id)
        if filters.kind is not None:
            stmt = stmt.where(Record.kind == filters.kind)
        if filters.year is not None:
            stmt = stmt.where(Record.year == filters.year)
        if filters.month is not None:
            stmt = stmt.where(Record.month == filters.month)
        stmt = stmt.order_by(Record.year.desc(), Record.month.desc(), Record.id.desc())
        return list(self.session.scalars(stmt).all())

    def monthly_total(self, year: int, month: int) -> Decimal:
        """Amount spent in one month.

        Expense records that itemise a bill payment are already counted in
        the bill record.
        """
        records = self.list(RecordFilters(year=year, month=month))
        return sum_amounts(
            r.amount
            for r in records
            if r.kind == ObligationKind.bill or r.bill_record_id is None
        )

    def _obligation(self, obligation_id: int) -> Obligation:
        obligation = self.session.get(Obligation, obligation_id)
        if not obligation or obligation.user_id != self.user_id:
            raise NotFoundError("Obligation not found")
        return obligation

    def _check_bill_link(self, obligation: Obligation, bill_record_id: Optional[int]) -> None:
        if bill_record_id is None:
            return
        if obligation.kind != ObligationKind.expense:
            raise InvalidConfiguration("Only expense records can link to a bill payment")
        linked = self.session.get(Record, bill_record_id)
        if not linked or linked.user_id != self.user_id:
            raise NotFoundError("Bill payment not found")
        if linked.kind != ObligationKind.bill:
            raise InvalidConfiguration("Linked record is not a bill payment")

    def _check_unique_period(
        self,
        obligation: Obligation,
        year: int,
        month: int,
        exclude_id: Optional[int] = None,
    ) -> None:
        if obligation.kind != ObligationKind.bill:
            return
        stmt = select(Record.id).where(
            Record.user_id == self.user_id,
            Record.obligation_id == obligation.id,
            Record.year == year,
            Record.month == month,
        )
        if exclude_id is not None:
            stmt = stmt.where(Record.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise InvalidConfiguration("A payment already exists for this month")

    @staticmethod
    def _amount(value: str) -> str:
        try:
            return normalize_amount(value)
        except ValueError as exc:
            raise InvalidConfiguration(str(exc)) from exc

    def create(self, data: RecordIn) -> Record:
        obligation = self._obligation(data.obligation_id)
        amount = self._amount(data.amount)
        self._check_unique_period(obligation, data.year, data.month)
        self._check_bill_link(obligation, data.bill_record_id)
        record = Record(
            user_id=self.user_id,
            obligation_id=obligation.id,
            kind=obligation.kind,
            year=data.year,
            month=data.month,
            amount=amount,
            note=(data.note or "").strip() or None,
            bill_record_id=data.bill_record_id,
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def update(self, record_id: int, data: RecordUpdateIn) -> Record:
        record = self.get(record_id)
        amount = self._amount(data.amount)
        self._check_bill_link(record.obligation, data.bill_record_id)
        record.amount = amount
        record.note = (data.note or "").strip() or None
        record.bill_record_id = data.bill_record_id
        self.session.commit()
        self.session.refresh(record)
        return record

    def delete(self, record_id: int) -> None:
        record = self.get(record_id)
        self.session.delete(record)
        self.session.commit()


class QuickAddService:
    """Log a record by obligation name, tolerating a one-character typo."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def match(self, kind: ObligationKind, name: str) -> Obligation:
        input_lower = name.strip().lower()
        if not input_lower:
            raise InvalidConfiguration("Name cannot be empty")

        candidates = self.session.scalars(
            select(Obligation).where(
                Obligation.user_id == self.user_id,
                Obligation.kind == kind,
                Obligation.stopped.is_(False),
            )
        ).all()
        for obligation in candidates:
            if obligation.name.strip().lower() == input_lower:
                return obligation

        best_distance: Optional[int] = None
        best: list[Obligation] = []
        for obligation in candidates:
            dist = int(Levenshtein.distance(input_lower, obligation.name.strip().lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [obligation]
            elif dist == best_distance:
                best.append(obligation)

        if best_distance is None or best_distance > 1:
            raise NotFoundError(f"No {kind.value} matches {name!r}")
        if len(best) > 1:
            names = ", ".join(sorted(o.name for o in best))
            raise AmbiguousMatchError(f"{name!r} matches several entries: {names}")
        return best[0]

    def log(self, data: QuickAddIn, now: Optional[datetime] = None) -> Record:
        now = now or local_now()
        obligation = self.match(data.kind, data.name)
        amount = data.amount or obligation.fixed_amount
        if not amount:
            raise InvalidConfiguration("Amount is required when no fixed amount is set")
        return RecordService(self.session, self.user_id).create(
            RecordIn(
                obligation_id=obligation.id,
                year=data.year or now.year,
                month=data.month or now.month,
                amount=amount,
                note=data.note,
            )
        )


class ReminderPreferenceService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def get(self) -> ReminderPreference:
        pref = self.session.scalar(
            select(ReminderPreference).where(ReminderPreference.user_id == self.user_id)
        )
        if pref is None:
            pref = ReminderPreference(
                user_id=self.user_id,
                push_url="",
                enabled=False,
                remind_hour=9,
                remind_days_before=3,
            )
            self.session.add(pref)
            self.session.commit()
            self.session.refresh(pref)
        return pref

    def update(self, data: ReminderPreferenceIn) -> ReminderPreference:
        # same bounds as the schema, for input built without validation
        if not 0 <= data.remind_hour <= 23:
            raise InvalidConfiguration("Remind hour must be between 0 and 23")
        if not 0 <= data.remind_days_before <= 30:
            raise InvalidConfiguration("Remind days before must be between 0 and 30")
        pref = self.get()
        pref.push_url = data.push_url.strip()
        pref.enabled = data.enabled
        pref.remind_hour = data.remind_hour
        pref.remind_days_before = data.remind_days_before
        self.session.commit()
        self.session.refresh(pref)
        return pref


class DashboardService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def _evaluate_all(
        self,
        kind: ObligationKind,
        now: datetime,
        reference_period: Optional[tuple[int, int]] = None,
    ) -> list[DueItem]:
        obligations = active_recurring(self.session, self.user_id, kind)
        grouped = records_by_obligation(
            self.session, self.user_id, [o.id for o in obligations]
        )
        return [
            evaluate_obligation(o, grouped[o.id], now, reference_period)
            for o in obligations
        ]

    def pending(self, kind: ObligationKind, now: Optional[datetime] = None) -> list[DueItem]:
        now = now or local_now()
        items = [
            item
            for item in self._evaluate_all(kind, now)
            if not item.is_satisfied and item.days_until_due >= 0
        ]
        return sort_upcoming(items)

    def upcoming(
        self,
        kind: ObligationKind,
        now: Optional[datetime] = None,
        limit: int = UPCOMING_LIMIT,
    ) -> list[DueItem]:
        return self.pending(kind, now)[:limit]

    def on_demand(self) -> list[OnDemandItem]:
        stmt = (
            select(Obligation)
            .where(
                Obligation.user_id == self.user_id,
                Obligation.cycle_months == 0,
                Obligation.stopped.is_(False),
            )
            .order_by(Obligation.kind, Obligation.name)
        )
        return [
            OnDemandItem(
                obligation_id=o.id,
                kind=o.kind,
                name=o.name,
                icon=o.icon,
                color=o.color,
                fixed_amount=o.fixed_amount or "",
            )
            for o in self.session.scalars(stmt)
        ]

    def due_items(
        self,
        kind: ObligationKind,
        year: int,
        month: int,
        now: Optional[datetime] = None,
    ) -> list[DueItem]:
        now = now or local_now()
        return sort_due(self._evaluate_all(kind, now, (year, month)))

    def stats(self, now: Optional[datetime] = None) -> DashboardStats:
        now = now or local_now()
        records = RecordService(self.session, self.user_id)
        bills_paid = len(
            records.list(
                RecordFilters(kind=ObligationKind.bill, year=now.year, month=now.month)
            )
        )
        expense_types = self.session.scalar(
            select(func.count(Obligation.id)).where(
                Obligation.user_id == self.user_id,
                Obligation.kind == ObligationKind.expense,
            )
        )
        pending_bills = self.pending(ObligationKind.bill, now)
        pending_expenses = self.pending(ObligationKind.expense, now)
        return DashboardStats(
            year=now.year,
            month=now.month,
            total_spent=str(records.monthly_total(now.year, now.month)),
            bills_paid=bills_paid,
            pending_bills=len(pending_bills),
            pending_expenses=len(pending_expenses),
            expense_types=int(expense_types or 0),
            upcoming_bills=pending_bills[:UPCOMING_LIMIT],
            upcoming_expenses=pending_expenses[:UPCOMING_LIMIT],
            on_demand=self.on_demand(),
        )
