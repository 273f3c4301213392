from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from amounts import is_nonzero
from models import ReminderPreference
from notifier import BarkNotifier, DispatchFailure
from recurrence import local_now
from services import (
    DueItem,
    InvalidConfiguration,
    ReminderPreferenceService,
    active_recurring,
    evaluate_obligation,
    records_by_obligation,
    sort_upcoming,
)

logger = logging.getLogger(__name__)

MAX_LISTED = 5
MAX_MANUAL_DAYS = 365


class Notifier(Protocol):
    def send(self, url: str, title: str, body: str) -> None: ...


@dataclass
class ScanResult:
    hour: int
    users: int = 0
    sent: int = 0
    nothing_due: int = 0
    failed: int = 0


@dataclass
class TriggerResult:
    due_count: int
    days_before: int
    sent: bool
    message: str


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _short_date(value: date) -> str:
    return f"{value.strftime('%b')} {value.day}"


def _amount_suffix(item: DueItem, template: str) -> str:
    if item.fixed_amount and is_nonzero(item.fixed_amount):
        return template.format(amount=item.fixed_amount)
    return ""


def compose_message(
    items: list[DueItem], days_before: int, *, manual: bool = False
) -> tuple[str, str]:
    """Build the push title and body for a non-empty list of due items."""
    if not items:
        raise ValueError("Nothing to remind about")
    title = "📋 Manual Payment Reminder" if manual else "📋 Payments Due Reminder"

    if len(items) == 1:
        item = items[0]
        due = date.fromisoformat(item.next_due_date)
        body = f"You have 1 payment due on {_short_date(due)}:\n\n• {item.name}"
        body += _amount_suffix(item, " - ${amount}")
        return title, body

    if days_before == 0:
        header = f"You have {_plural(len(items), 'payment')} due today:"
    else:
        header = (
            f"You have {_plural(len(items), 'payment')} due within "
            f"{_plural(days_before, 'day')}:"
        )
    lines = []
    for item in items[:MAX_LISTED]:
        due = date.fromisoformat(item.next_due_date)
        lines.append(
            f"• {item.name} - {_short_date(due)}" + _amount_suffix(item, " (${amount})")
        )
    if len(items) > MAX_LISTED:
        lines.append(f"...and {len(items) - MAX_LISTED} more")
    return title, header + "\n\n" + "\n".join(lines)


class ReminderService:
    def __init__(self, session: Session, notifier: Optional[Notifier] = None) -> None:
        self.session = session
        self.notifier = notifier or BarkNotifier()

    def due_for_user(
        self, user_id: int, days_before: int, now: Optional[datetime] = None
    ) -> list[DueItem]:
        """Recurring obligations falling due within ``days_before`` days and not yet paid."""
        now = now or local_now()
        obligations = active_recurring(self.session, user_id)
        grouped = records_by_obligation(self.session, user_id, [o.id for o in obligations])
        due: list[DueItem] = []
        for obligation in obligations:
            item = evaluate_obligation(
                obligation, grouped[obligation.id], now, against_due_period=True
            )
            if item.is_satisfied:
                continue
            if 0 <= item.days_until_due <= days_before:
                due.append(item)
        return sort_upcoming(due)

    def scan(self, now: Optional[datetime] = None) -> ScanResult:
        now = now or local_now()
        result = ScanResult(hour=now.hour)
        stmt = (
            select(ReminderPreference)
            .where(
                ReminderPreference.enabled.is_(True),
                ReminderPreference.remind_hour == now.hour,
            )
            .order_by(ReminderPreference.user_id)
        )
        targets = [
            (pref.user_id, pref.push_url, pref.remind_days_before)
            for pref in self.session.scalars(stmt)
        ]
        logger.info(f"reminder_scan: at={now.isoformat()} hour={now.hour} users={len(targets)}")

        for user_id, push_url, days_before in targets:
            result.users += 1
            try:
                sent = self._process_user(user_id, push_url, days_before, now)
            except DispatchFailure as exc:
                result.failed += 1
                logger.warning(f"reminder_dispatch_failed: user_id={user_id} error={exc}")
                continue
            except Exception:
                result.failed += 1
                self.session.rollback()
                logger.exception(f"reminder_user_failed: user_id={user_id}")
                continue
            if sent:
                result.sent += 1
            else:
                result.nothing_due += 1

        logger.info(
            f"reminder_scan_done: hour={result.hour} users={result.users} "
            f"sent={result.sent} nothing_due={result.nothing_due} failed={result.failed}"
        )
        return result

    def _process_user(
        self, user_id: int, push_url: str, days_before: int, now: datetime
    ) -> bool:
        items = self.due_for_user(user_id, days_before, now)
        if not items:
            logger.info(f"reminder_nothing_due: user_id={user_id} days_before={days_before}")
            return False
        title, body = compose_message(items, days_before)
        self.notifier.send(push_url, title, body)
        logger.info(f"reminder_sent: user_id={user_id} due={len(items)}")
        return True

    def trigger(
        self,
        user_id: int,
        days_before: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TriggerResult:
        """Run the reminder for one user right away and report what happened."""
        now = now or local_now()
        pref = ReminderPreferenceService(self.session, user_id).get()
        if days_before is None:
            days_before = pref.remind_days_before
        if days_before < 0 or days_before > MAX_MANUAL_DAYS:
            raise InvalidConfiguration(f"Days must be between 0 and {MAX_MANUAL_DAYS}")

        items = self.due_for_user(user_id, days_before, now)
        if not pref.enabled or not pref.push_url:
            return TriggerResult(
                due_count=len(items),
                days_before=days_before,
                sent=False,
                message="Notifications are not enabled or the push URL is not configured",
            )
        if not items:
            return TriggerResult(
                due_count=0,
                days_before=days_before,
                sent=False,
                message="No payments due in the specified time period",
            )

        title, body = compose_message(items, days_before, manual=True)
        try:
            self.notifier.send(pref.push_url, title, body)
        except DispatchFailure as exc:
            logger.warning(f"reminder_manual_failed: user_id={user_id} error={exc}")
            return TriggerResult(
                due_count=len(items),
                days_before=days_before,
                sent=False,
                message=str(exc),
            )
        logger.info(f"reminder_manual_sent: user_id={user_id} due={len(items)}")
        return TriggerResult(
            due_count=len(items),
            days_before=days_before,
            sent=True,
            message=f"Sent reminder for {_plural(len(items), 'payment')} due",
        )

    def send_test(self, user_id: int) -> None:
        pref = ReminderPreferenceService(self.session, user_id).get()
        if not pref.enabled or not pref.push_url:
            raise InvalidConfiguration(
                "Notifications are not enabled or the push URL is not configured"
            )
        self.notifier.send(
            pref.push_url,
            "🧪 Test Notification",
            "This is a test notification. Your push configuration is working correctly!",
        )
