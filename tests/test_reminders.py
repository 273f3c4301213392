from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import DueStatus, Obligation, ObligationKind, Record, ReminderPreference
from notifier import DispatchFailure
from reminders import ReminderService, compose_message
from services import DueItem, InvalidConfiguration


NOW = datetime(2024, 3, 10, 9, 0)


class FakeNotifier:
    def __init__(self, fail_urls=()):
        self.fail_urls = set(fail_urls)
        self.sent = []

    def send(self, url, title, body):
        if url in self.fail_urls:
            raise DispatchFailure("Push endpoint returned status 500")
        self.sent.append((url, title, body))


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _preference(session, user_id, *, enabled=True, hour=9, days=3, url=None):
    session.add(
        ReminderPreference(
            user_id=user_id,
            push_url=url if url is not None else f"https://push.example/{user_id}",
            enabled=enabled,
            remind_hour=hour,
            remind_days_before=days,
        )
    )


def _obligation(session, user_id, name, day, cycle=1, **kwargs):
    obligation = Obligation(
        user_id=user_id,
        kind=kwargs.pop("kind", ObligationKind.bill),
        name=name,
        day_of_month=day,
        cycle_months=cycle,
        fixed_amount=kwargs.pop("fixed_amount", ""),
        **kwargs,
    )
    session.add(obligation)
    session.flush()
    return obligation


def _item(name, due, amount=""):
    return DueItem(
        obligation_id=1,
        kind=ObligationKind.bill,
        name=name,
        icon=None,
        color=None,
        fixed_amount=amount,
        day_of_month=int(due[-2:]),
        cycle_months=1,
        next_due_date=due,
        days_until_due=2,
        status=DueStatus.due_soon,
        is_satisfied=False,
    )


def test_disabled_preference_receives_nothing():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1, enabled=False)
        _obligation(session, 1, "Rent", 11)
        session.commit()

        notifier = FakeNotifier()
        result = ReminderService(session, notifier).scan(NOW)

        assert notifier.sent == []
        assert result.users == 0


def test_scan_only_considers_users_at_current_hour():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1, hour=9)
        _preference(session, 2, hour=18)
        _obligation(session, 1, "Rent", 11)
        _obligation(session, 2, "Rent", 11)
        session.commit()

        notifier = FakeNotifier()
        result = ReminderService(session, notifier).scan(NOW)

        assert [url for url, _, _ in notifier.sent] == ["https://push.example/1"]
        assert result.sent == 1


def test_failure_for_one_user_does_not_stop_others():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1)
        _preference(session, 2)
        _obligation(session, 1, "Rent", 11)
        _obligation(session, 2, "Phone", 12, fixed_amount="20.00")
        session.commit()

        notifier = FakeNotifier(fail_urls={"https://push.example/1"})
        result = ReminderService(session, notifier).scan(NOW)

        assert result.users == 2
        assert result.failed == 1
        assert result.sent == 1
        assert len(notifier.sent) == 1
        url, title, body = notifier.sent[0]
        assert url == "https://push.example/2"
        assert title == "📋 Payments Due Reminder"
        assert body == "You have 1 payment due on Mar 12:\n\n• Phone - $20.00"


def test_user_with_nothing_due_is_not_notified():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1, days=3)
        # due in 10 days, outside the window
        _obligation(session, 1, "Rent", 20)
        session.commit()

        notifier = FakeNotifier()
        result = ReminderService(session, notifier).scan(NOW)

        assert notifier.sent == []
        assert result.nothing_due == 1


def test_due_for_user_skips_stopped_on_demand_and_paid():
    engine = _engine()
    with Session(engine) as session:
        _obligation(session, 1, "Stopped", 11, stopped=True)
        _obligation(session, 1, "Doctor", 11, cycle=0)
        paid = _obligation(session, 1, "Paid", 11)
        session.add(
            Record(
                user_id=1,
                obligation_id=paid.id,
                kind=ObligationKind.bill,
                year=2024,
                month=3,
                amount="5.00",
            )
        )
        _obligation(session, 1, "Groceries", 12, kind=ObligationKind.expense)
        _obligation(session, 1, "Today", 10)
        session.commit()

        items = ReminderService(session, FakeNotifier()).due_for_user(1, 3, NOW)

        assert [(i.name, i.days_until_due) for i in items] == [
            ("Today", 0),
            ("Groceries", 2),
        ]


def test_due_date_in_next_month_is_included():
    engine = _engine()
    with Session(engine) as session:
        rent = _obligation(session, 1, "Rent", 2)
        session.add(
            Record(
                user_id=1,
                obligation_id=rent.id,
                kind=ObligationKind.bill,
                year=2024,
                month=3,
                amount="950.00",
            )
        )
        session.commit()

        items = ReminderService(session, FakeNotifier()).due_for_user(
            1, 3, datetime(2024, 3, 30, 9, 0)
        )

        assert [(i.name, i.next_due_date, i.days_until_due) for i in items] == [
            ("Rent", "2024-04-02", 3)
        ]


def test_compose_message_lists_items():
    title, body = compose_message(
        [_item("Rent", "2024-03-12", "950.00"), _item("Water", "2024-03-13")], 3
    )
    assert title == "📋 Payments Due Reminder"
    assert body == (
        "You have 2 payments due within 3 days:\n\n"
        "• Rent - Mar 12 ($950.00)\n"
        "• Water - Mar 13"
    )


def test_compose_message_caps_list():
    items = [_item(f"Bill {n}", f"2024-03-{n:02d}") for n in range(11, 18)]
    title, body = compose_message(items, 0, manual=True)
    assert title == "📋 Manual Payment Reminder"
    lines = body.split("\n")
    assert lines[0] == "You have 7 payments due today:"
    assert lines[2:] == [
        "• Bill 11 - Mar 11",
        "• Bill 12 - Mar 12",
        "• Bill 13 - Mar 13",
        "• Bill 14 - Mar 14",
        "• Bill 15 - Mar 15",
        "...and 2 more",
    ]


def test_compose_message_singular_ignores_zero_amount():
    _, body = compose_message([_item("Rent", "2024-03-12", "0.00")], 1)
    assert body == "You have 1 payment due on Mar 12:\n\n• Rent"
    with pytest.raises(ValueError):
        compose_message([], 1)


def test_trigger_with_disabled_preference_reports_count_only():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1, enabled=False)
        _obligation(session, 1, "Rent", 11)
        session.commit()

        notifier = FakeNotifier()
        result = ReminderService(session, notifier).trigger(1, now=NOW)

        assert result.sent is False
        assert result.due_count == 1
        assert result.days_before == 3
        assert notifier.sent == []


def test_trigger_sends_with_days_override():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1, days=0)
        _obligation(session, 1, "Rent", 11)
        _obligation(session, 1, "Insurance", 30, cycle=12)
        session.commit()

        notifier = FakeNotifier()
        result = ReminderService(session, notifier).trigger(1, days_before=30, now=NOW)

        assert result.sent is True
        assert result.due_count == 2
        assert result.days_before == 30
        assert notifier.sent[0][1] == "📋 Manual Payment Reminder"

        result = ReminderService(session, notifier).trigger(1, now=NOW)
        assert result.sent is False
        assert result.due_count == 0

        with pytest.raises(InvalidConfiguration):
            ReminderService(session, notifier).trigger(1, days_before=366, now=NOW)


def test_trigger_reports_dispatch_failure():
    engine = _engine()
    with Session(engine) as session:
        _preference(session, 1)
        _obligation(session, 1, "Rent", 11)
        session.commit()

        notifier = FakeNotifier(fail_urls={"https://push.example/1"})
        result = ReminderService(session, notifier).trigger(1, now=NOW)

        assert result.sent is False
        assert result.due_count == 1
        assert "500" in result.message


def test_send_test_requires_enabled_preference():
    engine = _engine()
    with Session(engine) as session:
        notifier = FakeNotifier()
        service = ReminderService(session, notifier)
        with pytest.raises(InvalidConfiguration):
            service.send_test(1)

        pref = session.query(ReminderPreference).filter_by(user_id=1).one()
        pref.enabled = True
        pref.push_url = "https://push.example/1"
        session.commit()

        service.send_test(1)
        assert notifier.sent[0][1] == "🧪 Test Notification"
