from datetime import datetime, timedelta

import pytest

from conftest import NOW
from datamodel import OneOff, RecurrenceKind, Recurring, Reminder
from reminders.schedule import describe_schedule, latest_occurrence, next_trigger_at


def _reminder(schedule, created_at=NOW, last_triggered_at=None) -> Reminder:
    return Reminder(
        reminder_id="01TEST",
        owner="1",
        task_text="task",
        schedule=schedule,
        created_at=created_at,
        updated_at=created_at,
        last_triggered_at=last_triggered_at,
    )


EVERY_2_HOURS = Recurring(kind=RecurrenceKind.INTERVAL, interval_ms=2 * 3_600_000)
DAILY_6 = Recurring(kind=RecurrenceKind.DAILY, anchor_hour=6, anchor_minute=0)
DAILY_14 = Recurring(kind=RecurrenceKind.DAILY, anchor_hour=14, anchor_minute=0)
MONDAY_9 = Recurring(kind=RecurrenceKind.WEEKLY, weekday=0, anchor_hour=9, anchor_minute=0)
WEDNESDAY_8 = Recurring(kind=RecurrenceKind.WEEKLY, weekday=2, anchor_hour=8, anchor_minute=0)


def test_one_off_next_trigger_is_fixed():
    trigger_at = datetime(2026, 10, 19, 14, 30)
    assert next_trigger_at(_reminder(OneOff(trigger_at=trigger_at))) == trigger_at


def test_interval_counts_from_created_then_last_triggered():
    assert next_trigger_at(_reminder(EVERY_2_HOURS)) == NOW + timedelta(hours=2)
    fired = _reminder(EVERY_2_HOURS, last_triggered_at=NOW + timedelta(hours=2))
    assert next_trigger_at(fired) == NOW + timedelta(hours=4)


def test_daily_anchor_strictly_after_base():
    assert next_trigger_at(_reminder(DAILY_6)) == datetime(2026, 10, 20, 6, 0)
    assert next_trigger_at(_reminder(DAILY_14)) == datetime(2026, 10, 19, 14, 0)
    fired_at_anchor = _reminder(DAILY_6, last_triggered_at=datetime(2026, 10, 20, 6, 0))
    assert next_trigger_at(fired_at_anchor) == datetime(2026, 10, 21, 6, 0)


def test_weekly_anchor_strictly_after_base():
    # NOW 正好是周一 09:00, 下一次要等到下周一
    assert next_trigger_at(_reminder(MONDAY_9)) == datetime(2026, 10, 26, 9, 0)
    assert next_trigger_at(_reminder(WEDNESDAY_8)) == datetime(2026, 10, 21, 8, 0)


def test_latest_occurrence_on_time_equals_next_trigger():
    reminder = _reminder(EVERY_2_HOURS)
    due_at = next_trigger_at(reminder)
    assert latest_occurrence(reminder, due_at + timedelta(seconds=40)) == due_at


def test_latest_occurrence_skips_missed_intervals():
    reminder = _reminder(EVERY_2_HOURS)
    assert latest_occurrence(reminder, NOW + timedelta(hours=7)) == NOW + timedelta(hours=6)


def test_latest_occurrence_daily_and_weekly():
    assert latest_occurrence(_reminder(DAILY_6), datetime(2026, 10, 23, 10, 0)) == datetime(2026, 10, 23, 6, 0)
    assert latest_occurrence(_reminder(DAILY_6), datetime(2026, 10, 23, 5, 0)) == datetime(2026, 10, 22, 6, 0)
    assert latest_occurrence(_reminder(WEDNESDAY_8), datetime(2026, 11, 1, 12, 0)) == datetime(2026, 10, 28, 8, 0)


@pytest.mark.parametrize(
    "interval_ms, label",
    [
        (2 * 3_600_000, "every 2 hours"),
        (3_600_000, "every hour"),
        (30 * 60_000, "every 30 minutes"),
        (86_400_000, "every day"),
        (3 * 86_400_000, "every 3 days"),
        (90_000, "every 90 seconds"),
    ],
)
def test_describe_interval(interval_ms, label):
    assert describe_schedule(Recurring(kind=RecurrenceKind.INTERVAL, interval_ms=interval_ms), NOW) == label


def test_describe_anchored_and_one_off():
    assert describe_schedule(DAILY_6, NOW) == "every day at 06:00"
    assert describe_schedule(MONDAY_9, NOW) == "every Monday at 09:00"
    assert describe_schedule(OneOff(trigger_at=datetime(2026, 10, 19, 14, 30)), NOW) == "14:30"
    assert describe_schedule(OneOff(trigger_at=datetime(2026, 10, 20, 7, 0)), NOW) == "20/10 07:00"
