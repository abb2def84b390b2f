import asyncio
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from channels.base import DeliveryGateway
from conftest import NOW, FailingGateway
from datamodel import OneOff, RecurrenceKind, Recurring
from events import E
from reminders.scheduler import ReminderScheduler, render_delivery_text
from storage.reminder import ReminderRepository

EVERY_2_HOURS = Recurring(kind=RecurrenceKind.INTERVAL, interval_ms=7_200_000)


@pytest.mark.asyncio
async def test_nothing_fires_before_due(repository, scheduler, gateway):
    repository.create("1", OneOff(trigger_at=NOW + timedelta(minutes=1)), "minum air")

    assert await scheduler.tick(NOW) == []
    assert gateway.sent == []


@pytest.mark.asyncio
async def test_one_off_fires_exactly_once(repository, scheduler, gateway, store_path, clock):
    trigger_at = NOW + timedelta(minutes=1)
    reminder = repository.create("1", OneOff(trigger_at=trigger_at), "minum air")

    fired = await scheduler.tick(trigger_at + timedelta(seconds=20))
    assert [r.reminder_id for r in fired] == [reminder.reminder_id]
    assert gateway.sent == [("1", "⏰ Reminder: minum air")]

    stored = repository.get(reminder.reminder_id)
    assert stored.active is False
    assert stored.last_triggered_at == trigger_at

    for minutes in (2, 3, 60):
        await scheduler.tick(trigger_at + timedelta(minutes=minutes))
    assert len(gateway.sent) == 1

    reloaded = ReminderRepository(store_path, clock)
    reloaded.load()
    assert reloaded.get(reminder.reminder_id).active is False


@pytest.mark.asyncio
async def test_interval_advances_one_period_per_fire(repository, scheduler, gateway):
    reminder = repository.create("1", EVERY_2_HOURS, "break")

    await scheduler.tick(NOW + timedelta(hours=2) - timedelta(seconds=1))
    assert gateway.sent == []

    # tick 时刻有抖动, last_triggered_at 仍然精确落在 T+2h, T+4h, T+6h
    for hours, jitter in ((2, 30), (4, 59), (6, 0)):
        await scheduler.tick(NOW + timedelta(hours=hours, seconds=jitter))
        assert repository.get(reminder.reminder_id).last_triggered_at == NOW + timedelta(hours=hours)

    assert gateway.sent == [("1", "⏰ Reminder: break")] * 3
    assert repository.get(reminder.reminder_id).active is True


@pytest.mark.asyncio
async def test_missed_occurrences_are_not_backfilled(repository, scheduler, gateway):
    reminder = repository.create("1", EVERY_2_HOURS, "break")

    await scheduler.tick(NOW + timedelta(hours=7))
    assert len(gateway.sent) == 1
    assert repository.get(reminder.reminder_id).last_triggered_at == NOW + timedelta(hours=6)

    await scheduler.tick(NOW + timedelta(hours=7, minutes=30))
    assert len(gateway.sent) == 1

    await scheduler.tick(NOW + timedelta(hours=8))
    assert len(gateway.sent) == 2


@pytest.mark.asyncio
async def test_daily_fires_at_anchor(repository, scheduler, gateway):
    reminder = repository.create("1", Recurring(kind=RecurrenceKind.DAILY, anchor_hour=6, anchor_minute=0), "olahraga")

    await scheduler.tick(datetime(2026, 10, 20, 5, 59))
    assert gateway.sent == []

    await scheduler.tick(datetime(2026, 10, 20, 6, 0))
    assert gateway.sent == [("1", "⏰ Reminder: olahraga")]
    assert repository.get(reminder.reminder_id).last_triggered_at == datetime(2026, 10, 20, 6, 0)


@pytest.mark.asyncio
async def test_delivery_failure_still_advances(repository, clock, bus):
    gateway = FailingGateway({"bad"})
    scheduler = ReminderScheduler(repository, gateway, clock, bus=bus)
    failed = []
    bus.on(E.REMINDER_DELIVERY_FAILED)(lambda reminder, error: failed.append(reminder.reminder_id))

    broken = repository.create("bad", OneOff(trigger_at=NOW + timedelta(minutes=1)), "a")
    ok = repository.create("good", OneOff(trigger_at=NOW + timedelta(minutes=1)), "b")
    recurring = repository.create("bad", EVERY_2_HOURS, "c")

    await scheduler.tick(NOW + timedelta(hours=2))

    assert gateway.attempts == 3
    assert gateway.sent == [("good", "⏰ Reminder: b")]
    assert failed == [broken.reminder_id, recurring.reminder_id]
    assert repository.get(broken.reminder_id).active is False
    assert repository.get(ok.reminder_id).active is False
    assert repository.get(recurring.reminder_id).last_triggered_at == NOW + timedelta(hours=2)
    assert scheduler.get_status()["delivery_failed_count"] == 2

    await scheduler.tick(NOW + timedelta(hours=2, minutes=1))
    assert gateway.attempts == 3


class SlowGateway(DeliveryGateway):
    async def send(self, owner: str, text: str) -> None:
        await asyncio.sleep(5)


@pytest.mark.asyncio
async def test_delivery_timeout_counts_as_failure(repository, clock, bus):
    scheduler = ReminderScheduler(repository, SlowGateway(), clock, delivery_timeout_seconds=0.05, bus=bus)
    reminder = repository.create("1", OneOff(trigger_at=NOW + timedelta(minutes=1)), "a")

    await scheduler.tick(NOW + timedelta(minutes=1))

    assert scheduler.get_status()["delivery_failed_count"] == 1
    assert repository.get(reminder.reminder_id).active is False


class MutatingGateway(DeliveryGateway):
    """投递过程中模拟用户命令修改仓库"""

    def __init__(self, repository: ReminderRepository, action: str) -> None:
        self.repository = repository
        self.action = action

    async def send(self, owner: str, text: str) -> None:
        reminder = self.repository.list_by_owner(owner)[0]
        if self.action == "delete":
            self.repository.delete(reminder)
        else:
            self.repository.update(replace(reminder, task_text="edited", updated_at=reminder.updated_at + timedelta(seconds=1)))


@pytest.mark.asyncio
async def test_reminder_deleted_during_delivery_is_not_resurrected(repository, clock, bus):
    scheduler = ReminderScheduler(repository, MutatingGateway(repository, "delete"), clock, bus=bus)
    reminder = repository.create("1", OneOff(trigger_at=NOW + timedelta(minutes=1)), "a")

    await scheduler.tick(NOW + timedelta(minutes=1))

    assert repository.get(reminder.reminder_id) is None
    assert repository.list_all() == []


@pytest.mark.asyncio
async def test_reminder_edited_during_delivery_keeps_edit(repository, clock, bus):
    scheduler = ReminderScheduler(repository, MutatingGateway(repository, "edit"), clock, bus=bus)
    reminder = repository.create("1", EVERY_2_HOURS, "a")

    await scheduler.tick(NOW + timedelta(hours=2))

    stored = repository.get(reminder.reminder_id)
    assert stored.task_text == "edited"
    assert stored.last_triggered_at is None


@pytest.mark.asyncio
async def test_triggered_event_is_emitted(repository, scheduler, bus):
    triggered = []
    bus.on(E.REMINDER_TRIGGERED)(lambda reminder: triggered.append(reminder.task_text))
    repository.create("1", OneOff(trigger_at=NOW + timedelta(minutes=1)), "minum air")

    await scheduler.tick(NOW + timedelta(minutes=1))

    assert triggered == ["minum air"]


@pytest.mark.asyncio
async def test_run_loop_survives_tick_errors_and_stops(monkeypatch, repository, gateway, clock, bus):
    scheduler = ReminderScheduler(repository, gateway, clock, tick_seconds=0.01, bus=bus)
    calls = {"count": 0}
    original = repository.list_active

    def flaky_list_active():
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("boom")
        return original()

    monkeypatch.setattr(repository, "list_active", flaky_list_active)
    shutdown_event = asyncio.Event()
    loop_task = asyncio.create_task(scheduler.run_loop(shutdown_event))

    await asyncio.sleep(0.1)
    assert scheduler.get_status()["running"] is True
    shutdown_event.set()
    await asyncio.wait_for(loop_task, timeout=1)

    status = scheduler.get_status()
    assert status["running"] is False
    assert status["tick_count"] >= 2
    assert calls["count"] >= 2


def test_render_delivery_text(repository):
    reminder = repository.create("1", EVERY_2_HOURS, "break")
    assert render_delivery_text(reminder) == "⏰ Reminder: break"
