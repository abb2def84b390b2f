import json
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from conftest import NOW
from datamodel import OneOff, RecurrenceKind, Recurring, Reminder
from reminders.errors import PersistenceError
from storage.reminder import ReminderRepository

AT_1430 = OneOff(trigger_at=datetime(2026, 10, 19, 14, 30))
EVERY_2_HOURS = Recurring(kind=RecurrenceKind.INTERVAL, interval_ms=7_200_000)


def _count_writes(monkeypatch, repo: ReminderRepository) -> list[int]:
    writes: list[int] = []
    original = repo._persist

    def counting(*args, **kwargs):
        writes.append(1)
        return original(*args, **kwargs)

    monkeypatch.setattr(repo, "_persist", counting)
    return writes


def test_load_creates_empty_store(store_path, clock):
    repo = ReminderRepository(store_path, clock)

    assert repo.load() == 0
    assert json.loads(store_path.read_text(encoding="utf-8")) == []


def test_create_persists_record_schema(repository, store_path):
    reminder = repository.create("1", AT_1430, "minum air")

    records = json.loads(store_path.read_text(encoding="utf-8"))
    assert records == [
        {
            "id": reminder.reminder_id,
            "owner": "1",
            "taskText": "minum air",
            "scheduleType": "one_off",
            "scheduleFields": {"triggerAt": "2026-10-19 14:30:00"},
            "active": True,
            "createdAt": "2026-10-19 09:00:00",
            "lastTriggeredAt": None,
            "updatedAt": "2026-10-19 09:00:00",
        }
    ]


def test_reload_restores_reminders(repository, store_path, clock):
    first = repository.create("1", AT_1430, "minum air")
    second = repository.create("1", EVERY_2_HOURS, "break")
    weekly = repository.create("2", Recurring(kind=RecurrenceKind.WEEKLY, weekday=0, anchor_hour=9, anchor_minute=0), "standup")

    reloaded = ReminderRepository(store_path, clock)
    assert reloaded.load() == 3
    assert reloaded.list_all() == [first, second, weekly]


def test_ids_are_unique(repository):
    ids = {repository.create("1", AT_1430, f"task {i}").reminder_id for i in range(5)}
    assert len(ids) == 5


def test_positions_follow_creation_order_per_owner(repository):
    a = repository.create("1", AT_1430, "a")
    repository.create("2", AT_1430, "other")
    b = repository.create("1", EVERY_2_HOURS, "b")

    assert repository.list_by_owner("1") == [a, b]
    assert repository.count_by_owner("1") == 2
    assert repository.resolve_position("1", 1) == a
    assert repository.resolve_position("1", 2) == b
    assert repository.resolve_position("1", 0) is None
    assert repository.resolve_position("1", 3) is None
    assert repository.resolve_position("3", 1) is None


def test_delete_shifts_positions(repository):
    a = repository.create("1", AT_1430, "a")
    b = repository.create("1", AT_1430, "b")

    assert repository.delete(a) is True
    assert repository.resolve_position("1", 1) == b
    assert repository.delete(a) is False


def test_update_keeps_storage_order(repository, store_path, clock):
    a = repository.create("1", AT_1430, "a")
    b = repository.create("1", AT_1430, "b")

    edited = replace(a, task_text="a2", updated_at=NOW + timedelta(minutes=1))
    assert repository.update(edited) is True
    assert repository.list_by_owner("1") == [edited, b]

    reloaded = ReminderRepository(store_path, clock)
    reloaded.load()
    assert reloaded.resolve_position("1", 1).task_text == "a2"


def test_update_missing_reminder_returns_false(repository):
    ghost = Reminder(reminder_id="missing", owner="1", task_text="x", schedule=AT_1430, created_at=NOW, updated_at=NOW)
    assert repository.update(ghost) is False


def test_update_many_writes_once(monkeypatch, repository):
    a = repository.create("1", AT_1430, "a")
    b = repository.create("1", AT_1430, "b")
    writes = _count_writes(monkeypatch, repository)

    updated = repository.update_many([replace(a, active=False), replace(b, active=False)])

    assert updated == 2
    assert len(writes) == 1
    assert repository.list_active() == []


def test_delete_all_by_owner_leaves_others(monkeypatch, repository):
    for i in range(3):
        repository.create("1", AT_1430, f"task {i}")
    keep = repository.create("2", EVERY_2_HOURS, "keep")
    writes = _count_writes(monkeypatch, repository)

    assert repository.delete_all_by_owner("1") == 3
    assert len(writes) == 1
    assert repository.list_by_owner("1") == []
    assert repository.list_all() == [keep]
    assert repository.delete_all_by_owner("1") == 0


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        '{"id": "x"}',
        '[{"id": "x", "owner": "1"}]',
        '[{"id": "x", "owner": "1", "taskText": "t", "scheduleType": "hourly", "scheduleFields": {}, "createdAt": "2026-10-19 09:00:00"}]',
    ],
)
def test_corrupt_store_raises(store_path, clock, content):
    store_path.parent.mkdir(parents=True, exist_ok=True)
    store_path.write_text(content, encoding="utf-8")

    with pytest.raises(PersistenceError):
        ReminderRepository(store_path, clock).load()


def test_write_failure_keeps_memory_state(tmp_path, clock):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    repo = ReminderRepository(blocker / "reminders.json", clock)

    reminder = repo.create("1", AT_1430, "minum air")

    assert repo.list_by_owner("1") == [reminder]
    assert repo.last_persist_error is not None
