"""提醒的时间规则运算

所有时间都是固定时区下的本地时间(无 tzinfo), 精确到秒。
循环提醒的下一次触发时间总是由 last_triggered_at (没有则 created_at) 加规则推导而来,
从不单独保存。
"""

from datetime import datetime, timedelta

from datamodel import OneOff, RecurrenceKind, Recurring, Reminder, Schedule

__all__ = ["next_trigger_at", "latest_occurrence", "describe_schedule", "WEEKDAY_NAMES"]

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_UNIT_LABELS = (
    (86_400_000, "day", "days"),
    (3_600_000, "hour", "hours"),
    (60_000, "minute", "minutes"),
    (1_000, "second", "seconds"),
)


def _anchor_on(day: datetime, schedule: Recurring) -> datetime:
    return day.replace(hour=schedule.anchor_hour, minute=schedule.anchor_minute, second=0, microsecond=0)


def _next_anchor_after(base: datetime, schedule: Recurring) -> datetime:
    """严格晚于 base 的第一个锚点"""
    candidate = _anchor_on(base, schedule)
    if schedule.kind is RecurrenceKind.WEEKLY:
        candidate += timedelta(days=(schedule.weekday - base.weekday()) % 7)
        if candidate <= base:
            candidate += timedelta(weeks=1)
    elif candidate <= base:
        candidate += timedelta(days=1)
    return candidate


def _latest_anchor_at_or_before(now: datetime, schedule: Recurring) -> datetime:
    candidate = _anchor_on(now, schedule)
    if schedule.kind is RecurrenceKind.WEEKLY:
        candidate -= timedelta(days=(now.weekday() - schedule.weekday) % 7)
        if candidate > now:
            candidate -= timedelta(weeks=1)
    elif candidate > now:
        candidate -= timedelta(days=1)
    return candidate


def next_trigger_at(reminder: Reminder) -> datetime:
    schedule = reminder.schedule
    if isinstance(schedule, OneOff):
        return schedule.trigger_at

    base = reminder.last_triggered_at or reminder.created_at
    if schedule.kind is RecurrenceKind.INTERVAL:
        return base + timedelta(milliseconds=schedule.interval_ms)
    return _next_anchor_after(base, schedule)


def latest_occurrence(reminder: Reminder, now: datetime) -> datetime:
    """不晚于 now 的最近一次规则触发点

    准时 tick 时它就等于 next_trigger_at, 即每次触发恰好前进一个周期;
    进程停机错过多次触发时直接跳到最近一次, 不补发。
    调用前应保证 now >= next_trigger_at(reminder)。
    """
    schedule = reminder.schedule
    if isinstance(schedule, OneOff):
        return schedule.trigger_at

    if schedule.kind is RecurrenceKind.INTERVAL:
        base = reminder.last_triggered_at or reminder.created_at
        period = timedelta(milliseconds=schedule.interval_ms)
        periods = max(1, (now - base) // period)
        return base + period * periods
    return _latest_anchor_at_or_before(now, schedule)


def _describe_interval(interval_ms: int) -> str:
    for unit_ms, singular, plural in _UNIT_LABELS:
        if interval_ms % unit_ms == 0:
            count = interval_ms // unit_ms
            return f"every {singular}" if count == 1 else f"every {count} {plural}"
    return f"every {interval_ms} ms"


def describe_schedule(schedule: Schedule, now: datetime) -> str:
    """列表中展示的时间标签"""
    if isinstance(schedule, OneOff):
        trigger_at = schedule.trigger_at
        if trigger_at.date() == now.date():
            return trigger_at.strftime("%H:%M")
        return trigger_at.strftime("%d/%m %H:%M")

    if schedule.kind is RecurrenceKind.INTERVAL:
        return _describe_interval(schedule.interval_ms)

    anchor = f"{schedule.anchor_hour:02d}:{schedule.anchor_minute:02d}"
    if schedule.kind is RecurrenceKind.DAILY:
        return f"every day at {anchor}"
    return f"every {WEEKDAY_NAMES[schedule.weekday]} at {anchor}"
