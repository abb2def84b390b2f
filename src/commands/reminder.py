"""提醒命令的业务处理

每个方法都返回要回复给用户的文本。解析失败与序号越界在这里渲染成文字, 不会向上抛出。
"""

import re
from dataclasses import replace
from typing import List

from datamodel import OneOff, Reminder
from events import Bus, E, bus as default_bus
from logger import logger
from reminders.errors import ParseError, PositionOutOfRange
from reminders.parser import TimeExpressionParser
from reminders.schedule import describe_schedule
from storage.reminder import ReminderRepository
from commands.help import TIME_FORMATS_TEXT
from utils import Clock

__all__ = ["ReminderCommands", "split_segments", "NEW_REMINDER_USAGE", "EDIT_REMINDER_USAGE", "DELETE_REMINDER_USAGE"]

NEW_REMINDER_USAGE = (
    '❌ Format: /newreminder "Task jam HH:MM"\n\n'
    "Examples:\n"
    '/newreminder "Belajar AI jam 20:00"\n'
    '/newreminder "Meeting jam 14:30"\n'
    '/newreminder "setiap 2 jam break"'
)
EDIT_REMINDER_USAGE = '❌ Format: /editreminder <number> "New task jam HH:MM"\n\nExample: /editreminder 1 "Study jam 19:00"'
DELETE_REMINDER_USAGE = "❌ Format: /delreminder <number>\n\nExample: /delreminder 1\nOr: /delreminder all"

_INVALID_TIME = f"❌ Invalid time format.\n\n{TIME_FORMATS_TEXT}"
_NO_REMINDERS = '📭 No reminders set\n\nUse /newreminder "Task jam HH:MM" to create one'

# "... and remind me to ..." / "... dan ingetin ..." 视为两条独立的提醒
_SEGMENT_SPLIT_RE = re.compile(r"\s+(?:and|dan)\s+(?=(?:remind\s+me|ingetin|ingatkan)\b)", re.IGNORECASE)


def split_segments(text: str) -> List[str]:
    return [segment.strip() for segment in _SEGMENT_SPLIT_RE.split(text) if segment.strip()]


def _invalid_position(count: int) -> str:
    return f"❌ Invalid reminder number. You have {count} reminder(s)"


class ReminderCommands:
    def __init__(self, parser: TimeExpressionParser, repository: ReminderRepository, clock: Clock, bus: Bus = default_bus):
        self.parser = parser
        self.repository = repository
        self.clock = clock
        self.bus = bus

    def _resolve(self, owner: str, position: int) -> Reminder:
        reminder = self.repository.resolve_position(owner, position)
        if reminder is None:
            raise PositionOutOfRange(position, self.repository.count_by_owner(owner))
        return reminder

    def create(self, owner: str, text: str) -> str:
        now = self.clock()
        segments = split_segments(text)
        if not segments:
            return NEW_REMINDER_USAGE

        replies: List[str] = []
        failed = 0
        for segment in segments:
            try:
                parsed = self.parser.require(now, segment)
            except ParseError:
                failed += 1
                replies.append(f'❌ No time found in: "{segment}"')
                continue

            reminder = self.repository.create(owner, parsed.schedule, parsed.task_text, now=now)
            logger.info(f"用户 {owner} 创建提醒: kind={parsed.kind.value}, reminder_id={reminder.reminder_id}")
            self.bus.emit(E.REMINDER_CREATED, reminder=reminder)
            replies.append(f"✅ Reminder set for {describe_schedule(reminder.schedule, now)}:\n{reminder.task_text}")

        if failed == len(segments) == 1:
            return f"{_INVALID_TIME}\n\n{NEW_REMINDER_USAGE}"
        if failed:
            replies.append(f"{_INVALID_TIME}\n\n{NEW_REMINDER_USAGE}")
        return "\n\n".join(replies)

    def list_reminders(self, owner: str) -> str:
        now = self.clock()
        reminders = self.repository.list_by_owner(owner)
        if not reminders:
            return _NO_REMINDERS

        lines = []
        for position, reminder in enumerate(reminders, start=1):
            suffix = "" if reminder.active else " (done)"
            lines.append(f"{position}. {describe_schedule(reminder.schedule, now)} - {reminder.task_text}{suffix}")
        return "📋 Your reminders:\n\n" + "\n".join(lines)

    def edit(self, owner: str, position: int, text: str) -> str:
        now = self.clock()
        try:
            existing = self._resolve(owner, position)
            parsed = self.parser.require(now, text)
        except PositionOutOfRange as e:
            return _invalid_position(e.count)
        except ParseError:
            return f"{_INVALID_TIME}\n\n{EDIT_REMINDER_USAGE}"

        # 原位更新: id / 存储顺序 / created_at 不变, 因此序号也不变
        updated = replace(
            existing,
            task_text=parsed.task_text,
            schedule=parsed.schedule,
            active=True,
            last_triggered_at=None if isinstance(parsed.schedule, OneOff) else now,
            updated_at=now,
        )
        self.repository.update(updated)
        logger.info(f"用户 {owner} 修改提醒 #{position}: reminder_id={updated.reminder_id}")
        self.bus.emit(E.REMINDER_UPDATED, reminder=updated)
        return f"✅ Reminder updated to {describe_schedule(updated.schedule, now)}:\n{updated.task_text}"

    def delete(self, owner: str, position: int) -> str:
        try:
            reminder = self._resolve(owner, position)
        except PositionOutOfRange as e:
            return _invalid_position(e.count)

        self.repository.delete(reminder)
        logger.info(f"用户 {owner} 删除提醒 #{position}: reminder_id={reminder.reminder_id}")
        self.bus.emit(E.REMINDER_DELETED, owner=owner, count=1)
        return f"✅ Reminder deleted:\n{reminder.task_text}"

    def delete_all(self, owner: str) -> str:
        removed = self.repository.delete_all_by_owner(owner)
        if removed == 0:
            return "📭 No reminders to delete"
        logger.info(f"用户 {owner} 删除全部提醒: count={removed}")
        self.bus.emit(E.REMINDER_DELETED, owner=owner, count=removed)
        return f"✅ Deleted all {removed} reminder(s)"
