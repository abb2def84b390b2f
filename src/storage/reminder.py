"""提醒仓库

所有提醒保存在内存列表中, 每次变更后把整个列表作为 JSON 快照写入磁盘
(先写临时文件, 再原子替换)。列表顺序即创建顺序, 用户看到的序号由它实时推导, 从不落盘。
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from ulid import ULID

from datamodel import Reminder, Schedule
from logger import logger
from reminders.errors import PersistenceError
from utils import Clock

__all__ = ["ReminderRepository"]


class ReminderRepository:
    def __init__(self, path: str | Path, clock: Clock):
        self.path = Path(path)
        self._clock = clock
        self._reminders: List[Reminder] = []
        self.last_persist_error: Optional[str] = None

    # ---------------- 加载 / 持久化 ----------------
    def load(self) -> int:
        """读取快照, 文件不存在时创建空快照。文件损坏时抛出 PersistenceError"""
        if not self.path.exists():
            logger.info(f"提醒存储文件不存在, 创建空存储: {self.path}")
            self._reminders = []
            self._persist(raise_on_error=True)
            return 0

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"无法读取提醒存储文件 {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise PersistenceError(f"提醒存储文件格式错误, 顶层应为数组: {self.path}")

        reminders: List[Reminder] = []
        for index, record in enumerate(raw):
            try:
                reminders.append(Reminder.from_record(record))
            except (KeyError, TypeError, ValueError) as e:
                raise PersistenceError(f"提醒存储文件第 {index} 条记录损坏: {e}") from e

        self._reminders = reminders
        logger.info(f"已加载 {len(reminders)} 条提醒 ({self.path})")
        return len(reminders)

    def _persist(self, raise_on_error: bool = False) -> bool:
        records = [r.to_record() for r in self._reminders]
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            error = PersistenceError(f"写入提醒存储文件失败 {self.path}: {e}")
            if raise_on_error:
                raise error from e
            # 内存状态保留本次变更, 下一次成功写入会补上
            self.last_persist_error = str(error)
            logger.error(str(error), exc_info=e)
            return False

        self.last_persist_error = None
        logger.trace(f"提醒快照已写入: {len(records)} 条")
        return True

    # ---------------- 查询 ----------------
    def get(self, reminder_id: str) -> Optional[Reminder]:
        for reminder in self._reminders:
            if reminder.reminder_id == reminder_id:
                return reminder
        return None

    def list_all(self) -> List[Reminder]:
        return list(self._reminders)

    def list_active(self) -> List[Reminder]:
        return [r for r in self._reminders if r.active]

    def list_by_owner(self, owner: str) -> List[Reminder]:
        """按创建顺序返回该用户的全部提醒, 下标 + 1 即用户看到的序号"""
        return [r for r in self._reminders if r.owner == owner]

    def count_by_owner(self, owner: str) -> int:
        return sum(1 for r in self._reminders if r.owner == owner)

    def resolve_position(self, owner: str, position: int) -> Optional[Reminder]:
        """把 1 起始的序号解析为提醒, 越界返回 None"""
        owned = self.list_by_owner(owner)
        if 1 <= position <= len(owned):
            return owned[position - 1]
        return None

    # ---------------- 变更 ----------------
    def create(self, owner: str, schedule: Schedule, task_text: str, now: Optional[datetime] = None) -> Reminder:
        now = now or self._clock()
        reminder = Reminder(
            reminder_id=str(ULID()),
            owner=owner,
            task_text=task_text,
            schedule=schedule,
            created_at=now,
            updated_at=now,
        )
        self._reminders.append(reminder)
        logger.trace(f"创建提醒: owner={owner}, reminder_id={reminder.reminder_id}, schedule={schedule}")
        self._persist()
        return reminder

    def _replace_in_place(self, reminder: Reminder) -> bool:
        for index, existing in enumerate(self._reminders):
            if existing.reminder_id == reminder.reminder_id:
                self._reminders[index] = reminder
                return True
        return False

    def update(self, reminder: Reminder) -> bool:
        """按 id 原位替换, 保持存储顺序不变。提醒已不存在时返回 False"""
        if not self._replace_in_place(reminder):
            logger.warning(f"更新的提醒不存在: reminder_id={reminder.reminder_id}")
            return False
        logger.trace(f"更新提醒: reminder_id={reminder.reminder_id}, active={reminder.active}")
        self._persist()
        return True

    def update_many(self, reminders: Iterable[Reminder]) -> int:
        """批量原位替换, 只写一次快照"""
        updated = 0
        for reminder in reminders:
            if self._replace_in_place(reminder):
                updated += 1
        if updated:
            logger.trace(f"批量更新提醒: {updated} 条")
            self._persist()
        return updated

    def delete(self, reminder: Reminder) -> bool:
        before = len(self._reminders)
        self._reminders = [r for r in self._reminders if r.reminder_id != reminder.reminder_id]
        if len(self._reminders) == before:
            return False
        logger.trace(f"删除提醒: reminder_id={reminder.reminder_id}")
        self._persist()
        return True

    def delete_all_by_owner(self, owner: str) -> int:
        before = len(self._reminders)
        self._reminders = [r for r in self._reminders if r.owner != owner]
        removed = before - len(self._reminders)
        if removed:
            logger.trace(f"删除用户全部提醒: owner={owner}, count={removed}")
            self._persist()
        return removed
