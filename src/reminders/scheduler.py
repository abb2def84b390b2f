"""提醒调度器

固定间隔 tick 一次: 取当前所有有效提醒的快照, 到期的逐个投递, 然后推进状态并一次性写回。
投递失败只记录日志, 不重试, 提醒照常推进。
"""

import asyncio
import time
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Tuple

from channels.base import DeliveryGateway
from datamodel import OneOff, Reminder
from events import Bus, E, bus as default_bus
from logger import logger
from reminders.schedule import latest_occurrence, next_trigger_at
from storage.reminder import ReminderRepository
from utils import Clock, format_storage_time

__all__ = ["ReminderScheduler", "render_delivery_text"]


def render_delivery_text(reminder: Reminder) -> str:
    return f"⏰ Reminder: {reminder.task_text}"


class ReminderScheduler:
    def __init__(
        self,
        repository: ReminderRepository,
        gateway: DeliveryGateway,
        clock: Clock,
        tick_seconds: float = 60.0,
        delivery_timeout_seconds: float = 30.0,
        bus: Bus = default_bus,
    ):
        self.repository = repository
        self.gateway = gateway
        self.clock = clock
        self.tick_seconds = tick_seconds
        self.delivery_timeout_seconds = delivery_timeout_seconds
        self.bus = bus

        self._shutdown_event: Optional[asyncio.Event] = None
        self._last_tick_at: Optional[datetime] = None
        self._last_tick_at_epoch: Optional[float] = None
        self._tick_count = 0
        self._delivered_count = 0
        self._delivery_failed_count = 0

    def get_status(self) -> dict[str, object]:
        running = self._shutdown_event is not None and not self._shutdown_event.is_set()
        return {
            "running": running,
            "tick_seconds": self.tick_seconds,
            "tick_count": self._tick_count,
            "last_tick_at": format_storage_time(self._last_tick_at) if self._last_tick_at else None,
            "last_tick_at_epoch": self._last_tick_at_epoch,
            "delivered_count": self._delivered_count,
            "delivery_failed_count": self._delivery_failed_count,
        }

    async def run_loop(self, shutdown_event: asyncio.Event) -> None:
        self._shutdown_event = shutdown_event
        logger.info(f"Reminder 调度器已启动, tick 间隔 {self.tick_seconds} 秒")

        while not shutdown_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # 单次 tick 出错不影响后续 tick
                logger.error("Reminder tick 执行失败", exc_info=e)

            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Reminder 调度器已关闭")

    async def tick(self, now: Optional[datetime] = None) -> List[Reminder]:
        """检查并投递到期提醒, 返回本次触发的提醒"""
        now = now or self.clock()
        self._tick_count += 1
        self._last_tick_at = now
        self._last_tick_at_epoch = time.time()

        # 投递是 await 的, 期间命令可能修改仓库, 所以只遍历副本
        snapshot = [replace(r) for r in self.repository.list_active()]
        fired: List[Reminder] = []
        advanced: List[Tuple[Reminder, Reminder]] = []

        for reminder in snapshot:
            due_at = next_trigger_at(reminder)
            if now < due_at:
                continue

            logger.info(f"提醒到期: reminder_id={reminder.reminder_id}, owner={reminder.owner}, due_at={format_storage_time(due_at)}")
            await self._deliver(reminder)
            fired.append(reminder)
            advanced.append((reminder, self._advance(reminder, now)))

        self._write_back(advanced)
        if fired:
            logger.debug(f"本次 tick 触发 {len(fired)} 条提醒")
        return fired

    def _advance(self, reminder: Reminder, now: datetime) -> Reminder:
        if isinstance(reminder.schedule, OneOff):
            return replace(reminder, active=False, last_triggered_at=reminder.schedule.trigger_at, updated_at=now)
        return replace(reminder, last_triggered_at=latest_occurrence(reminder, now), updated_at=now)

    def _write_back(self, advanced: List[Tuple[Reminder, Reminder]]) -> None:
        to_write: List[Reminder] = []
        for before, after in advanced:
            current = self.repository.get(before.reminder_id)
            if current is None or current != before:
                logger.info(f"提醒在投递期间被修改或删除, 跳过状态推进: reminder_id={before.reminder_id}")
                continue
            to_write.append(after)
        if to_write:
            self.repository.update_many(to_write)

    async def _deliver(self, reminder: Reminder) -> bool:
        text = render_delivery_text(reminder)
        try:
            if self.delivery_timeout_seconds > 0:
                await asyncio.wait_for(self.gateway.send(reminder.owner, text), timeout=self.delivery_timeout_seconds)
            else:
                await self.gateway.send(reminder.owner, text)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError as e:
            self._delivery_failed_count += 1
            logger.error(f"提醒投递超时 ({self.delivery_timeout_seconds}s): reminder_id={reminder.reminder_id}, owner={reminder.owner}")
            self.bus.emit(E.REMINDER_DELIVERY_FAILED, reminder=reminder, error=e)
            return False
        except Exception as e:
            self._delivery_failed_count += 1
            logger.error(f"提醒投递失败: reminder_id={reminder.reminder_id}, owner={reminder.owner}", exc_info=e)
            self.bus.emit(E.REMINDER_DELIVERY_FAILED, reminder=reminder, error=e)
            return False

        self._delivered_count += 1
        self.bus.emit(E.REMINDER_TRIGGERED, reminder=reminder)
        return True
