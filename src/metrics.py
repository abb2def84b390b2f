"""
一个简单的运行时指标收集类，用于统计消息流量、提醒增删改与触发次数等信息，方便后续扩展和监控。
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from events import Bus, E


@dataclass
class RuntimeMetrics:
    msg_in_count: int = 0
    msg_out_count: int = 0
    reminder_created_count: int = 0
    reminder_updated_count: int = 0
    reminder_deleted_count: int = 0
    reminder_triggered_count: int = 0
    delivery_failed_count: int = 0
    last_triggered_at: float | None = None

    def record_msg_in(self) -> None:
        self.msg_in_count += 1

    def record_msg_out(self) -> None:
        self.msg_out_count += 1

    def record_reminder_created(self) -> None:
        self.reminder_created_count += 1

    def record_reminder_updated(self) -> None:
        self.reminder_updated_count += 1

    def record_reminder_deleted(self, count: int = 1) -> None:
        self.reminder_deleted_count += count

    def record_reminder_triggered(self) -> None:
        self.reminder_triggered_count += 1
        self.last_triggered_at = time.time()

    def record_delivery_failed(self) -> None:
        self.delivery_failed_count += 1

    def bind(self, bus: Bus) -> None:
        """订阅总线事件; 处理器都是同步函数, 在 emit 时立即执行"""

        @bus.on(E.IO_MESSAGE_RECEIVED)
        def _on_msg_in(message) -> None:
            self.record_msg_in()

        @bus.on(E.IO_SEND_MESSAGE)
        def _on_msg_out(message) -> None:
            self.record_msg_out()

        @bus.on(E.REMINDER_CREATED)
        def _on_created(reminder) -> None:
            self.record_reminder_created()

        @bus.on(E.REMINDER_UPDATED)
        def _on_updated(reminder) -> None:
            self.record_reminder_updated()

        @bus.on(E.REMINDER_DELETED)
        def _on_deleted(owner: str, count: int) -> None:
            self.record_reminder_deleted(count)

        @bus.on(E.REMINDER_TRIGGERED)
        def _on_triggered(reminder) -> None:
            self.record_reminder_triggered()

        @bus.on(E.REMINDER_DELIVERY_FAILED)
        def _on_delivery_failed(reminder, error) -> None:
            self.record_delivery_failed()

    def snapshot(self) -> dict:
        return {
            "msg_in_count": self.msg_in_count,
            "msg_out_count": self.msg_out_count,
            "reminder_created_count": self.reminder_created_count,
            "reminder_updated_count": self.reminder_updated_count,
            "reminder_deleted_count": self.reminder_deleted_count,
            "reminder_triggered_count": self.reminder_triggered_count,
            "delivery_failed_count": self.delivery_failed_count,
            "last_triggered_at_epoch": self.last_triggered_at,
            "last_triggered_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_triggered_at))
                if self.last_triggered_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
