"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

通道层只负责收发消息, 业务层只订阅事件, 两者通过总线解耦。
注意: 提醒相关事件在命令处理与调度 tick 中同步发出, 其处理器应为普通函数;
协程处理器会被 pyee 调度为独立任务, 只适合 IO 类事件。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Any, Callable

from logger import logger

Handler = Callable[..., Any]

# 事件名集中定义
class E:
    IO_MESSAGE_RECEIVED = "io.message_received"
    IO_SEND_MESSAGE = "io.send_message"
    REMINDER_CREATED = "reminder.created"
    REMINDER_UPDATED = "reminder.updated"
    REMINDER_DELETED = "reminder.deleted"
    REMINDER_TRIGGERED = "reminder.triggered"
    REMINDER_DELIVERY_FAILED = "reminder.delivery_failed"


class Bus(AsyncIOEventEmitter):
    def on(self, event: str) -> Callable[[Handler], Handler]:
        """注册事件处理器装饰器"""
        def decorator(handler: Handler) -> Handler:
            logger.debug(f"注册事件处理器: {event} -> {getattr(handler, '__qualname__', handler)}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "Bus", "E"]
