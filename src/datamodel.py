from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from enum import Enum
from datetime import datetime

from utils import format_storage_time, parse_storage_time

__all__ = [
    "Reminder", "OneOff", "Recurring", "RecurrenceKind", "Schedule",
    "schedule_from_record", "schedule_to_record",
    "ChannelType", "IncomingMessage", "OutgoingMessage",
    "UserInfo",
]

# ----------------- Reminder 数据模型 ----------------
class RecurrenceKind(str, Enum):
    INTERVAL = "interval"
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class OneOff:
    trigger_at: datetime  # 用户本地时间(无时区)


@dataclass(frozen=True)
class Recurring:
    kind: RecurrenceKind
    interval_ms: Optional[int] = None  # 仅 INTERVAL
    anchor_hour: Optional[int] = None  # DAILY / WEEKLY
    anchor_minute: Optional[int] = None
    weekday: Optional[int] = None  # 仅 WEEKLY, 0=周一


Schedule = Union[OneOff, Recurring]


@dataclass
class Reminder:
    reminder_id: str  # ULID, 内部稳定标识, 不对用户展示
    owner: str
    task_text: str
    schedule: Schedule
    created_at: datetime
    updated_at: datetime
    active: bool = True
    last_triggered_at: Optional[datetime] = None

    @property
    def schedule_type(self) -> str:
        if isinstance(self.schedule, OneOff):
            return "one_off"
        return self.schedule.kind.value

    def to_record(self) -> dict[str, Any]:
        """序列化为持久化快照中的一条记录"""
        schedule_type, schedule_fields = schedule_to_record(self.schedule)
        return {
            "id": self.reminder_id,
            "owner": self.owner,
            "taskText": self.task_text,
            "scheduleType": schedule_type,
            "scheduleFields": schedule_fields,
            "active": self.active,
            "createdAt": format_storage_time(self.created_at),
            "lastTriggeredAt": format_storage_time(self.last_triggered_at) if self.last_triggered_at else None,
            "updatedAt": format_storage_time(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Reminder":
        last_triggered_raw = record.get("lastTriggeredAt")
        return cls(
            reminder_id=str(record["id"]),
            owner=str(record["owner"]),
            task_text=record["taskText"],
            schedule=schedule_from_record(record["scheduleType"], record.get("scheduleFields") or {}),
            active=bool(record.get("active", True)),
            created_at=parse_storage_time(record["createdAt"]),
            last_triggered_at=parse_storage_time(last_triggered_raw) if last_triggered_raw else None,
            updated_at=parse_storage_time(record.get("updatedAt") or record["createdAt"]),
        )


def schedule_to_record(schedule: Schedule) -> tuple[str, dict[str, Any]]:
    if isinstance(schedule, OneOff):
        return "one_off", {"triggerAt": format_storage_time(schedule.trigger_at)}
    if schedule.kind is RecurrenceKind.INTERVAL:
        return "interval", {"intervalMs": schedule.interval_ms}
    fields: dict[str, Any] = {
        "anchorHour": schedule.anchor_hour,
        "anchorMinute": schedule.anchor_minute,
    }
    if schedule.kind is RecurrenceKind.WEEKLY:
        fields["weekday"] = schedule.weekday
    return schedule.kind.value, fields


def schedule_from_record(schedule_type: str, fields: dict[str, Any]) -> Schedule:
    if schedule_type == "one_off":
        return OneOff(trigger_at=parse_storage_time(fields["triggerAt"]))
    kind = RecurrenceKind(schedule_type)  # 未知类型直接抛 ValueError
    if kind is RecurrenceKind.INTERVAL:
        return Recurring(kind=kind, interval_ms=int(fields["intervalMs"]))
    return Recurring(
        kind=kind,
        anchor_hour=int(fields["anchorHour"]),
        anchor_minute=int(fields["anchorMinute"]),
        weekday=int(fields["weekday"]) if kind is RecurrenceKind.WEEKLY else None,
    )


# ----------------- Channel 数据模型 ----------------
class ChannelType(str, Enum):
    TELEGRAM_BOT_POLLING = "telegram_bot_polling"
    #TELEGRAM_BOT_WEBHOOK = "telegram_bot_webhook"

@dataclass
class IncomingMessage:
    channel_type: ChannelType
    owner: str  # 注意，该 owner 是内部 user_id 的字符串形式
    content: str
    channel_context: Any = None  # 平台上下文对象
    metadata: Optional[Dict[str, Any]] = None  # 平台特定元数据
    timestamp: Optional[datetime] = None

@dataclass
class OutgoingMessage:
    channel_type: ChannelType
    owner: str
    content: str
    channel_context: Any = None  # 平台上下文对象
    metadata: Optional[Dict[str, Any]] = None  # 平台特定元数据


# ----------------- User 数据模型 ----------------
@dataclass
class UserInfo:
    user_id: int
    user_name: Optional[str] = None
    telegram_user_id: Optional[int] = None
    created_at_utc: Optional[str] = None
