from datetime import datetime, timezone
from typing import Callable

import pytz

__all__ = ["now_utc", "now_local", "local_clock", "format_storage_time", "parse_storage_time", "validate_timezone", "Clock"]

# 本系统只使用单一固定时区, 所有提醒时间均以该时区的本地时间(无 tzinfo)参与运算
STORAGE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)

def now_local(tz_name: str) -> datetime:
    """获取指定时区的当前本地时间, 去掉 tzinfo 并截断到秒"""
    local_dt = now_utc().astimezone(pytz.timezone(tz_name))
    return local_dt.replace(tzinfo=None, microsecond=0)

def local_clock(tz_name: str) -> Clock:
    """返回一个绑定时区的时钟函数, 便于注入到仓库与调度器"""
    pytz.timezone(tz_name)  # 提前暴露非法时区
    return lambda: now_local(tz_name)

def format_storage_time(dt: datetime) -> str:
    return dt.strftime(STORAGE_TIME_FORMAT)

def parse_storage_time(raw: str) -> datetime:
    # 兼容只精确到分钟的旧格式 "YYYY-MM-DD HH:MM"
    try:
        return datetime.strptime(raw, STORAGE_TIME_FORMAT)
    except ValueError:
        return datetime.strptime(raw, "%Y-%m-%d %H:%M")

def validate_timezone(tz_name: str) -> bool:
    try:
        pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return False
    return True
