import os
from dotenv import load_dotenv
from logger import logger
from utils import validate_timezone
load_dotenv()

__all__ = [
    "TIMEZONE", "REMINDER_STORE_PATH", "DB_PATH",
    "SCHEDULER_TICK_SECONDS", "DELIVERY_TIMEOUT_SECONDS",
    "ENABLE_TELEGRAM_BOT_POLLING", "TELEGRAM_BOT_TOKEN",
    "ALLOWED_TELEGRAM_USER_IDS", "ADMIN_TELEGRAM_USER_ID",
    "ENABLE_ADMIN_HTTP", "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
    "LOG_FILE", "LOG_LEVEL", "CONSOLE_LOG_LEVEL",
    "validate_settings",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} 非法, 已回退到 {default}")
        return default


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} 非法, 已回退到 {default}")
        return default


def _parse_id_list(name: str) -> list[int]:
    ids: list[int] = []
    for part in os.getenv(name, "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning(f"{name} 中存在非法 ID: {part!r}, 已忽略")
    return ids


# 时间: 所有提醒都按这一个时区的本地时间解析和触发
TIMEZONE = os.getenv("TIMEZONE", "Asia/Jakarta")

# 存储
REMINDER_STORE_PATH = os.getenv("REMINDER_STORE_PATH", "data/reminders.json")
DB_PATH = os.getenv("DB_PATH", "data/remind_bot.db")

# 调度器
SCHEDULER_TICK_SECONDS = _parse_float("SCHEDULER_TICK_SECONDS", 60.0)
if SCHEDULER_TICK_SECONDS <= 0:
    logger.warning("SCHEDULER_TICK_SECONDS 必须大于 0, 已回退到 60 秒")
    SCHEDULER_TICK_SECONDS = 60.0

DELIVERY_TIMEOUT_SECONDS = _parse_float("DELIVERY_TIMEOUT_SECONDS", 30.0)  # <= 0 表示不限时

# Telegram Bot
ENABLE_TELEGRAM_BOT_POLLING = _parse_bool("ENABLE_TELEGRAM_BOT_POLLING", True)
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
ALLOWED_TELEGRAM_USER_IDS = _parse_id_list("ALLOWED_TELEGRAM_USER_IDS")  # 为空表示不限制
ADMIN_TELEGRAM_USER_ID = _parse_int("ADMIN_TELEGRAM_USER_ID", 0)

# Admin API
ENABLE_ADMIN_HTTP = _parse_bool("ENABLE_ADMIN_HTTP", True)
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = _parse_int("ADMIN_HTTP_PORT", 18080)
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")

# 日志
LOG_FILE = os.getenv("LOG_FILE", "logs/remind_bot.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "TRACE")
CONSOLE_LOG_LEVEL = os.getenv("CONSOLE_LOG_LEVEL", "INFO")


def validate_settings() -> bool:
    """检查致命配置错误, 返回 False 时调用方应退出"""
    errors = []

    if not validate_timezone(TIMEZONE):
        errors.append(f"TIMEZONE 非法: {TIMEZONE}")

    if ENABLE_TELEGRAM_BOT_POLLING and TELEGRAM_BOT_TOKEN == "":
        errors.append("已启用 Telegram Bot Polling, 但 TELEGRAM_BOT_TOKEN 未设置")

    if not ENABLE_TELEGRAM_BOT_POLLING:
        logger.warning("Telegram Bot Polling 已禁用, 提醒将无法送达")

    if ENABLE_ADMIN_HTTP and not ADMIN_AUTH_TOKEN:
        logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 将不可访问")

    for error in errors:
        logger.critical(error)
    return not errors
