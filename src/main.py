from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    console_level=CONSOLE_LOG_LEVEL,
)

import asyncio
import signal
import sys
import time

from admin.http_server import main_loop as admin_http_main
from admin.schemas import RuntimeControl
from channels.base import DeliveryGateway, LogOnlyGateway
from commands.reminder import ReminderCommands
from commands.router import CommandRouter
from core.orchestrator import Orchestrator
from events import bus
from metrics import runtime_metrics
from reminders.errors import PersistenceError
from reminders.parser import TimeExpressionParser
from reminders.scheduler import ReminderScheduler
from storage.reminder import ReminderRepository
import storage.db_config as db_config
from utils import local_clock

shutdown_event = asyncio.Event()

def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()

def _create_gateway() -> DeliveryGateway:
    if ENABLE_TELEGRAM_BOT_POLLING:
        from channels.telegram_polling import TelegramDeliveryGateway

        return TelegramDeliveryGateway()
    return LogOnlyGateway()


async def main() -> int:
    if not validate_settings():
        logger.critical("配置存在致命错误，程序退出")
        return 1

    # 注册信号处理器
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    clock = local_clock(TIMEZONE)
    repository = ReminderRepository(REMINDER_STORE_PATH, clock)
    try:
        repository.load()
    except PersistenceError as e:
        logger.critical(f"提醒存储无法加载: {e}")
        return 1

    await db_config.init_db(DB_PATH)

    runtime_metrics.bind(bus)
    commands = ReminderCommands(TimeExpressionParser(), repository, clock, bus)
    orchestrator = Orchestrator(CommandRouter(commands), bus)
    orchestrator.register()
    scheduler = ReminderScheduler(
        repository,
        _create_gateway(),
        clock,
        tick_seconds=SCHEDULER_TICK_SECONDS,
        delivery_timeout_seconds=DELIVERY_TIMEOUT_SECONDS,
        bus=bus,
    )

    try:
        tasks = [
            scheduler.run_loop(shutdown_event),
            orchestrator.main_loop(shutdown_event),
        ]

        if ENABLE_ADMIN_HTTP:
            control = RuntimeControl(shutdown_event=shutdown_event, started_at=time.time(), auth_token=ADMIN_AUTH_TOKEN)
            tasks.append(admin_http_main(control, repository, scheduler))
        else:
            logger.warning("Admin HTTP 服务已禁用")

        if ENABLE_TELEGRAM_BOT_POLLING:
            from channels.telegram_polling import main as telegram_main

            tasks.append(telegram_main(shutdown_event))

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭 Reminder Bot...")

        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("Reminder Bot 已关闭")
    return 0


def run() -> None:
    logger.info("启动 Reminder Bot...")
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
