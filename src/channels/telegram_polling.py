from logger import logger
from events import bus, E
from datamodel import ChannelType, IncomingMessage, OutgoingMessage
from channels.base import DeliveryGateway
from reminders.errors import DeliveryError
import datetime
import asyncio
import time

from config.settings import *
import storage.user
import telegram
from telegram.ext import ApplicationBuilder, CommandHandler, MessageHandler, ContextTypes, filters

from functools import wraps

__all__ = ["TelegramDeliveryGateway", "main", "get_status"]


def requires_auth(func):
    @wraps(func)
    async def decorated(update: telegram.Update, *args, **kwargs):
        if(update.effective_user.id not in ALLOWED_TELEGRAM_USER_IDS and ALLOWED_TELEGRAM_USER_IDS != []):
            logger.warning(f"用户 {update.effective_user.id} 未经允许访问 Bot")
            await update.message.reply_text("You are not allowed to use this bot. Please contact the administrator.")
        else:
            return await func(update, *args, **kwargs)
    return decorated


_bot_instance: telegram.Bot | None = None
_started_at_epoch: float | None = None
_last_error: str | None = None


def get_status() -> dict[str, object]:
    return {
        "running": _bot_instance is not None,
        "bot_username": _bot_instance.username if _bot_instance is not None else None,
        "started_at_epoch": _started_at_epoch,
        "last_error": _last_error,
    }


async def _resolve_chat_id(owner: str) -> int:
    """把内部 owner (user_id 字符串) 解析为 Telegram chat_id"""
    try:
        user_id = int(owner)
    except ValueError as e:
        raise DeliveryError(f"非法的 owner: {owner!r}") from e

    user = await storage.user.get_user_by_id(user_id)
    if user is None or user.telegram_user_id is None:
        raise DeliveryError(f"无法找到 owner={owner} 对应的 Telegram 用户")
    return user.telegram_user_id


class TelegramDeliveryGateway(DeliveryGateway):
    """调度器使用的 Telegram 投递出口, 只发送一次, 失败统一抛出 DeliveryError"""

    def __init__(self, bot: telegram.Bot | None = None) -> None:
        self._bot = bot

    async def send(self, owner: str, text: str) -> None:
        bot = self._bot or _bot_instance
        if bot is None:
            raise DeliveryError("Telegram Bot 尚未启动")
        chat_id = await _resolve_chat_id(owner)
        try:
            await bot.send_message(chat_id=chat_id, text=text)
        except telegram.error.TelegramError as e:
            raise DeliveryError(f"向 Telegram 用户 {chat_id} 投递提醒失败: {e}") from e
        logger.info(f"已向 owner={owner} 投递提醒")


@requires_auth
async def cmd_start(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info(f"收到 /start 命令来自 Telegram ID: {update.effective_user.id}")
    await storage.user.create_user_if_not_exists(update.effective_user.id, update.effective_user.username)
    await update.message.reply_text("⏰ Reminder bot online.\n\nSend /help to see what I can do.")

@requires_auth
async def process_message(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not update.message.text:
        return

    # 预处理
    user = await storage.user.get_user_by_telegram_id(update.effective_user.id)
    if user is None:
        logger.error(f"Telegram User ID: {update.effective_user.id} 在未注册时发送消息")
        await update.message.reply_text("You are not registered yet. Please send /start first.")
        return

    owner = str(user.user_id)
    logger.info(f"User ID: {owner} 消息内容: {update.message.text}")

    # 发送到事件总线
    incoming_msg = IncomingMessage(
        channel_type = ChannelType.TELEGRAM_BOT_POLLING,
        owner = owner,
        content = update.message.text,
        channel_context = context,
        timestamp = update.message.date,
        metadata = {"channel_chat_id": update.effective_chat.id},
    )
    bus.emit(E.IO_MESSAGE_RECEIVED, message=incoming_msg)


@bus.on(E.IO_SEND_MESSAGE)
async def send_outgoing_message(message: OutgoingMessage) -> None:
    if message.channel_type is not ChannelType.TELEGRAM_BOT_POLLING:
        return

    logger.info(f"发送消息给用户 {message.owner}: {message.content}")
    chat_id = (message.metadata or {}).get("channel_chat_id")
    if chat_id is None:
        try:
            chat_id = await _resolve_chat_id(message.owner)
        except DeliveryError as e:
            logger.error(str(e))
            return

    bot = _bot_instance or message.channel_context.bot
    try:
        await bot.send_message(chat_id=chat_id, text=message.content)
    except telegram.error.TelegramError as e:
        logger.error(f"向 Telegram 用户 {chat_id} 发送消息失败: {e}, 即将重试", exc_info=e)
        try:
            await asyncio.sleep(5)
            await bot.send_message(chat_id=chat_id, text=message.content)
        except telegram.error.TelegramError as e:
            logger.error(f"[重试] 向 Telegram 用户 {chat_id} 发送消息失败: {e}", exc_info=e)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """处理 telegram 库中发生的错误"""
    global _last_error
    _last_error = str(context.error)
    logger.error(f"Telegram 错误: {context.error}", exc_info=context.error)
    if ADMIN_TELEGRAM_USER_ID != 0:
        user_id = update.effective_user.id if isinstance(update, telegram.Update) and update.effective_user else None
        try:
            await context.bot.send_message(chat_id=ADMIN_TELEGRAM_USER_ID, text=f"Warning! Reminder bot 在与 {user_id} 的对话中发生错误: {context.error}")
        except telegram.error.TelegramError as e:
            logger.error(f"向管理员发送错误消息失败: {e}", exc_info=e)

def bot_error_callback(error: telegram.error.TelegramError) -> None:
    global _last_error
    _last_error = str(error)
    if isinstance(error, telegram.error.NetworkError):
        logger.warning(f"Telegram Bot 网络错误: {error}")
    else:
        logger.error(f"Telegram Bot 发生预期外的错误: {error}", exc_info=error)


async def main(shutdown_event: asyncio.Event) -> None:
    global _bot_instance, _started_at_epoch
    app = ApplicationBuilder().token(TELEGRAM_BOT_TOKEN).build()

    # /newreminder 等命令也作为普通文本交给命令路由处理
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(MessageHandler(filters.TEXT, process_message))
    app.add_error_handler(error_handler)

    try:
        await app.initialize()
        _bot_instance = app.bot
        await app.updater.start_polling(
            poll_interval=0.5,
            timeout=datetime.timedelta(seconds=15),
            bootstrap_retries=-1,
            drop_pending_updates=False,  # 保留下线期间的消息
            error_callback=bot_error_callback,
        )
        await app.start()
        _started_at_epoch = time.time()
        logger.info("Telegram Bot Polling 已启动")

        await shutdown_event.wait()
    finally:
        logger.info("关闭 Telegram Bot Polling...")
        _bot_instance = None
        if app.updater.running:
            await app.updater.stop()
        if app.running:
            await app.stop()
        await app.shutdown()
