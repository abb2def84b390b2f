import storage.db_config as db_config
from datamodel import UserInfo
from logger import logger

_USER_COLUMNS = "user_id, user_name, telegram_user_id, created_at_utc"


def _ensure_conn():
    if db_config.conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")


def _row_to_user(row) -> UserInfo:
    return UserInfo(
        user_id=row[0],
        user_name=row[1],
        telegram_user_id=row[2],
        created_at_utc=row[3],
    )


async def create_user_if_not_exists(telegram_user_id: int, user_name: str | None = None) -> UserInfo:
    """如果用户不存在则创建新用户, 返回该用户"""
    _ensure_conn()
    user = await get_user_by_telegram_id(telegram_user_id)
    if user is not None:
        return user
    logger.info(f"创建新用户, Telegram ID: {telegram_user_id}")
    await db_config.conn.execute(
        "INSERT INTO users (telegram_user_id, user_name) VALUES (?, ?)",
        (telegram_user_id, user_name),
    )
    await db_config.conn.commit()
    user = await get_user_by_telegram_id(telegram_user_id)
    if user is None:
        raise RuntimeError(f"创建用户失败, Telegram ID: {telegram_user_id}")
    return user

async def get_user_by_telegram_id(telegram_user_id: int) -> UserInfo | None:
    """通过 Telegram 用户 ID 获取用户信息"""
    _ensure_conn()
    async with db_config.conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE telegram_user_id = ?", (telegram_user_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_user(row) if row else None

async def get_user_by_id(user_id: int) -> UserInfo | None:
    """通过用户 ID 获取用户信息"""
    _ensure_conn()
    async with db_config.conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?", (user_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_user(row) if row else None

async def count_users() -> int:
    _ensure_conn()
    async with db_config.conn.execute("SELECT COUNT(1) FROM users") as cursor:
        row = await cursor.fetchone()
    return row[0] if row else 0

__all__ = ["create_user_if_not_exists", "get_user_by_telegram_id", "get_user_by_id", "count_users"]
