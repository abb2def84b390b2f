import aiosqlite
import os

from logger import logger


conn: aiosqlite.Connection | None = None

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_name TEXT,
    telegram_user_id INTEGER,
    created_at_utc TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%S', 'now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_users_telegram_user_id ON users (telegram_user_id);
"""


async def init_db(db_path: str) -> None:
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)
    global conn
    conn = await aiosqlite.connect(db_path)

    async with conn.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        user_version = row[0]

    if user_version == 0:
        logger.info(f"初始化用户数据库: {db_path}")
        await conn.executescript(_SCHEMA_V1)
        await conn.execute("PRAGMA user_version = 1")

    # 数据库升级逻辑可以在这里继续添加
    await conn.commit()


async def close_db() -> None:
    global conn
    if conn is not None:
        await conn.close()
        conn = None

__all__ = ["conn", "init_db", "close_db"]
