"""写事务封装

store 方法本身不提交；调用方用 write_transaction 包裹一次写入，
成功时提交，任何异常回滚后继续抛出。
共享连接上的写事务通过同一把 asyncio.Lock 串行化，避免协程间交错提交/回滚。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite


@asynccontextmanager
async def write_transaction(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
) -> AsyncIterator[None]:
    """在同一 SQLite 事务内执行写入

    Args:
        conn: 数据库连接
        lock: 该连接共享的写锁

    Raises:
        Exception: 事务内的任何异常，回滚后原样抛出
    """
    async with lock:
        try:
            yield
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise
