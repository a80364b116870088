"""AdRemix Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from pathlib import Path

import aiosqlite

from .concept_store import SqliteConceptStore
from .product_store import SqliteProductStore
from .recipe_store import SqliteRecipeStore
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import write_transaction
from .workflow_store import SqliteWorkflowStore


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store = SqliteTaskStore(conn)
        self.concept_store = SqliteConceptStore(conn)
        self.recipe_store = SqliteRecipeStore(conn)
        self.product_store = SqliteProductStore(conn)
        self.workflow_store = SqliteWorkflowStore(conn)
        self._write_lock = asyncio.Lock()

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """开启一次写事务（提交或回滚）"""
        return write_transaction(self.conn, self._write_lock)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteConceptStore",
    "SqliteRecipeStore",
    "SqliteProductStore",
    "SqliteWorkflowStore",
    "init_db",
    "verify_wal_mode",
    "write_transaction",
]
