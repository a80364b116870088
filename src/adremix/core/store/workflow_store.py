"""WorkflowStore SQLite 实现 -- workflows 表

ads 列保存抓取到的广告原始 JSON 数组（Facebook Ad Library 结构）。
"""

from typing import Any

import aiosqlite

from ..models.entities import Workflow
from ..utils import from_db_json, from_db_ts, to_db_json, to_db_ts


class SqliteWorkflowStore:
    """WorkflowStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_workflow(self, workflow: Workflow) -> None:
        await self._conn.execute(
            """
            INSERT INTO workflows (id, user_id, name, ads, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                workflow.id,
                workflow.user_id,
                workflow.name,
                to_db_json(workflow.ads),
                to_db_ts(workflow.created_at),
                to_db_ts(workflow.updated_at),
            ),
        )

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        cursor = await self._conn.execute(
            "SELECT * FROM workflows WHERE id = ?",
            (workflow_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._row_to_workflow(row)

    async def list_for_user(self, user_id: str) -> list[Workflow]:
        """查询用户的工作流，按 created_at 倒序"""
        cursor = await self._conn.execute(
            "SELECT * FROM workflows WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_workflow(row) for row in rows]

    async def update_workflow(
        self,
        workflow_id: str,
        *,
        name: str | None,
        ads: list[dict[str, Any]] | None,
        updated_at: str,
    ) -> bool:
        """更新名称和/或广告列表；None 字段保留原值"""
        cursor = await self._conn.execute(
            """
            UPDATE workflows
            SET name = COALESCE(?, name),
                ads = COALESCE(?, ads),
                updated_at = ?
            WHERE id = ?
            """,
            (
                name,
                None if ads is None else to_db_json(ads),
                updated_at,
                workflow_id,
            ),
        )
        return cursor.rowcount == 1

    async def delete_workflow(self, workflow_id: str) -> bool:
        cursor = await self._conn.execute(
            "DELETE FROM workflows WHERE id = ?",
            (workflow_id,),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_workflow(row: aiosqlite.Row) -> Workflow:
        return Workflow(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            ads=from_db_json(row["ads"], []),
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
