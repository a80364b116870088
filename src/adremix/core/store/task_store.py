"""TaskStore SQLite 实现

tasks 表记录每个外部任务在本地的状态。
终态写入只通过条件 UPDATE 完成（compare-and-set），不做先读后写。
"""

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import Task
from ..utils import from_db_json, from_db_ts, to_db_json, to_db_ts


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert_task(self, task: Task) -> bool:
        """插入任务记录；task_id 已存在时忽略

        Returns:
            True 如果新插入了一行
        """
        cursor = await self._conn.execute(
            """
            INSERT OR IGNORE INTO tasks (task_id, local_id, subject_kind, subject,
                                         status, result_payload, error_message,
                                         created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.local_id,
                task.subject.kind,
                task.subject.model_dump_json(),
                task.status.value,
                None if task.result_payload is None else to_db_json(task.result_payload),
                task.error_message,
                to_db_ts(task.created_at),
                to_db_ts(task.updated_at),
            ),
        )
        return cursor.rowcount == 1

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(self, status: str | None = None) -> list[Task]:
        """查询任务列表，支持按状态筛选，按 created_at 正序"""
        if status:
            cursor = await self._conn.execute(
                "SELECT * FROM tasks WHERE status = ? ORDER BY created_at, rowid",
                (status,),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT * FROM tasks ORDER BY created_at, rowid"
            )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_status_if_allowed(
        self,
        task_id: str,
        status: TaskStatus,
        predecessors: set[TaskStatus],
        *,
        result_payload: object | None,
        error_message: str | None,
        updated_at: str,
    ) -> bool:
        """仅当当前状态属于 predecessors 时更新

        Returns:
            True 如果本次写入生效；False 表示并发写入者已先行推进
        """
        if not predecessors:
            return False
        ordered = sorted(p.value for p in predecessors)
        placeholders = ", ".join("?" for _ in ordered)
        cursor = await self._conn.execute(
            f"""
            UPDATE tasks
            SET status = ?, result_payload = ?, error_message = ?, updated_at = ?
            WHERE task_id = ? AND status IN ({placeholders})
            """,
            (
                status.value,
                None if result_payload is None else to_db_json(result_payload),
                error_message,
                updated_at,
                task_id,
                *ordered,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            local_id=row["local_id"],
            subject=from_db_json(row["subject"], {}),
            status=row["status"],
            result_payload=from_db_json(row["result_payload"]),
            error_message=row["error_message"],
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
