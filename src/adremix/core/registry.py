"""TaskRegistry -- 外部任务在本地的权威状态

所有状态变更都走 update_status：
- 终态之后的更新被忽略（记录日志，不抛异常）
- 回退（如 processing -> pending）被丢弃
- 合法推进使用单条条件 UPDATE，并发写入者之间只有一个生效
"""

import aiosqlite
import structlog
from pydantic import JsonValue

from .exceptions import StoreError, TaskNotFoundError
from .models import (
    AdConceptSubject,
    AdRecipeSubject,
    Task,
    TaskStatus,
    allowed_predecessors,
    validate_transition,
)
from .store import StoreGroup
from .utils import advance, to_db_ts, utcnow

log = structlog.get_logger()

# failed 事件未携带错误文本时写入的默认值
UNKNOWN_ERROR = "unknown error"


class TaskRegistry:
    """任务登记表"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def register(
        self,
        local_id: str,
        subject: AdConceptSubject | AdRecipeSubject,
        task_id: str,
    ) -> Task:
        """登记一个 pending 任务

        同一 task_id 重复登记时返回已存储的记录，不做修改。
        """
        now = utcnow()
        task = Task(
            task_id=task_id,
            local_id=local_id,
            subject=subject,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._stores.transaction():
                inserted = await self._stores.task_store.insert_task(task)
            stored = await self._stores.task_store.get_task(task_id)
        except aiosqlite.Error as e:
            log.error(
                "task_register_failed",
                task_id=task_id,
                error_type=type(e).__name__,
            )
            raise StoreError("Failed to register task", task_id=task_id) from e

        if stored is None:
            # local_id 冲突导致 INSERT OR IGNORE 静默跳过
            raise StoreError("Task row missing after register", task_id=task_id)
        if inserted:
            log.info("task_registered", task_id=task_id, subject_kind=subject.kind)
        else:
            log.info("task_already_registered", task_id=task_id)
        return stored

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        result: JsonValue | None = None,
        error: str | None = None,
    ) -> Task:
        """推进任务状态

        Args:
            task_id: 外部任务 ID
            status: 目标状态
            result: completed 时的结果（缺省写入 {}）
            error: failed 时的错误信息（缺省写入 "unknown error"）

        Returns:
            更新后（或未变化）的 Task

        Raises:
            TaskNotFoundError: 未登记的 task_id
            StoreError: 数据库写入失败
        """
        current = await self.get(task_id)
        if current is None:
            raise TaskNotFoundError(task_id)

        if current.is_terminal:
            log.info(
                "task_update_ignored_terminal",
                task_id=task_id,
                current_status=current.status,
                requested_status=status,
            )
            return current
        if current.status == status:
            return current
        if not validate_transition(current.status, status):
            log.warning(
                "task_status_regression_discarded",
                task_id=task_id,
                current_status=current.status,
                requested_status=status,
            )
            return current

        result_payload: JsonValue | None = None
        error_message: str | None = None
        if status == TaskStatus.COMPLETED:
            result_payload = {} if result is None else result
        elif status == TaskStatus.FAILED:
            error_message = error or UNKNOWN_ERROR

        try:
            async with self._stores.transaction():
                applied = await self._stores.task_store.update_status_if_allowed(
                    task_id,
                    status,
                    allowed_predecessors(status),
                    result_payload=result_payload,
                    error_message=error_message,
                    updated_at=to_db_ts(advance(current.updated_at)),
                )
            stored = await self._stores.task_store.get_task(task_id)
        except aiosqlite.Error as e:
            log.error(
                "task_status_write_failed",
                task_id=task_id,
                requested_status=status,
                error_type=type(e).__name__,
            )
            raise StoreError("Failed to update task status", task_id=task_id) from e

        if stored is None:
            raise TaskNotFoundError(task_id)
        if applied:
            log.info(
                "task_status_updated",
                task_id=task_id,
                from_status=current.status,
                to_status=status,
            )
        else:
            log.info(
                "task_status_update_lost_race",
                task_id=task_id,
                requested_status=status,
                stored_status=stored.status,
            )
        return stored

    async def get(self, task_id: str) -> Task | None:
        try:
            return await self._stores.task_store.get_task(task_id)
        except aiosqlite.Error as e:
            raise StoreError("Failed to read task", task_id=task_id) from e

    async def list_by_status(self, status: TaskStatus | None = None) -> list[Task]:
        """按 created_at 正序列出任务；status 为 None 时列出全部"""
        return await self._stores.task_store.list_tasks(
            status.value if status is not None else None
        )
