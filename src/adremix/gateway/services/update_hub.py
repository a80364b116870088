"""UpdateHub -- 内存中任务更新广播器

每个订阅者持有一个有界 asyncio.Queue，按 task_id 订阅。
队列已满的订阅者被直接丢弃（浏览器侧会在心跳时重新读取实体状态）。
"""

import asyncio
from collections import defaultdict

import structlog
from adremix.core.config import UPDATE_QUEUE_MAXSIZE
from adremix.core.models import Task
from pydantic import BaseModel, Field

log = structlog.get_logger()


class TaskUpdate(BaseModel):
    """一次已生效的任务状态更新"""

    task: Task
    final: bool = Field(default=False, description="实体终态是否已落盘")


class UpdateHub:
    """任务更新广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = UPDATE_QUEUE_MAXSIZE) -> None:
        # task_id -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, task_id: str) -> asyncio.Queue:
        """订阅指定任务的更新

        Returns:
            asyncio.Queue 实例，新的 TaskUpdate 会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[task_id].add(queue)
        return queue

    async def unsubscribe(self, task_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(task_id)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[task_id]

    async def broadcast(self, task_id: str, update: TaskUpdate) -> None:
        """向指定任务的所有订阅者广播更新"""
        dead_queues = []
        for queue in self._subscribers.get(task_id, set()):
            try:
                queue.put_nowait(update)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列
        for q in dead_queues:
            self._subscribers[task_id].discard(q)
            log.warning("update_subscriber_dropped", task_id=task_id)
        if task_id in self._subscribers and not self._subscribers[task_id]:
            del self._subscribers[task_id]

    def subscriber_count(self, task_id: str) -> int:
        return len(self._subscribers.get(task_id, ()))
