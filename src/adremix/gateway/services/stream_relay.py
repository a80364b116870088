"""StreamRelay -- 外部任务状态流中继

每个 task_id 至多一个订阅（asyncio.Task），按引用计数管理浏览器监听者：
- acquire/release 只影响监听计数，release 永远不会取消订阅
- 订阅内事件严格按顺序应用到 TaskRegistry，随后广播到 UpdateHub
- 终态 completed 时落盘实体；failed / 提前关闭 / 空闲超时 / 上游错误 / 未预期异常时标记失败
- 存储错误保留最后已知状态，由下一次对账重新订阅
"""

import asyncio

import aiosqlite
import structlog
from adremix.core.creative_store import CreativeStore
from adremix.core.exceptions import StoreError
from adremix.core.models import Task, TaskStatus
from adremix.core.registry import TaskRegistry
from adremix.jobservice import JobServiceClient, JobServiceError, StreamClosedPrematurely

from .update_hub import TaskUpdate, UpdateHub

log = structlog.get_logger()

PREMATURE_CLOSE_PREFIX = "StreamClosedPrematurely:"


class StreamRelay:
    """状态流中继"""

    def __init__(
        self,
        job_client: JobServiceClient,
        registry: TaskRegistry,
        creatives: CreativeStore,
        hub: UpdateHub,
        idle_timeout_s: float = 120.0,
    ) -> None:
        self._job_client = job_client
        self._registry = registry
        self._creatives = creatives
        self._hub = hub
        self._idle_timeout_s = idle_timeout_s
        self._subscriptions: dict[str, asyncio.Task] = {}
        self._listeners: dict[str, int] = {}
        self._closed = False

    # ============================================================
    # 订阅管理
    # ============================================================

    def acquire(self, task_id: str) -> bool:
        """登记一个监听者，必要时启动订阅

        Returns:
            True 如果本次调用启动了新订阅
        """
        started = self.ensure_subscription(task_id)
        self._listeners[task_id] = self._listeners.get(task_id, 0) + 1
        return started

    def release(self, task_id: str) -> None:
        """注销一个监听者（不取消订阅）"""
        remaining = self._listeners.get(task_id, 0) - 1
        if remaining > 0:
            self._listeners[task_id] = remaining
        else:
            self._listeners.pop(task_id, None)

    def ensure_subscription(self, task_id: str) -> bool:
        """确保 task_id 有一个活跃订阅

        Returns:
            True 如果本次调用启动了新订阅
        """
        if self._closed:
            return False
        if self.is_active(task_id):
            return False
        runner = asyncio.create_task(self._run(task_id), name=f"stream-relay:{task_id}")
        self._subscriptions[task_id] = runner
        runner.add_done_callback(lambda t, tid=task_id: self._on_done(tid, t))
        log.debug("relay_subscription_started", task_id=task_id)
        return True

    def is_active(self, task_id: str) -> bool:
        runner = self._subscriptions.get(task_id)
        return runner is not None and not runner.done()

    def listener_count(self, task_id: str) -> int:
        return self._listeners.get(task_id, 0)

    def active_task_ids(self) -> list[str]:
        return [tid for tid, runner in self._subscriptions.items() if not runner.done()]

    async def join(self, task_id: str) -> None:
        """等待订阅结束（无活跃订阅时立即返回）"""
        runner = self._subscriptions.get(task_id)
        if runner is not None:
            await asyncio.wait({runner})

    async def cancel(self, task_id: str) -> None:
        """显式取消订阅"""
        runner = self._subscriptions.get(task_id)
        if runner is None or runner.done():
            return
        runner.cancel()
        await asyncio.wait({runner})

    async def shutdown(self) -> None:
        """取消全部订阅（应用关闭时调用）"""
        self._closed = True
        runners = [r for r in self._subscriptions.values() if not r.done()]
        for runner in runners:
            runner.cancel()
        if runners:
            await asyncio.wait(runners)
        log.info("stream_relay_shutdown", cancelled=len(runners))

    def _on_done(self, task_id: str, runner: asyncio.Task) -> None:
        if self._subscriptions.get(task_id) is runner:
            del self._subscriptions[task_id]

    # ============================================================
    # 单个订阅
    # ============================================================

    async def _run(self, task_id: str) -> None:
        structlog.contextvars.bind_contextvars(task_id=task_id)
        try:
            task = await self._registry.get(task_id)
            if task is None:
                log.warning("relay_task_not_registered", task_id=task_id)
                return
            if task.is_terminal:
                # 上次进程可能在 Task 终态与实体落盘之间退出
                await self._creatives.finalize_from_task(task)
                await self._hub.broadcast(task_id, TaskUpdate(task=task, final=True))
                return
            await self._relay(task)
        except asyncio.CancelledError:
            log.info("relay_subscription_cancelled", task_id=task_id)
            raise
        except (StoreError, aiosqlite.Error) as e:
            # 保留最后已知状态，等待下一次 reload / 轮询对账
            log.error(
                "relay_store_error",
                task_id=task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
        except Exception as e:
            log.error(
                "relay_unexpected_error",
                task_id=task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            try:
                await self._fail(task_id, f"{PREMATURE_CLOSE_PREFIX} {type(e).__name__}")
            except Exception as fail_error:
                log.error(
                    "relay_fail_mark_error",
                    task_id=task_id,
                    error_type=type(fail_error).__name__,
                    error=str(fail_error),
                )

    async def _relay(self, task: Task) -> None:
        task_id = task.task_id
        current = task
        stream = self._job_client.open_status_stream(task_id)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(
                        anext(stream), timeout=self._idle_timeout_s
                    )
                except StopAsyncIteration:
                    await self._fail(
                        task_id,
                        f"{PREMATURE_CLOSE_PREFIX} upstream closed the stream before a terminal status",
                    )
                    return
                except TimeoutError:
                    await self._fail(
                        task_id,
                        f"{PREMATURE_CLOSE_PREFIX} no status update within {self._idle_timeout_s:g}s",
                    )
                    return
                except StreamClosedPrematurely as e:
                    await self._fail(task_id, f"{PREMATURE_CLOSE_PREFIX} {e.reason}")
                    return
                except JobServiceError as e:
                    await self._fail(task_id, f"{PREMATURE_CLOSE_PREFIX} {e}")
                    return

                log.debug("relay_event_received", task_id=task_id, status=event.status)
                updated = await self._registry.update_status(
                    task_id,
                    event.status,
                    result=event.result,
                    error=event.error,
                )
                if updated.is_terminal:
                    await self._creatives.finalize_from_task(updated)
                    await self._hub.broadcast(task_id, TaskUpdate(task=updated, final=True))
                    log.info("relay_task_finished", task_id=task_id, status=updated.status)
                    return
                if updated.status != current.status:
                    await self._hub.broadcast(task_id, TaskUpdate(task=updated))
                current = updated
        finally:
            await stream.aclose()

    async def _fail(self, task_id: str, message: str) -> None:
        log.warning("relay_stream_failed", task_id=task_id, reason=message)
        updated = await self._registry.update_status(
            task_id, TaskStatus.FAILED, error=message
        )
        await self._creatives.finalize_from_task(updated)
        await self._hub.broadcast(task_id, TaskUpdate(task=updated, final=True))
