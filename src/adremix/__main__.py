"""CLI 入口模块 -- python -m adremix <command>

支持的命令：
  serve                 启动 HTTP 服务（uvicorn）
  list-tasks [status]   列出任务登记表
  poll-pending          对未终态任务执行一次轮询兜底
"""

import asyncio
import os
import sys

from .core.config import get_db_path
from .core.models import TaskStatus

_USAGE = """用法: python -m adremix <command>
命令:
  serve                 启动 HTTP 服务（ADREMIX_HOST / ADREMIX_PORT）
  list-tasks [status]   列出任务（status: pending/processing/completed/failed）
  poll-pending          对 pending/processing 任务执行一次轮询"""


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(_USAGE)
        return 1

    command = args[0]

    if command == "serve":
        serve()
        return 0
    if command == "list-tasks":
        status = None
        if len(args) > 1:
            try:
                status = TaskStatus(args[1])
            except ValueError:
                print(f"未知状态: {args[1]}")
                return 1
        asyncio.run(list_tasks(status))
        return 0
    if command == "poll-pending":
        asyncio.run(poll_pending())
        return 0

    print(f"未知命令: {command}")
    print("可用命令: serve, list-tasks, poll-pending")
    return 1


def serve() -> None:
    import uvicorn

    uvicorn.run(
        "adremix.gateway.main:create_app",
        factory=True,
        host=os.environ.get("ADREMIX_HOST", "127.0.0.1"),
        port=int(os.environ.get("ADREMIX_PORT", "8000")),
        log_config=None,
    )


async def list_tasks(status: TaskStatus | None) -> None:
    """打印任务登记表"""
    from .core.registry import TaskRegistry
    from .core.store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        tasks = await TaskRegistry(store_group).list_by_status(status)
        for task in tasks:
            outcome = task.error_message or ""
            print(
                f"{task.task_id}\t{task.status}\t{task.subject.kind}\t"
                f"{task.updated_at.isoformat()}\t{outcome}"
            )
        print(f"共 {len(tasks)} 个任务")
    finally:
        await store_group.close()


async def poll_pending() -> None:
    """执行一次轮询兜底"""
    from .core.creative_store import CreativeStore
    from .core.registry import TaskRegistry
    from .core.store import create_store_group
    from .gateway.middleware.logging_config import setup_logging
    from .gateway.services.reconciler import StateReconciler
    from .gateway.services.stream_relay import StreamRelay
    from .gateway.services.update_hub import UpdateHub
    from .jobservice import JobServiceClient, load_job_service_config

    setup_logging()
    config = load_job_service_config()
    store_group = await create_store_group(get_db_path())
    job_client = JobServiceClient.from_config(config)
    try:
        registry = TaskRegistry(store_group)
        creatives = CreativeStore(store_group)
        hub = UpdateHub()
        relay = StreamRelay(
            job_client, registry, creatives, hub, idle_timeout_s=config.stream_idle_timeout_s
        )
        reconciler = StateReconciler(registry, creatives, relay, job_client, hub)
        tasks = await reconciler.poll_pending()
        for task in tasks:
            print(f"{task.task_id}\t{task.status}")
        print(f"已轮询 {len(tasks)} 个任务")
    finally:
        await job_client.aclose()
        await store_group.close()


if __name__ == "__main__":
    sys.exit(main())
