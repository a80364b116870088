"""任务登记表路由

GET /tasks: 任务列表，支持 status 筛选，按 created_at 正序
GET /tasks/{task_id}: 任务详情
POST /tasks/{task_id}/poll: 轮询兜底，立即向外部服务查询一次状态
"""

from adremix.core.exceptions import InvalidInputError, TaskNotFoundError
from adremix.core.models import TaskStatus
from adremix.core.registry import TaskRegistry
from fastapi import APIRouter, Depends, Query

from ..deps import get_current_user, get_reconciler, get_registry
from ..services.reconciler import StateReconciler

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/tasks")
async def list_tasks(
    status: str | None = Query(default=None, description="按状态筛选"),
    registry: TaskRegistry = Depends(get_registry),
):
    status_filter = None
    if status:
        try:
            status_filter = TaskStatus(status)
        except ValueError as e:
            raise InvalidInputError(f"Unknown task status: {status}") from e
    tasks = await registry.list_by_status(status_filter)
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    registry: TaskRegistry = Depends(get_registry),
):
    task = await registry.get(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return {"task": task.model_dump(mode="json")}


@router.post("/tasks/{task_id}/poll")
async def poll_task(
    task_id: str,
    reconciler: StateReconciler = Depends(get_reconciler),
):
    task = await reconciler.poll_task(task_id)
    return {"task": task.model_dump(mode="json")}
