"""StateReconciler -- 页面加载/进程重启时的状态对账

读取实体行，保证每个未终态实体都有对应的 Task 登记与中继订阅，然后立即返回；
后续变化经 UpdateHub 推送。轮询兜底走 fetch_status/fetch_result。
"""

import structlog
from adremix.core.creative_store import CreativeStore
from adremix.core.exceptions import EntityNotFoundError, OwnershipError, TaskNotFoundError
from adremix.core.models import (
    AdConceptSubject,
    AdRecipeSubject,
    Concept,
    Recipe,
    Task,
    TaskStatus,
)
from adremix.core.registry import TaskRegistry
from adremix.core.utils import new_id
from adremix.jobservice import JobServiceClient, JobServiceError

from .stream_relay import StreamRelay
from .update_hub import TaskUpdate, UpdateHub

log = structlog.get_logger()


class StateReconciler:
    """状态对账服务"""

    def __init__(
        self,
        registry: TaskRegistry,
        creatives: CreativeStore,
        relay: StreamRelay,
        job_client: JobServiceClient,
        hub: UpdateHub,
    ) -> None:
        self._registry = registry
        self._creatives = creatives
        self._relay = relay
        self._job_client = job_client
        self._hub = hub

    # ============================================================
    # 读取 + 追踪
    # ============================================================

    async def load_concepts(self, user_id: str, concept_ids: list[str]) -> list[Concept]:
        """按请求顺序读取概念，丢弃其他用户的行"""
        concepts = await self._creatives.list_concepts_by_ids(concept_ids)
        visible = [c for c in concepts if c.user_id == user_id]
        await self.track_concepts(visible)
        return visible

    async def load_concepts_for_ads(
        self,
        user_id: str,
        ad_archive_ids: list[str] | None = None,
    ) -> list[Concept]:
        """读取用户（可按广告过滤）的概念，最新的在前"""
        concepts = await self._creatives.list_concepts(user_id, ad_archive_ids)
        await self.track_concepts(concepts)
        return concepts

    async def load_concept(self, user_id: str, concept_id: str) -> Concept:
        concept = await self._creatives.get_concept(concept_id)
        if concept is None:
            raise EntityNotFoundError("Concept", concept_id)
        if concept.user_id != user_id:
            raise OwnershipError("Concept", concept_id)
        await self.track_concepts([concept])
        return concept

    async def load_recipe(self, user_id: str, recipe_id: str) -> Recipe:
        recipe = await self._creatives.get_recipe(recipe_id)
        if recipe is None:
            raise EntityNotFoundError("Recipe", recipe_id)
        if recipe.user_id != user_id:
            raise OwnershipError("Recipe", recipe_id)
        await self._track_recipes([recipe])
        return recipe

    async def load_recipes(self, user_id: str) -> list[Recipe]:
        recipes = await self._creatives.list_recipes(user_id)
        await self._track_recipes(recipes)
        return recipes

    async def track_concepts(self, concepts: list[Concept]) -> None:
        """保证每个未终态概念都有 Task 登记与活跃订阅"""
        seen: set[str] = set()
        for concept in concepts:
            if concept.is_terminal or concept.task_id in seen:
                continue
            seen.add(concept.task_id)
            await self._ensure_tracked(
                concept.task_id,
                AdConceptSubject(ad_archive_id=concept.ad_archive_id),
            )

    async def _track_recipes(self, recipes: list[Recipe]) -> None:
        seen: set[str] = set()
        for recipe in recipes:
            if recipe.is_terminal or recipe.task_id is None or recipe.task_id in seen:
                continue
            seen.add(recipe.task_id)
            await self._ensure_tracked(
                recipe.task_id,
                AdRecipeSubject(concept_ids=recipe.concept_ids, product_id=recipe.product_id),
            )

    async def _ensure_tracked(
        self,
        task_id: str,
        subject: AdConceptSubject | AdRecipeSubject,
    ) -> None:
        task = await self._registry.get(task_id)
        if task is None:
            # 实体先于 Task 登记落盘（或登记表丢失）时补登记
            await self._registry.register(new_id(), subject, task_id)
            log.info("task_registration_restored", task_id=task_id, kind=subject.kind)
        self._relay.ensure_subscription(task_id)

    # ============================================================
    # 启动恢复 + 轮询兜底
    # ============================================================

    async def resume_pending(self) -> int:
        """为所有 pending / processing 任务重新订阅

        Returns:
            新启动的订阅数量
        """
        active = await self._active_tasks()
        started = sum(1 for task in active if self._relay.ensure_subscription(task.task_id))
        log.info("pending_tasks_resumed", active=len(active), started=started)
        return started

    async def poll_task(self, task_id: str) -> Task:
        """轮询一次外部状态并应用（与中继竞争时只有一方生效）

        Raises:
            TaskNotFoundError: 未登记的 task_id
            JobServiceError: 上游请求失败
        """
        task = await self._registry.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.is_terminal:
            await self._creatives.finalize_from_task(task)
            return task

        event = await self._job_client.fetch_status(task_id)
        result = event.result
        if event.status == TaskStatus.COMPLETED and result is None:
            result = await self._job_client.fetch_result(task_id)

        updated = await self._registry.update_status(
            task_id, event.status, result=result, error=event.error
        )
        if updated.is_terminal:
            await self._creatives.finalize_from_task(updated)
            await self._hub.broadcast(task_id, TaskUpdate(task=updated, final=True))
        elif updated.status != task.status:
            await self._hub.broadcast(task_id, TaskUpdate(task=updated))
        log.info("task_polled", task_id=task_id, status=updated.status)
        return updated

    async def poll_pending(self) -> list[Task]:
        """对所有未终态任务执行一次轮询；单个任务的上游错误只记录日志"""
        polled: list[Task] = []
        for task in await self._active_tasks():
            try:
                polled.append(await self.poll_task(task.task_id))
            except JobServiceError as e:
                log.warning(
                    "task_poll_failed",
                    task_id=task.task_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                polled.append(task)
        return polled

    async def _active_tasks(self) -> list[Task]:
        pending = await self._registry.list_by_status(TaskStatus.PENDING)
        processing = await self._registry.list_by_status(TaskStatus.PROCESSING)
        return sorted(pending + processing, key=lambda t: t.created_at)
