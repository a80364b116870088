"""CreativeStore -- 概念/配方持久化适配层

负责 Concept 与 Recipe 行的创建与唯一一次终态写入：
- 终态写入是单条条件 UPDATE，已是终态时记录 concept_already_terminal 并返回已存储行
- 配方只能由已 completed 的概念 + 调用者拥有的产品组装
"""

import aiosqlite
import structlog

from .exceptions import (
    EntityNotFoundError,
    InvalidInputError,
    OwnershipError,
    RecipeInputsNotReadyError,
    StoreError,
)
from .models import (
    Concept,
    JsonDocument,
    Product,
    Recipe,
    SubjectKind,
    Task,
    TaskStatus,
    as_document,
)
from .store import StoreGroup
from .utils import advance, new_id, to_db_ts, utcnow

log = structlog.get_logger()

ALREADY_TERMINAL = "ALREADY_TERMINAL"

# check_recipe_inputs 的返回值：(按请求顺序的概念, 产品)
RecipeInputs = tuple[list[Concept], Product]


class CreativeStore:
    """概念/配方存储适配器"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    # ============================================================
    # Concept
    # ============================================================

    async def create_pending_concept(
        self,
        ad_archive_id: str,
        task_id: str,
        user_id: str,
        page_name: str = "",
    ) -> Concept:
        """提交提取任务后立即创建 pending 概念"""
        now = utcnow()
        concept = Concept(
            id=new_id(),
            user_id=user_id,
            ad_archive_id=ad_archive_id,
            task_id=task_id,
            page_name=page_name,
            status=TaskStatus.PENDING,
            concept_json={},
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._stores.transaction():
                await self._stores.concept_store.create_concept(concept)
        except aiosqlite.Error as e:
            log.error(
                "concept_create_failed",
                task_id=task_id,
                ad_archive_id=ad_archive_id,
                error_type=type(e).__name__,
            )
            raise StoreError(
                "Failed to create concept", task_id=task_id, entity_id=concept.id
            ) from e
        log.info(
            "concept_created",
            concept_id=concept.id,
            task_id=task_id,
            ad_archive_id=ad_archive_id,
        )
        return concept

    async def complete_concept(
        self,
        concept_id: str,
        concept_json: JsonDocument,
    ) -> Concept:
        return await self._finalize_concept(
            concept_id, TaskStatus.COMPLETED, concept_json=concept_json, error_message=None
        )

    async def fail_concept(self, concept_id: str, error_message: str) -> Concept:
        return await self._finalize_concept(
            concept_id, TaskStatus.FAILED, concept_json=None, error_message=error_message
        )

    async def _finalize_concept(
        self,
        concept_id: str,
        status: TaskStatus,
        *,
        concept_json: JsonDocument | None,
        error_message: str | None,
    ) -> Concept:
        """写入概念终态（只生效一次）

        Raises:
            EntityNotFoundError: 概念不存在
            StoreError: 数据库写入失败
        """
        current = await self._stores.concept_store.get_concept(concept_id)
        if current is None:
            raise EntityNotFoundError("Concept", concept_id)

        applied = False
        if not current.is_terminal:
            try:
                async with self._stores.transaction():
                    applied = await self._stores.concept_store.finalize_if_active(
                        concept_id,
                        status,
                        concept_json=concept_json,
                        error_message=error_message,
                        updated_at=to_db_ts(advance(current.updated_at)),
                    )
            except aiosqlite.Error as e:
                log.error(
                    "concept_finalize_failed",
                    concept_id=concept_id,
                    task_id=current.task_id,
                    error_type=type(e).__name__,
                )
                raise StoreError(
                    "Failed to finalize concept",
                    task_id=current.task_id,
                    entity_id=concept_id,
                ) from e

        stored = await self._stores.concept_store.get_concept(concept_id)
        if stored is None:
            raise EntityNotFoundError("Concept", concept_id)
        if applied:
            log.info(
                "concept_finalized",
                concept_id=concept_id,
                task_id=stored.task_id,
                status=status,
            )
        else:
            log.info(
                "concept_already_terminal",
                code=ALREADY_TERMINAL,
                concept_id=concept_id,
                task_id=stored.task_id,
                stored_status=stored.status,
                requested_status=status,
            )
        return stored

    async def get_concept(self, concept_id: str) -> Concept | None:
        return await self._stores.concept_store.get_concept(concept_id)

    async def find_concept_by_task(self, task_id: str) -> Concept | None:
        return await self._stores.concept_store.get_by_task_id(task_id)

    async def list_concepts_by_ids(self, concept_ids: list[str]) -> list[Concept]:
        """按请求顺序返回概念，不存在的 ID 被省略"""
        return await self._stores.concept_store.list_by_ids(concept_ids)

    async def list_concepts(
        self,
        user_id: str,
        ad_archive_ids: list[str] | None = None,
    ) -> list[Concept]:
        """用户的概念，最新的在前"""
        return await self._stores.concept_store.list_for_user(user_id, ad_archive_ids)

    async def latest_concept_for_ad(
        self,
        user_id: str,
        ad_archive_id: str,
    ) -> Concept | None:
        return await self._stores.concept_store.latest_for_ad(user_id, ad_archive_id)

    # ============================================================
    # Recipe
    # ============================================================

    async def check_recipe_inputs(
        self,
        user_id: str,
        concept_ids: list[str],
        product_id: str,
    ) -> RecipeInputs:
        """校验配方输入：概念全部存在、归属当前用户且已 completed；产品存在且归属当前用户

        Returns:
            (按请求顺序的概念列表, 产品)

        Raises:
            InvalidInputError: concept_ids 为空
            EntityNotFoundError: 概念或产品不存在
            OwnershipError: 概念或产品属于其他用户
            RecipeInputsNotReadyError: 存在未 completed 的概念
        """
        if not concept_ids:
            raise InvalidInputError("At least one concept id is required")
        if not product_id:
            raise InvalidInputError("A product id is required")

        concepts = await self._stores.concept_store.list_by_ids(concept_ids)
        found = {c.id for c in concepts}
        for concept_id in concept_ids:
            if concept_id not in found:
                raise EntityNotFoundError("Concept", concept_id)
        for concept in concepts:
            if concept.user_id != user_id:
                raise OwnershipError("Concept", concept.id)

        product = await self._stores.product_store.get_product(product_id)
        if product is None:
            raise EntityNotFoundError("Product", product_id)
        if product.user_id != user_id:
            raise OwnershipError("Product", product_id)

        not_ready = [c.id for c in concepts if c.status != TaskStatus.COMPLETED]
        if not_ready:
            raise RecipeInputsNotReadyError(not_ready)
        return concepts, product

    async def create_recipe(
        self,
        user_id: str,
        name: str,
        concept_ids: list[str],
        product_id: str,
        prompt_json: JsonDocument,
        *,
        inputs: RecipeInputs | None = None,
    ) -> Recipe:
        """直接组装配方，创建即为 completed

        inputs 为本次请求中 check_recipe_inputs 的返回值时跳过重复校验。
        """
        if inputs is None:
            await self.check_recipe_inputs(user_id, concept_ids, product_id)
        return await self._insert_recipe(
            user_id,
            name,
            concept_ids,
            product_id,
            prompt_json=prompt_json,
            status=TaskStatus.COMPLETED,
            task_id=None,
        )

    async def create_pending_recipe(
        self,
        user_id: str,
        name: str,
        concept_ids: list[str],
        product_id: str,
        task_id: str,
        prompt_json: JsonDocument | None = None,
        *,
        inputs: RecipeInputs | None = None,
    ) -> Recipe:
        """由外部服务生成的配方：以 pending 创建，终态由 Stream Relay 写入"""
        if inputs is None:
            await self.check_recipe_inputs(user_id, concept_ids, product_id)
        return await self._insert_recipe(
            user_id,
            name,
            concept_ids,
            product_id,
            prompt_json=prompt_json or {},
            status=TaskStatus.PENDING,
            task_id=task_id,
        )

    async def _insert_recipe(
        self,
        user_id: str,
        name: str,
        concept_ids: list[str],
        product_id: str,
        *,
        prompt_json: JsonDocument,
        status: TaskStatus,
        task_id: str | None,
    ) -> Recipe:
        now = utcnow()
        recipe = Recipe(
            id=new_id(),
            user_id=user_id,
            name=name,
            concept_ids=list(concept_ids),
            product_id=product_id,
            prompt_json=prompt_json,
            status=status,
            task_id=task_id,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._stores.transaction():
                await self._stores.recipe_store.create_recipe(recipe)
        except aiosqlite.Error as e:
            log.error(
                "recipe_create_failed",
                task_id=task_id,
                error_type=type(e).__name__,
            )
            raise StoreError(
                "Failed to create recipe", task_id=task_id, entity_id=recipe.id
            ) from e
        log.info("recipe_created", recipe_id=recipe.id, status=status, task_id=task_id)
        return recipe

    async def complete_recipe(self, recipe_id: str, prompt_json: JsonDocument) -> Recipe:
        return await self._finalize_recipe(
            recipe_id, TaskStatus.COMPLETED, prompt_json=prompt_json, error_message=None
        )

    async def fail_recipe(self, recipe_id: str, error_message: str) -> Recipe:
        return await self._finalize_recipe(
            recipe_id, TaskStatus.FAILED, prompt_json=None, error_message=error_message
        )

    async def _finalize_recipe(
        self,
        recipe_id: str,
        status: TaskStatus,
        *,
        prompt_json: JsonDocument | None,
        error_message: str | None,
    ) -> Recipe:
        current = await self._stores.recipe_store.get_recipe(recipe_id)
        if current is None:
            raise EntityNotFoundError("Recipe", recipe_id)

        applied = False
        if not current.is_terminal:
            try:
                async with self._stores.transaction():
                    applied = await self._stores.recipe_store.finalize_if_active(
                        recipe_id,
                        status,
                        prompt_json=prompt_json,
                        error_message=error_message,
                        updated_at=to_db_ts(advance(current.updated_at)),
                    )
            except aiosqlite.Error as e:
                log.error(
                    "recipe_finalize_failed",
                    recipe_id=recipe_id,
                    task_id=current.task_id,
                    error_type=type(e).__name__,
                )
                raise StoreError(
                    "Failed to finalize recipe",
                    task_id=current.task_id,
                    entity_id=recipe_id,
                ) from e

        stored = await self._stores.recipe_store.get_recipe(recipe_id)
        if stored is None:
            raise EntityNotFoundError("Recipe", recipe_id)
        if applied:
            log.info(
                "recipe_finalized",
                recipe_id=recipe_id,
                task_id=stored.task_id,
                status=status,
            )
        else:
            log.info(
                "recipe_already_terminal",
                code=ALREADY_TERMINAL,
                recipe_id=recipe_id,
                task_id=stored.task_id,
                stored_status=stored.status,
            )
        return stored

    async def get_recipe(self, recipe_id: str) -> Recipe | None:
        return await self._stores.recipe_store.get_recipe(recipe_id)

    async def find_recipe_by_task(self, task_id: str) -> Recipe | None:
        return await self._stores.recipe_store.get_by_task_id(task_id)

    async def list_recipes(self, user_id: str) -> list[Recipe]:
        return await self._stores.recipe_store.list_for_user(user_id)

    # ============================================================
    # 终态落盘
    # ============================================================

    async def finalize_from_task(self, task: Task) -> Concept | Recipe | None:
        """将终态 Task 的结果写入其关联实体（幂等）

        非终态任务直接返回 None；找不到关联实体时记录日志并返回 None。
        """
        if not task.is_terminal:
            return None

        if task.subject.kind == SubjectKind.AD_CONCEPT:
            concept = await self.find_concept_by_task(task.task_id)
            if concept is None:
                log.warning("task_has_no_linked_entity", task_id=task.task_id, kind=task.subject.kind)
                return None
            if task.status == TaskStatus.COMPLETED:
                return await self.complete_concept(concept.id, as_document(task.result_payload))
            return await self.fail_concept(concept.id, task.error_message or "")

        recipe = await self.find_recipe_by_task(task.task_id)
        if recipe is None:
            log.warning("task_has_no_linked_entity", task_id=task.task_id, kind=task.subject.kind)
            return None
        if task.status == TaskStatus.COMPLETED:
            return await self.complete_recipe(recipe.id, as_document(task.result_payload))
        return await self.fail_recipe(recipe.id, task.error_message or "")
