"""CreativeStore 测试

测试内容：
1. 概念终态只写一次，并发终态写入只有一个生效
2. 按 ID 批量查询对任意请求顺序都保持该顺序
3. 配方输入校验：存在性、归属、概念就绪
4. finalize_from_task 将 Task 结果写入关联实体
"""

import asyncio
import itertools
from datetime import UTC, datetime

import pytest
from adremix.core.creative_store import ALREADY_TERMINAL, CreativeStore
from adremix.core.exceptions import (
    EntityNotFoundError,
    InvalidInputError,
    OwnershipError,
    RecipeInputsNotReadyError,
)
from adremix.core.models import (
    AdConceptSubject,
    AdRecipeSubject,
    Product,
    Task,
    TaskStatus,
)
from adremix.core.store import StoreGroup
from adremix.core.utils import new_id
from structlog.testing import capture_logs

USER = "user-1"
OTHER = "user-2"


async def _insert_product(store_group: StoreGroup, user_id: str = USER) -> Product:
    now = datetime.now(UTC)
    product = Product(
        id=new_id(),
        user_id=user_id,
        name="Serum",
        sales_url="https://shop.example.com/serum",
        details_json={"price": "29.00"},
        created_at=now,
        updated_at=now,
    )
    async with store_group.transaction():
        await store_group.product_store.create_product(product)
    return product


async def _completed_concept(creatives: CreativeStore, ad_id: str, user_id: str = USER):
    concept = await creatives.create_pending_concept(ad_id, f"task-{ad_id}", user_id)
    return await creatives.complete_concept(concept.id, {"headline": ad_id})


class TestConceptLifecycle:
    async def test_pending_concept_created(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept(
            "486517397763120", "task-1", USER, page_name="Glow Labs"
        )
        assert concept.status == TaskStatus.PENDING
        assert concept.concept_json == {}
        assert concept.page_name == "Glow Labs"

        found = await creatives.find_concept_by_task("task-1")
        assert found is not None and found.id == concept.id

    async def test_complete_concept(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)
        done = await creatives.complete_concept(concept.id, {"headline": "X"})
        assert done.status == TaskStatus.COMPLETED
        assert done.concept_json == {"headline": "X"}
        assert done.error_message is None
        assert done.updated_at > concept.updated_at

    async def test_fail_keeps_empty_document(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)
        failed = await creatives.fail_concept(concept.id, "boom")
        assert failed.status == TaskStatus.FAILED
        assert failed.error_message == "boom"
        assert failed.concept_json == {}

    async def test_second_finalize_is_ignored(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)
        await creatives.complete_concept(concept.id, {"headline": "X"})

        with capture_logs() as logs:
            stored = await creatives.fail_concept(concept.id, "late failure")

        assert stored.status == TaskStatus.COMPLETED
        assert stored.concept_json == {"headline": "X"}
        events = [e for e in logs if e["event"] == "concept_already_terminal"]
        assert len(events) == 1
        assert events[0]["code"] == ALREADY_TERMINAL

    async def test_concurrent_finalize_single_winner(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)

        with capture_logs() as logs:
            results = await asyncio.gather(
                creatives.complete_concept(concept.id, {"headline": "A"}),
                creatives.fail_concept(concept.id, "B"),
            )

        stored = await creatives.get_concept(concept.id)
        assert stored is not None and stored.is_terminal
        assert all(r.status == stored.status for r in results)
        finalized = [e for e in logs if e["event"] == "concept_finalized"]
        ignored = [e for e in logs if e["event"] == "concept_already_terminal"]
        assert len(finalized) == 1
        assert len(ignored) == 1

    async def test_concurrent_complete_keeps_winner_payload(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)
        payloads = [{"headline": "A"}, {"headline": "B"}]

        with capture_logs() as logs:
            results = await asyncio.gather(
                *(creatives.complete_concept(concept.id, p) for p in payloads)
            )

        stored = await creatives.get_concept(concept.id)
        assert stored is not None and stored.status == TaskStatus.COMPLETED
        assert stored.concept_json in payloads
        # 落败方返回的是胜出方已写入的行
        assert [r.concept_json for r in results] == [stored.concept_json] * 2
        assert len([e for e in logs if e["event"] == "concept_finalized"]) == 1
        ignored = [e for e in logs if e["event"] == "concept_already_terminal"]
        assert len(ignored) == 1
        assert ignored[0]["stored_status"] == TaskStatus.COMPLETED

        again = await creatives.complete_concept(concept.id, {"headline": "C"})
        assert again.concept_json == stored.concept_json

    async def test_finalize_unknown_concept(self, creatives: CreativeStore):
        with pytest.raises(EntityNotFoundError):
            await creatives.complete_concept("missing", {})


class TestConceptQueries:
    async def test_list_by_ids_preserves_request_order(self, creatives: CreativeStore):
        a = await creatives.create_pending_concept("ad-a", "task-a", USER)
        b = await creatives.create_pending_concept("ad-b", "task-b", USER)
        c = await creatives.create_pending_concept("ad-c", "task-c", USER)

        result = await creatives.list_concepts_by_ids([c.id, "missing", a.id, b.id])
        assert [x.id for x in result] == [c.id, a.id, b.id]

    async def test_list_by_ids_any_permutation(self, creatives: CreativeStore):
        created = [
            await creatives.create_pending_concept(f"ad-{i}", f"task-{i}", USER)
            for i in range(3)
        ]
        ids = [c.id for c in created] + ["missing"]

        for order in itertools.permutations(ids):
            result = await creatives.list_concepts_by_ids(list(order))
            assert [x.id for x in result] == [i for i in order if i != "missing"]

    async def test_list_concepts_newest_first_and_scoped(self, creatives: CreativeStore):
        first = await creatives.create_pending_concept("ad-a", "task-a", USER)
        second = await creatives.create_pending_concept("ad-b", "task-b", USER)
        await creatives.create_pending_concept("ad-c", "task-c", OTHER)

        mine = await creatives.list_concepts(USER)
        assert [c.id for c in mine] == [second.id, first.id]

        filtered = await creatives.list_concepts(USER, ["ad-a"])
        assert [c.id for c in filtered] == [first.id]
        assert await creatives.list_concepts(USER, []) == []

    async def test_latest_concept_for_ad(self, creatives: CreativeStore):
        await creatives.create_pending_concept("ad-a", "task-1", USER)
        newer = await creatives.create_pending_concept("ad-a", "task-2", USER)
        latest = await creatives.latest_concept_for_ad(USER, "ad-a")
        assert latest is not None and latest.id == newer.id
        assert await creatives.latest_concept_for_ad(OTHER, "ad-a") is None


class TestRecipeInputs:
    async def test_create_recipe_from_completed_concepts(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group)
        c1 = await _completed_concept(creatives, "ad-1")
        c2 = await _completed_concept(creatives, "ad-2")

        recipe = await creatives.create_recipe(
            USER, "Spring", [c2.id, c1.id], product.id, {"prompt_text": "..."}
        )
        assert recipe.status == TaskStatus.COMPLETED
        assert recipe.concept_ids == [c2.id, c1.id]
        stored = await creatives.get_recipe(recipe.id)
        assert stored is not None and stored.concept_ids == [c2.id, c1.id]

    async def test_rejects_pending_concept(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group)
        ready = await _completed_concept(creatives, "ad-1")
        pending = await creatives.create_pending_concept("ad-2", "task-2", USER)

        with pytest.raises(RecipeInputsNotReadyError) as exc_info:
            await creatives.create_recipe(USER, "R", [ready.id, pending.id], product.id, {})
        assert exc_info.value.pending_ids == [pending.id]
        assert await creatives.list_recipes(USER) == []

    async def test_rejects_failed_concept(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group)
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)
        await creatives.fail_concept(concept.id, "boom")

        with pytest.raises(RecipeInputsNotReadyError):
            await creatives.check_recipe_inputs(USER, [concept.id], product.id)

    async def test_rejects_foreign_concept(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group)
        foreign = await _completed_concept(creatives, "ad-1", user_id=OTHER)
        with pytest.raises(OwnershipError):
            await creatives.check_recipe_inputs(USER, [foreign.id], product.id)

    async def test_rejects_foreign_product(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group, user_id=OTHER)
        concept = await _completed_concept(creatives, "ad-1")
        with pytest.raises(OwnershipError):
            await creatives.check_recipe_inputs(USER, [concept.id], product.id)

    async def test_rejects_missing_entities(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group)
        concept = await _completed_concept(creatives, "ad-1")
        with pytest.raises(EntityNotFoundError):
            await creatives.check_recipe_inputs(USER, [concept.id, "missing"], product.id)
        with pytest.raises(EntityNotFoundError):
            await creatives.check_recipe_inputs(USER, [concept.id], "missing")

    async def test_rejects_empty_concept_list(self, creatives: CreativeStore):
        with pytest.raises(InvalidInputError):
            await creatives.check_recipe_inputs(USER, [], "p1")


class TestFinalizeFromTask:
    @staticmethod
    def _task(task_id: str, subject, status: TaskStatus, **outcome) -> Task:
        now = datetime.now(UTC)
        return Task(
            task_id=task_id,
            local_id=new_id(),
            subject=subject,
            status=status,
            created_at=now,
            updated_at=now,
            **outcome,
        )

    async def test_completed_task_completes_concept(self, creatives: CreativeStore):
        concept = await creatives.create_pending_concept("ad-1", "task-1", USER)
        task = self._task(
            "task-1",
            AdConceptSubject(ad_archive_id="ad-1"),
            TaskStatus.COMPLETED,
            result_payload={"headline": "X"},
        )
        result = await creatives.finalize_from_task(task)
        assert result is not None and result.id == concept.id
        assert result.status == TaskStatus.COMPLETED
        assert result.concept_json == {"headline": "X"}

    async def test_non_mapping_result_is_wrapped(self, creatives: CreativeStore):
        await creatives.create_pending_concept("ad-1", "task-1", USER)
        task = self._task(
            "task-1",
            AdConceptSubject(ad_archive_id="ad-1"),
            TaskStatus.COMPLETED,
            result_payload=["a", "b"],
        )
        result = await creatives.finalize_from_task(task)
        assert result is not None
        assert result.concept_json == {"result": ["a", "b"]}

    async def test_failed_task_fails_recipe(
        self, creatives: CreativeStore, store_group: StoreGroup
    ):
        product = await _insert_product(store_group)
        concept = await _completed_concept(creatives, "ad-1")
        recipe = await creatives.create_pending_recipe(
            USER, "R", [concept.id], product.id, "task-r", {"prompt_text": "draft"}
        )
        task = self._task(
            "task-r",
            AdRecipeSubject(concept_ids=[concept.id], product_id=product.id),
            TaskStatus.FAILED,
            error_message="upstream exploded",
        )
        result = await creatives.finalize_from_task(task)
        assert result is not None and result.id == recipe.id
        assert result.status == TaskStatus.FAILED
        assert result.error_message == "upstream exploded"
        assert result.prompt_json == {"prompt_text": "draft"}

    async def test_active_task_is_skipped(self, creatives: CreativeStore):
        await creatives.create_pending_concept("ad-1", "task-1", USER)
        task = self._task("task-1", AdConceptSubject(ad_archive_id="ad-1"), TaskStatus.PROCESSING)
        assert await creatives.finalize_from_task(task) is None

    async def test_unlinked_task_logs(self, creatives: CreativeStore):
        task = self._task(
            "orphan",
            AdConceptSubject(ad_archive_id="ad-1"),
            TaskStatus.FAILED,
            error_message="x",
        )
        with capture_logs() as logs:
            assert await creatives.finalize_from_task(task) is None
        assert any(e["event"] == "task_has_no_linked_entity" for e in logs)
