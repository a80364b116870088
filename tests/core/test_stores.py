"""SQLite Store 层测试

测试内容：
1. 初始化：WAL 模式与五张表
2. TaskStore 条件更新
3. 写事务回滚
4. 产品/工作流的增删改查与排序
"""

from datetime import UTC, datetime, timedelta

import pytest
from adremix.core.models import AdConceptSubject, Product, Task, TaskStatus, Workflow
from adremix.core.store import StoreGroup, verify_wal_mode
from adremix.core.utils import new_id, to_db_ts


def _product(user_id: str, created_at: datetime, name: str = "Serum") -> Product:
    return Product(
        id=new_id(),
        user_id=user_id,
        name=name,
        sales_url="https://shop.example.com/serum",
        created_at=created_at,
        updated_at=created_at,
    )


def _workflow(user_id: str, created_at: datetime, ads: list | None = None) -> Workflow:
    return Workflow(
        id=new_id(),
        user_id=user_id,
        name="Competitors",
        ads=ads if ads is not None else [{"ad_archive_id": "ad-1"}],
        created_at=created_at,
        updated_at=created_at,
    )


class TestInit:
    async def test_wal_mode_enabled(self, store_group: StoreGroup):
        assert await verify_wal_mode(store_group.conn) is True

    async def test_tables_created(self, store_group: StoreGroup):
        cursor = await store_group.conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table'"
        )
        names = {row["name"] for row in await cursor.fetchall()}
        assert {"tasks", "ad_concepts", "ad_recipes", "products", "workflows"} <= names


class TestTaskStore:
    @staticmethod
    def _task(task_id: str) -> Task:
        now = datetime.now(UTC)
        return Task(
            task_id=task_id,
            local_id=new_id(),
            subject=AdConceptSubject(ad_archive_id="ad-1"),
            created_at=now,
            updated_at=now,
        )

    async def test_insert_or_ignore(self, store_group: StoreGroup):
        task = self._task("task-1")
        async with store_group.transaction():
            assert await store_group.task_store.insert_task(task) is True
            assert await store_group.task_store.insert_task(task) is False

    async def test_conditional_update(self, store_group: StoreGroup):
        store = store_group.task_store
        async with store_group.transaction():
            await store.insert_task(self._task("task-1"))

        later = to_db_ts(datetime.now(UTC) + timedelta(seconds=1))
        async with store_group.transaction():
            applied = await store.update_status_if_allowed(
                "task-1",
                TaskStatus.COMPLETED,
                {TaskStatus.PENDING, TaskStatus.PROCESSING},
                result_payload={"headline": "X"},
                error_message=None,
                updated_at=later,
            )
        assert applied is True

        async with store_group.transaction():
            applied_again = await store.update_status_if_allowed(
                "task-1",
                TaskStatus.FAILED,
                {TaskStatus.PENDING, TaskStatus.PROCESSING},
                result_payload=None,
                error_message="late",
                updated_at=later,
            )
        assert applied_again is False

        stored = await store.get_task("task-1")
        assert stored is not None
        assert stored.status == TaskStatus.COMPLETED
        assert stored.result_payload == {"headline": "X"}

    async def test_empty_predecessors_never_apply(self, store_group: StoreGroup):
        async with store_group.transaction():
            await store_group.task_store.insert_task(self._task("task-1"))
            applied = await store_group.task_store.update_status_if_allowed(
                "task-1",
                TaskStatus.PENDING,
                set(),
                result_payload=None,
                error_message=None,
                updated_at=to_db_ts(datetime.now(UTC)),
            )
        assert applied is False


class TestTransaction:
    async def test_rollback_on_error(self, store_group: StoreGroup):
        product = _product("user-1", datetime.now(UTC))
        with pytest.raises(RuntimeError):
            async with store_group.transaction():
                await store_group.product_store.create_product(product)
                raise RuntimeError("boom")

        assert await store_group.product_store.get_product(product.id) is None


class TestProductStore:
    async def test_list_newest_first(self, store_group: StoreGroup):
        now = datetime.now(UTC)
        old = _product("user-1", now - timedelta(minutes=5), name="Old")
        new = _product("user-1", now, name="New")
        foreign = _product("user-2", now)
        async with store_group.transaction():
            for p in (old, new, foreign):
                await store_group.product_store.create_product(p)

        products = await store_group.product_store.list_for_user("user-1")
        assert [p.name for p in products] == ["New", "Old"]


class TestWorkflowStore:
    async def test_update_keeps_unspecified_fields(self, store_group: StoreGroup):
        now = datetime.now(UTC)
        wf = _workflow("user-1", now)
        store = store_group.workflow_store
        async with store_group.transaction():
            await store.create_workflow(wf)

        async with store_group.transaction():
            assert await store.update_workflow(
                wf.id,
                name="Renamed",
                ads=None,
                updated_at=to_db_ts(now + timedelta(seconds=1)),
            )

        stored = await store.get_workflow(wf.id)
        assert stored is not None
        assert stored.name == "Renamed"
        assert stored.ads == [{"ad_archive_id": "ad-1"}]
        assert stored.updated_at > wf.updated_at

    async def test_delete(self, store_group: StoreGroup):
        wf = _workflow("user-1", datetime.now(UTC))
        store = store_group.workflow_store
        async with store_group.transaction():
            await store.create_workflow(wf)
        async with store_group.transaction():
            assert await store.delete_workflow(wf.id) is True
            assert await store.delete_workflow(wf.id) is False
        assert await store.get_workflow(wf.id) is None
        assert await store.list_for_user("user-1") == []
