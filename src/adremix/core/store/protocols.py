"""Store Protocol 接口定义

定义各表 Store 的抽象接口，使用 Python Protocol 实现结构化子类型（duck typing），
其他后端实现这些接口即可替换 SQLite。
"""

from typing import Any, Protocol

from ..models.entities import Concept, Product, Recipe, Workflow
from ..models.enums import TaskStatus
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def insert_task(self, task: Task) -> bool:
        """插入任务；task_id 已存在时忽略并返回 False"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        ...

    async def list_tasks(self, status: str | None = None) -> list[Task]:
        """查询任务列表，按 created_at 正序"""
        ...

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
        """条件更新（compare-and-set）"""
        ...


class ConceptStore(Protocol):
    """Concept 存储接口"""

    async def create_concept(self, concept: Concept) -> None: ...

    async def get_concept(self, concept_id: str) -> Concept | None: ...

    async def get_by_task_id(self, task_id: str) -> Concept | None: ...

    async def list_by_ids(self, concept_ids: list[str]) -> list[Concept]:
        """按请求顺序返回"""
        ...

    async def list_for_user(
        self,
        user_id: str,
        ad_archive_ids: list[str] | None = None,
    ) -> list[Concept]: ...

    async def latest_for_ad(self, user_id: str, ad_archive_id: str) -> Concept | None: ...

    async def finalize_if_active(
        self,
        concept_id: str,
        status: TaskStatus,
        *,
        concept_json: dict | None,
        error_message: str | None,
        updated_at: str,
    ) -> bool: ...


class RecipeStore(Protocol):
    """Recipe 存储接口"""

    async def create_recipe(self, recipe: Recipe) -> None: ...

    async def get_recipe(self, recipe_id: str) -> Recipe | None: ...

    async def get_by_task_id(self, task_id: str) -> Recipe | None: ...

    async def list_for_user(self, user_id: str) -> list[Recipe]: ...

    async def finalize_if_active(
        self,
        recipe_id: str,
        status: TaskStatus,
        *,
        prompt_json: dict | None,
        error_message: str | None,
        updated_at: str,
    ) -> bool: ...


class ProductStore(Protocol):
    """Product 存储接口（核心层只读）"""

    async def create_product(self, product: Product) -> None: ...

    async def get_product(self, product_id: str) -> Product | None: ...

    async def list_for_user(self, user_id: str) -> list[Product]: ...


class WorkflowStore(Protocol):
    """Workflow 存储接口"""

    async def create_workflow(self, workflow: Workflow) -> None: ...

    async def get_workflow(self, workflow_id: str) -> Workflow | None: ...

    async def list_for_user(self, user_id: str) -> list[Workflow]: ...

    async def update_workflow(
        self,
        workflow_id: str,
        *,
        name: str | None,
        ads: list[dict[str, Any]] | None,
        updated_at: str,
    ) -> bool: ...

    async def delete_workflow(self, workflow_id: str) -> bool: ...
