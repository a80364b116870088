"""CatalogService -- 产品与抓取工作流的增删改查

两类数据都只归属单个用户，读写前校验归属。
"""

from typing import Any

import aiosqlite
import structlog
from adremix.core.exceptions import (
    EntityNotFoundError,
    InvalidInputError,
    OwnershipError,
    StoreError,
)
from adremix.core.models import JsonDocument, Product, Workflow
from adremix.core.store import StoreGroup
from adremix.core.utils import advance, new_id, to_db_ts, utcnow

log = structlog.get_logger()


class CatalogService:
    """产品 / 工作流业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    # ============================================================
    # Product
    # ============================================================

    async def create_product(
        self,
        user_id: str,
        sales_url: str,
        name: str | None = None,
        details_json: JsonDocument | None = None,
    ) -> Product:
        if not sales_url or not sales_url.strip():
            raise InvalidInputError("Sales URL is required")
        now = utcnow()
        product = Product(
            id=new_id(),
            user_id=user_id,
            name=name or f"Product {now.date().isoformat()}",
            sales_url=sales_url.strip(),
            details_json=details_json or {},
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._stores.transaction():
                await self._stores.product_store.create_product(product)
        except aiosqlite.Error as e:
            raise StoreError("Failed to create product", entity_id=product.id) from e
        log.info("product_created", product_id=product.id)
        return product

    async def get_product(self, user_id: str, product_id: str) -> Product:
        product = await self._stores.product_store.get_product(product_id)
        if product is None:
            raise EntityNotFoundError("Product", product_id)
        if product.user_id != user_id:
            raise OwnershipError("Product", product_id)
        return product

    async def list_products(self, user_id: str) -> list[Product]:
        return await self._stores.product_store.list_for_user(user_id)

    # ============================================================
    # Workflow
    # ============================================================

    async def create_workflow(
        self,
        user_id: str,
        ads: list[dict[str, Any]],
        name: str | None = None,
    ) -> Workflow:
        now = utcnow()
        workflow = Workflow(
            id=new_id(),
            user_id=user_id,
            name=name or f"Workflow {now.date().isoformat()}",
            ads=ads,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._stores.transaction():
                await self._stores.workflow_store.create_workflow(workflow)
        except aiosqlite.Error as e:
            raise StoreError("Failed to create workflow", entity_id=workflow.id) from e
        log.info("workflow_created", workflow_id=workflow.id, ad_count=len(ads))
        return workflow

    async def get_workflow(self, user_id: str, workflow_id: str) -> Workflow:
        workflow = await self._stores.workflow_store.get_workflow(workflow_id)
        if workflow is None:
            raise EntityNotFoundError("Workflow", workflow_id)
        if workflow.user_id != user_id:
            raise OwnershipError("Workflow", workflow_id)
        return workflow

    async def list_workflows(self, user_id: str) -> list[Workflow]:
        return await self._stores.workflow_store.list_for_user(user_id)

    async def update_workflow(
        self,
        user_id: str,
        workflow_id: str,
        *,
        name: str | None = None,
        ads: list[dict[str, Any]] | None = None,
    ) -> Workflow:
        current = await self.get_workflow(user_id, workflow_id)
        try:
            async with self._stores.transaction():
                await self._stores.workflow_store.update_workflow(
                    workflow_id,
                    name=name,
                    ads=ads,
                    updated_at=to_db_ts(advance(current.updated_at)),
                )
        except aiosqlite.Error as e:
            raise StoreError("Failed to update workflow", entity_id=workflow_id) from e
        return await self.get_workflow(user_id, workflow_id)

    async def delete_workflow(self, user_id: str, workflow_id: str) -> None:
        await self.get_workflow(user_id, workflow_id)
        try:
            async with self._stores.transaction():
                await self._stores.workflow_store.delete_workflow(workflow_id)
        except aiosqlite.Error as e:
            raise StoreError("Failed to delete workflow", entity_id=workflow_id) from e
        log.info("workflow_deleted", workflow_id=workflow_id)
