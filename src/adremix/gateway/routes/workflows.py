"""抓取工作流路由 -- 完整增删改查"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_catalog_service, get_current_user
from ..services.catalog_service import CatalogService

router = APIRouter()


class CreateWorkflowRequest(BaseModel):
    name: str | None = Field(default=None, description="工作流名称，缺省按日期生成")
    ads: list[dict[str, Any]] = Field(default_factory=list, description="抓取到的广告")


class UpdateWorkflowRequest(BaseModel):
    name: str | None = None
    ads: list[dict[str, Any]] | None = None


@router.get("/workflows")
async def list_workflows(
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    workflows = await catalog.list_workflows(user_id)
    return {"workflows": [w.model_dump(mode="json") for w in workflows]}


@router.post("/workflows")
async def create_workflow(
    body: CreateWorkflowRequest,
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    workflow = await catalog.create_workflow(user_id, body.ads, name=body.name)
    return {"success": True, "workflow": workflow.model_dump(mode="json")}


@router.get("/workflows/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    workflow = await catalog.get_workflow(user_id, workflow_id)
    return {"workflow": workflow.model_dump(mode="json")}


@router.put("/workflows/{workflow_id}")
async def update_workflow(
    workflow_id: str,
    body: UpdateWorkflowRequest,
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    workflow = await catalog.update_workflow(
        user_id, workflow_id, name=body.name, ads=body.ads
    )
    return {"success": True, "workflow": workflow.model_dump(mode="json")}


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    await catalog.delete_workflow(user_id, workflow_id)
    return {"success": True}
