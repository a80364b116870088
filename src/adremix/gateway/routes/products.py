"""产品路由"""

from adremix.core.models import JsonDocument
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_catalog_service, get_current_user
from ..services.catalog_service import CatalogService

router = APIRouter()


class CreateProductRequest(BaseModel):
    """产品创建请求体"""

    name: str | None = Field(default=None, description="产品名称，缺省按日期生成")
    sales_url: str = Field(min_length=1, description="销售页 URL")
    details_json: JsonDocument | None = Field(default=None, description="销售页属性")


@router.get("/products")
async def list_products(
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    products = await catalog.list_products(user_id)
    return {"products": [p.model_dump(mode="json") for p in products]}


@router.post("/products")
async def create_product(
    body: CreateProductRequest,
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    product = await catalog.create_product(
        user_id, body.sales_url, name=body.name, details_json=body.details_json
    )
    return {"success": True, "product": product.model_dump(mode="json")}


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    user_id: str = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    product = await catalog.get_product(user_id, product_id)
    return {"product": product.model_dump(mode="json")}
