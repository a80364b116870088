"""广告配方路由

POST /ad-recipes: 用模板直接组装配方（completed）
POST /ad-recipes/generate: 提交外部生成任务（pending）
GET /ad-recipes, GET /ad-recipes/{recipe_id}
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..deps import get_current_user, get_reconciler, get_recipe_service
from ..services.reconciler import StateReconciler
from ..services.recipe_service import RecipeService

router = APIRouter()


class RecipeRequest(BaseModel):
    """配方请求体"""

    model_config = ConfigDict(populate_by_name=True)

    concept_ids: list[str] = Field(alias="conceptIds", description="有序的概念 ID 列表")
    product_id: str = Field(alias="productId", min_length=1, description="产品 ID")
    name: str = Field(min_length=1, description="配方名称")


@router.post("/ad-recipes")
async def create_recipe(
    body: RecipeRequest,
    user_id: str = Depends(get_current_user),
    service: RecipeService = Depends(get_recipe_service),
):
    recipe = await service.create_recipe(user_id, body.name, body.concept_ids, body.product_id)
    return {"success": True, "recipe": recipe.model_dump(mode="json")}


@router.post("/ad-recipes/generate")
async def generate_recipe(
    body: RecipeRequest,
    user_id: str = Depends(get_current_user),
    service: RecipeService = Depends(get_recipe_service),
):
    recipe = await service.generate_recipe(
        user_id, body.name, body.concept_ids, body.product_id
    )
    return {"success": True, "recipe": recipe.model_dump(mode="json")}


@router.get("/ad-recipes")
async def list_recipes(
    user_id: str = Depends(get_current_user),
    reconciler: StateReconciler = Depends(get_reconciler),
):
    recipes = await reconciler.load_recipes(user_id)
    return {"recipes": [r.model_dump(mode="json") for r in recipes]}


@router.get("/ad-recipes/{recipe_id}")
async def get_recipe(
    recipe_id: str,
    user_id: str = Depends(get_current_user),
    reconciler: StateReconciler = Depends(get_reconciler),
):
    recipe = await reconciler.load_recipe(user_id, recipe_id)
    return {"recipe": recipe.model_dump(mode="json")}
