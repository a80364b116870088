"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

所有实例通过 app.state 管理，在 lifespan（或测试）中由 init_app_state 初始化。
"""

from typing import Protocol

import structlog
from adremix.core.config import get_user_header
from adremix.core.creative_store import CreativeStore
from adremix.core.exceptions import AuthenticationError
from adremix.core.registry import TaskRegistry
from adremix.core.store import StoreGroup
from adremix.jobservice import JobServiceClient
from fastapi import Request

from .services.catalog_service import CatalogService
from .services.concept_service import ConceptService
from .services.reconciler import StateReconciler
from .services.recipe_service import RecipeService
from .services.stream_relay import StreamRelay
from .services.update_hub import UpdateHub


class UserProvider(Protocol):
    """当前用户解析接口（会话机制的可替换实现）"""

    def current_user(self, request: Request) -> str | None: ...


class HeaderUserProvider:
    """从请求头读取当前用户 ID"""

    def __init__(self, header_name: str | None = None) -> None:
        self.header_name = header_name or get_user_header()

    def current_user(self, request: Request) -> str | None:
        value = request.headers.get(self.header_name, "").strip()
        return value or None


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_registry(request: Request) -> TaskRegistry:
    return request.app.state.registry


def get_creatives(request: Request) -> CreativeStore:
    return request.app.state.creatives


def get_job_client(request: Request) -> JobServiceClient:
    return request.app.state.job_client


def get_update_hub(request: Request) -> UpdateHub:
    return request.app.state.update_hub


def get_relay(request: Request) -> StreamRelay:
    return request.app.state.relay


def get_reconciler(request: Request) -> StateReconciler:
    return request.app.state.reconciler


def get_concept_service(request: Request) -> ConceptService:
    return request.app.state.concept_service


def get_recipe_service(request: Request) -> RecipeService:
    return request.app.state.recipe_service


def get_catalog_service(request: Request) -> CatalogService:
    return request.app.state.catalog_service


async def get_current_user(request: Request) -> str:
    """解析当前用户，没有时返回 401"""
    provider: UserProvider = request.app.state.user_provider
    user_id = provider.current_user(request)
    if not user_id:
        raise AuthenticationError("Authentication required")
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id
