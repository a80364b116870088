"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + Job Service 客户端 + 中继恢复 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from adremix import __version__
from adremix.core.config import get_db_path
from adremix.core.creative_store import CreativeStore
from adremix.core.registry import TaskRegistry
from adremix.core.store import StoreGroup, create_store_group
from adremix.jobservice import JobServiceClient, load_job_service_config
from fastapi import FastAPI

from .deps import HeaderUserProvider, UserProvider
from .errors import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import concepts, health, products, recipes, tasks, workflows
from .services.catalog_service import CatalogService
from .services.concept_service import ConceptService
from .services.reconciler import StateReconciler
from .services.recipe_service import RecipeService
from .services.stream_relay import StreamRelay
from .services.update_hub import UpdateHub

log = structlog.get_logger()


def init_app_state(
    app: FastAPI,
    store_group: StoreGroup,
    job_client: JobServiceClient,
    *,
    stream_idle_timeout_s: float = 120.0,
    user_provider: UserProvider | None = None,
) -> None:
    """组装全部组件并挂到 app.state（lifespan 与测试共用）"""
    registry = TaskRegistry(store_group)
    creatives = CreativeStore(store_group)
    hub = UpdateHub()
    relay = StreamRelay(
        job_client,
        registry,
        creatives,
        hub,
        idle_timeout_s=stream_idle_timeout_s,
    )
    reconciler = StateReconciler(registry, creatives, relay, job_client, hub)
    concept_service = ConceptService(store_group, registry, creatives, job_client, reconciler)

    app.state.store_group = store_group
    app.state.job_client = job_client
    app.state.registry = registry
    app.state.creatives = creatives
    app.state.update_hub = hub
    app.state.relay = relay
    app.state.reconciler = reconciler
    app.state.concept_service = concept_service
    app.state.recipe_service = RecipeService(
        registry, creatives, job_client, relay, concept_service
    )
    app.state.catalog_service = CatalogService(store_group)
    app.state.user_provider = user_provider or HeaderUserProvider()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化并恢复未完成任务，关闭时清理订阅与连接"""
    # 启动：初始化 Store
    store_group = await create_store_group(get_db_path())

    job_config = load_job_service_config()
    job_client = JobServiceClient.from_config(job_config)
    init_app_state(
        app,
        store_group,
        job_client,
        stream_idle_timeout_s=job_config.stream_idle_timeout_s,
    )
    log.info(
        "job_service_client_initialized",
        base_url=job_config.base_url,
        submit_timeout_s=job_config.submit_timeout_s,
        stream_idle_timeout_s=job_config.stream_idle_timeout_s,
    )

    # 恢复进程退出前未完成的任务订阅
    await app.state.reconciler.resume_pending()

    yield

    # 关闭：取消订阅 + 清理连接
    await app.state.relay.shutdown()
    await job_client.aclose()
    await store_group.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="AdRemix Gateway",
        version=__version__,
        description="广告概念提取与配方生成的任务编排 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire()

    register_exception_handlers(app)

    # 注册路由
    app.include_router(concepts.router, tags=["ad-concepts"])
    app.include_router(recipes.router, tags=["ad-recipes"])
    app.include_router(products.router, tags=["products"])
    app.include_router(workflows.router, tags=["workflows"])
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(health.router, tags=["health"])

    return app

