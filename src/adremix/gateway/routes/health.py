"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性；profile=upstream 时探测 Job Service。
"""

import aiosqlite
import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="检查配置文件：core（默认）仅核心检查；upstream 包含 Job Service 健康检查",
    ),
):
    """Readiness 检查 -- 验证核心依赖可用性

    profile 参数:
        - None / "core": 仅核心检查，job_service="skipped"
        - "upstream": 核心检查 + Job Service 真实健康检查

    检查项：
    1. sqlite: 数据库连通性
    2. job_service: 根据 profile 决定是否探测
    3. active_subscriptions: 当前中继订阅数
    """
    effective_profile = profile or "core"

    checks: dict = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except (aiosqlite.Error, ValueError) as e:
        log.warning("readiness_sqlite_failed", error_type=type(e).__name__)
        checks["sqlite"] = "unavailable"
        all_ok = False

    # 2. Job Service 健康检查
    if effective_profile == "upstream":
        job_client = getattr(request.app.state, "job_client", None)
        if job_client is not None and await job_client.health_check():
            checks["job_service"] = "ok"
        else:
            checks["job_service"] = "unreachable"
            all_ok = False
    else:
        checks["job_service"] = "skipped"

    # 3. 中继订阅数
    relay = getattr(request.app.state, "relay", None)
    checks["active_subscriptions"] = len(relay.active_task_ids()) if relay else 0

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "profile": effective_profile,
            "checks": checks,
        },
    )
