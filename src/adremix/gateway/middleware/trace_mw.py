"""TraceMiddleware -- 实体级追踪

从路径中提取 concept_id / recipe_id / task_id 绑定到 structlog contextvars，
让同一请求内的存储、上游调用日志都带上实体上下文。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# 路径段 -> 绑定的上下文键
_PATH_KEYS = {
    "ad-concepts": "concept_id",
    "ad-recipes": "recipe_id",
    "tasks": "task_id",
}

# 非实体 ID 的子路由
_RESERVED_SEGMENTS = {"generate", "stream", "poll"}


def extract_trace_context(path: str) -> dict[str, str]:
    """从 URL 路径中提取实体 ID"""
    context: dict[str, str] = {}
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts[:-1]):
        key = _PATH_KEYS.get(part)
        candidate = parts[i + 1]
        if key and candidate not in _RESERVED_SEGMENTS:
            context[key] = candidate
    return context


class TraceMiddleware(BaseHTTPMiddleware):
    """实体级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = extract_trace_context(request.url.path)
        if context:
            structlog.contextvars.bind_contextvars(**context)

        return await call_next(request)
