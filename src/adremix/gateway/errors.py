"""异常 -> HTTP 错误映射

所有错误统一返回 {"error": {"code": str, "message": str}}，
不允许堆栈或内部异常细节穿透到 API。
"""

import aiosqlite
import structlog
from adremix.core.exceptions import (
    AdRemixError,
    AuthenticationError,
    EntityNotFoundError,
    InvalidInputError,
    OwnershipError,
    RecipeInputsNotReadyError,
    StoreError,
)
from adremix.jobservice import (
    JobServiceError,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

log = structlog.get_logger()

# 领域异常 -> HTTP 状态码（按 MRO 顺序匹配，子类在前）
_DOMAIN_STATUS: list[tuple[type[AdRemixError], int]] = [
    (AuthenticationError, 401),
    (OwnershipError, 403),
    (EntityNotFoundError, 404),
    (RecipeInputsNotReadyError, 400),
    (InvalidInputError, 400),
    (StoreError, 500),
]

# 上游异常 -> (HTTP 状态码, 错误码)
_UPSTREAM_STATUS: list[tuple[type[JobServiceError], int, str]] = [
    (UpstreamTimeout, 504, "UPSTREAM_TIMEOUT"),
    (UpstreamUnavailable, 502, "UPSTREAM_UNAVAILABLE"),
    (UpstreamRejected, 502, "UPSTREAM_REJECTED"),
]


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def _handle_domain_error(request: Request, exc: AdRemixError) -> JSONResponse:
    status_code = next(
        (status for cls, status in _DOMAIN_STATUS if isinstance(exc, cls)), 500
    )
    if status_code >= 500:
        log.error(
            "request_failed",
            code=exc.code,
            error=str(exc),
            task_id=getattr(exc, "task_id", None),
            entity_id=getattr(exc, "entity_id", None),
        )
        return error_response(status_code, exc.code, "Internal storage error")
    log.info("request_rejected", code=exc.code, status_code=status_code)
    return error_response(status_code, exc.code, str(exc))


async def _handle_upstream_error(request: Request, exc: JobServiceError) -> JSONResponse:
    status_code, code = next(
        ((status, code) for cls, status, code in _UPSTREAM_STATUS if isinstance(exc, cls)),
        (502, "UPSTREAM_ERROR"),
    )
    log.warning(
        "upstream_request_failed",
        code=code,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    if isinstance(exc, UpstreamUnavailable):
        message = "Job service is unreachable"
    else:
        message = str(exc)
    return error_response(status_code, code, message)


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        details.append(f"{loc}: {err.get('msg', 'invalid')}" if loc else err.get("msg", "invalid"))
    return error_response(400, "INVALID_INPUT", "; ".join(details) or "Invalid request")


async def _handle_store_failure(request: Request, exc: aiosqlite.Error) -> JSONResponse:
    log.error("database_error", error_type=type(exc).__name__, error=str(exc))
    return error_response(500, "STORE_ERROR", "Internal storage error")


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    log.error("unhandled_exception", error_type=type(exc).__name__, error=str(exc))
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    """注册所有异常处理器"""
    app.add_exception_handler(AdRemixError, _handle_domain_error)
    app.add_exception_handler(JobServiceError, _handle_upstream_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(aiosqlite.Error, _handle_store_failure)
    app.add_exception_handler(Exception, _handle_unexpected)
