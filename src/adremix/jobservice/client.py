"""JobServiceClient -- 外部 Job Service 调用封装

基于 httpx.AsyncClient：
- submit_job 提交长任务，返回外部 task_id
- open_status_stream 订阅任务状态 SSE 流
- fetch_status / fetch_result 作为轮询兜底
不做任何自动重试。
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog
from pydantic import JsonValue, ValidationError

from .config import JobServiceConfig
from .exceptions import (
    MalformedStatusEvent,
    StreamClosedPrematurely,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .models import JobKind, StatusEvent, SubmitJobResult
from .sse import SseFrame, iter_sse_frames

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5


def parse_status_frame(task_id: str, frame: SseFrame) -> StatusEvent | None:
    """解析一帧状态事件；畸形帧记录日志后返回 None"""
    try:
        data = json.loads(frame.data)
    except json.JSONDecodeError:
        log.warning(
            "malformed_status_event",
            task_id=task_id,
            sse_event=frame.event,
            reason="invalid_json",
        )
        return None
    if not isinstance(data, dict):
        log.warning(
            "malformed_status_event",
            task_id=task_id,
            sse_event=frame.event,
            reason="not_an_object",
        )
        return None
    try:
        return StatusEvent.model_validate({**data, "event": frame.event})
    except ValidationError as e:
        log.warning(
            "malformed_status_event",
            task_id=task_id,
            sse_event=frame.event,
            reason="invalid_fields",
            fields=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
        )
        return None


class JobServiceClient:
    """外部 Job Service 客户端"""

    def __init__(
        self,
        base_url: str = "http://localhost:3006",
        api_key: str = "",
        submit_timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """初始化客户端

        Args:
            base_url: Job Service 基础 URL
            api_key: Bearer 访问密钥，为空时不发送 Authorization 头
            submit_timeout_s: 提交与轮询请求超时（秒）
            transport: 自定义传输层（测试时注入 httpx.MockTransport）
        """
        self._base_url = base_url.rstrip("/")
        self._submit_timeout_s = submit_timeout_s
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=submit_timeout_s,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: JobServiceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "JobServiceClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key.get_secret_value(),
            submit_timeout_s=config.submit_timeout_s,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def submit_job(self, kind: JobKind, payload: dict[str, Any]) -> SubmitJobResult:
        """提交任务

        Args:
            kind: 任务类型（决定提交端点）
            payload: 请求体

        Returns:
            SubmitJobResult，包含外部 task_id

        Raises:
            UpstreamTimeout: 超过 submit_timeout_s
            UpstreamUnavailable: 连接失败
            UpstreamRejected: 非 2xx，或响应缺少 task_id
        """
        log.debug("job_submit_start", kind=kind.name)
        resp = await self._request("POST", kind.value, operation="submit_job", json=payload)
        body = self._json_body(resp)
        if not isinstance(body, dict) or not body.get("task_id"):
            raise UpstreamRejected(resp.status_code, resp.text)
        try:
            result = SubmitJobResult.model_validate(body)
        except ValidationError as e:
            raise UpstreamRejected(resp.status_code, resp.text) from e
        log.info("job_submitted", kind=kind.name, task_id=result.task_id)
        return result

    async def open_status_stream(self, task_id: str) -> AsyncIterator[StatusEvent]:
        """订阅任务状态流

        上游正常关闭时迭代直接结束，由调用方判断是否提前关闭。

        Raises:
            UpstreamTimeout: 建立连接超时
            UpstreamUnavailable: 无法建立连接
            UpstreamRejected: 打开流时返回非 2xx
            StreamClosedPrematurely: 读取过程中连接中断
        """
        path = f"/api/v1/tasks/{task_id}/stream"
        opened = False
        try:
            async with self._client.stream(
                "GET",
                path,
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self._submit_timeout_s, read=None),
            ) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise UpstreamRejected(resp.status_code, body)
                opened = True
                log.debug("status_stream_opened", task_id=task_id)
                async for frame in iter_sse_frames(resp.aiter_lines()):
                    event = parse_status_frame(task_id, frame)
                    if event is not None:
                        yield event
        except httpx.TimeoutException as e:
            if opened:
                raise StreamClosedPrematurely(task_id, f"read timeout: {e}") from e
            raise UpstreamTimeout("open_status_stream", self._submit_timeout_s) from e
        except httpx.HTTPError as e:
            if opened:
                raise StreamClosedPrematurely(
                    task_id, f"connection lost: {type(e).__name__}: {e}"
                ) from e
            raise UpstreamUnavailable(self._base_url, e) from e

    async def fetch_status(self, task_id: str) -> StatusEvent:
        """轮询任务状态

        Raises:
            MalformedStatusEvent: 响应不是合法的状态对象
        """
        resp = await self._request(
            "GET", f"/api/v1/tasks/{task_id}/status", operation="fetch_status"
        )
        body = self._json_body(resp)
        if not isinstance(body, dict):
            raise MalformedStatusEvent(task_id, "response is not an object")
        try:
            return StatusEvent.model_validate({**body, "event": "status"})
        except ValidationError as e:
            raise MalformedStatusEvent(task_id, str(e.errors()[0]["msg"])) from e

    async def fetch_result(self, task_id: str) -> JsonValue:
        """获取任务结果；响应为 {"result": ...} 时解包"""
        resp = await self._request(
            "GET", f"/api/v1/tasks/{task_id}/result", operation="fetch_result"
        )
        body = self._json_body(resp)
        if isinstance(body, dict) and "result" in body:
            return body["result"]
        return body

    async def health_check(self) -> bool:
        """检查 Job Service 可达性

        Returns:
            True 如果服务可达且返回 2xx

        注意: 此方法不抛出异常，所有异常内部捕获并返回 False。
        """
        try:
            resp = await self._client.get("/health", timeout=HEALTH_CHECK_TIMEOUT_S)
            return resp.is_success
        except httpx.HTTPError as e:
            log.debug("job_service_health_check_failed", error=str(e))
            return False

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """发送请求并把 httpx 异常映射为 JobServiceError"""
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("job_service_timeout", operation=operation, path=path)
            raise UpstreamTimeout(operation, self._submit_timeout_s) from e
        except httpx.HTTPError as e:
            log.warning(
                "job_service_unreachable",
                operation=operation,
                path=path,
                error_type=type(e).__name__,
            )
            raise UpstreamUnavailable(self._base_url, e) from e

        if not resp.is_success:
            log.warning(
                "job_service_rejected",
                operation=operation,
                path=path,
                status_code=resp.status_code,
            )
            raise UpstreamRejected(resp.status_code, resp.text)
        return resp

    @staticmethod
    def _json_body(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamRejected(resp.status_code, resp.text) from e
