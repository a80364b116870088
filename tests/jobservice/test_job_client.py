"""JobServiceClient 单元测试（httpx.MockTransport 模拟上游）

测试内容：
1. submit_job：成功、超时、不可达、非 2xx、缺少 task_id
2. open_status_stream：解析事件、跳过畸形帧、中途断开
3. fetch_status / fetch_result / health_check
"""

import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest
from adremix.core.models import TaskStatus
from adremix.jobservice import (
    JobKind,
    JobServiceClient,
    MalformedStatusEvent,
    StreamClosedPrematurely,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from adremix.jobservice.client import parse_status_frame
from adremix.jobservice.sse import SseFrame
from structlog.testing import capture_logs

BASE_URL = "http://jobs.test"


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> JobServiceClient:
    return JobServiceClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _sse_body(*frames: tuple[str, object]) -> bytes:
    chunks = []
    for event, data in frames:
        payload = data if isinstance(data, str) else json.dumps(data)
        chunks.append(f"event: {event}\ndata: {payload}\n\n")
    return "".join(chunks).encode()


class _BrokenStream(httpx.AsyncByteStream):
    """先输出若干字节，然后模拟连接中断（或其他读取错误）"""

    def __init__(self, prefix: bytes, error: Exception | None = None) -> None:
        self._prefix = prefix
        self._error = error or httpx.ReadError("connection reset by peer")

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield self._prefix
        raise self._error


class TestSubmitJob:
    async def test_success(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"task_id": "t-1", "status": "pending", "extra": 1})

        client = _client(handler, api_key="sk-test")
        result = await client.submit_job(
            JobKind.EXTRACT_AD_CONCEPT, {"image_url": "https://x/a.jpg", "type": "image"}
        )
        await client.aclose()

        assert result.task_id == "t-1"
        assert result.status == TaskStatus.PENDING
        assert seen[0].url.path == "/api/v1/extract-ad-concept"
        assert seen[0].headers["Authorization"] == "Bearer sk-test"
        assert json.loads(seen[0].content) == {"image_url": "https://x/a.jpg", "type": "image"}

    async def test_no_authorization_without_key(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"task_id": "t-1"})

        client = _client(handler)
        await client.submit_job(JobKind.GENERATE_AD_RECIPE, {})
        await client.aclose()
        assert "Authorization" not in seen[0].headers
        assert seen[0].url.path == "/api/v1/generate-ad-recipe"

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler, submit_timeout_s=3)
        with capture_logs() as logs, pytest.raises(UpstreamTimeout) as exc_info:
            await client.submit_job(JobKind.EXTRACT_AD_CONCEPT, {})
        await client.aclose()
        assert exc_info.value.timeout_s == 3
        assert any(e["event"] == "job_service_timeout" for e in logs)

    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await client.submit_job(JobKind.EXTRACT_AD_CONCEPT, {})
        await client.aclose()
        assert exc_info.value.base_url == BASE_URL

    async def test_non_2xx_rejected(self):
        client = _client(lambda request: httpx.Response(500, text="internal"))
        with pytest.raises(UpstreamRejected) as exc_info:
            await client.submit_job(JobKind.EXTRACT_AD_CONCEPT, {})
        await client.aclose()
        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "internal"

    @pytest.mark.parametrize(
        "body",
        [{"status": "pending"}, {"task_id": ""}, ["t-1"]],
    )
    async def test_missing_task_id_rejected(self, body):
        client = _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(UpstreamRejected):
            await client.submit_job(JobKind.EXTRACT_AD_CONCEPT, {})
        await client.aclose()

    async def test_non_json_body_rejected(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamRejected):
            await client.submit_job(JobKind.EXTRACT_AD_CONCEPT, {})
        await client.aclose()


class TestStatusStream:
    async def test_yields_parsed_events(self):
        body = _sse_body(
            ("update", {"status": "processing"}),
            ("update", {"status": "COMPLETED", "result": {"headline": "X"}}),
        )
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, content=body, headers={"content-type": "text/event-stream"}
            )

        client = _client(handler)
        events = [e async for e in client.open_status_stream("t-1")]
        await client.aclose()

        assert seen[0].url.path == "/api/v1/tasks/t-1/stream"
        assert seen[0].headers["Accept"] == "text/event-stream"
        assert [e.status for e in events] == [TaskStatus.PROCESSING, TaskStatus.COMPLETED]
        assert events[1].result == {"headline": "X"}
        assert events[1].is_terminal
        assert events[0].event == "update"

    async def test_malformed_frames_skipped(self):
        body = _sse_body(
            ("update", "not json"),
            ("update", ["array"]),
            ("update", {"status": "exploded"}),
            ("update", {"status": "failed", "error": {"code": 42}}),
        )
        client = _client(lambda request: httpx.Response(200, content=body))
        with capture_logs() as logs:
            events = [e async for e in client.open_status_stream("t-1")]
        await client.aclose()

        assert len(events) == 1
        assert events[0].status == TaskStatus.FAILED
        assert events[0].error == '{"code": 42}'
        reasons = [e["reason"] for e in logs if e["event"] == "malformed_status_event"]
        assert reasons == ["invalid_json", "not_an_object", "invalid_fields"]

    async def test_open_rejected(self):
        client = _client(lambda request: httpx.Response(404, text="no such task"))
        with pytest.raises(UpstreamRejected) as exc_info:
            async for _ in client.open_status_stream("t-1"):
                pass
        await client.aclose()
        assert exc_info.value.status_code == 404

    async def test_open_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        with pytest.raises(UpstreamUnavailable):
            async for _ in client.open_status_stream("t-1"):
                pass
        await client.aclose()

    async def test_connection_lost_mid_stream(self):
        prefix = _sse_body(("update", {"status": "processing"}))
        client = _client(
            lambda request: httpx.Response(200, stream=_BrokenStream(prefix))
        )
        received = []
        with pytest.raises(StreamClosedPrematurely) as exc_info:
            async for event in client.open_status_stream("t-1"):
                received.append(event)
        await client.aclose()

        assert [e.status for e in received] == [TaskStatus.PROCESSING]
        assert exc_info.value.task_id == "t-1"
        assert str(exc_info.value).startswith("StreamClosedPrematurely:")

    async def test_decoding_error_mid_stream(self):
        """非传输层的 httpx 错误同样映射为 StreamClosedPrematurely"""
        prefix = _sse_body(("update", {"status": "processing"}))
        client = _client(
            lambda request: httpx.Response(
                200, stream=_BrokenStream(prefix, httpx.DecodingError("corrupt gzip"))
            )
        )
        with pytest.raises(StreamClosedPrematurely) as exc_info:
            async for _ in client.open_status_stream("t-1"):
                pass
        await client.aclose()

        assert "DecodingError" in exc_info.value.reason

    async def test_decoding_error_before_open(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.DecodingError("bad response head", request=request)

        client = _client(handler)
        with pytest.raises(UpstreamUnavailable):
            async for _ in client.open_status_stream("t-1"):
                pass
        await client.aclose()


class TestPolling:
    async def test_fetch_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/tasks/t-1/status"
            return httpx.Response(200, json={"status": "Processing"})

        client = _client(handler)
        event = await client.fetch_status("t-1")
        await client.aclose()
        assert event.status == TaskStatus.PROCESSING

    async def test_fetch_status_malformed(self):
        client = _client(lambda request: httpx.Response(200, json={"state": "done"}))
        with pytest.raises(MalformedStatusEvent):
            await client.fetch_status("t-1")
        await client.aclose()

    async def test_fetch_result_unwraps(self):
        client = _client(
            lambda request: httpx.Response(200, json={"result": {"headline": "X"}})
        )
        assert await client.fetch_result("t-1") == {"headline": "X"}
        await client.aclose()

    async def test_fetch_result_plain_body(self):
        client = _client(lambda request: httpx.Response(200, json={"headline": "X"}))
        assert await client.fetch_result("t-1") == {"headline": "X"}
        await client.aclose()


class TestHealthCheck:
    async def test_healthy(self):
        client = _client(lambda request: httpx.Response(200, json={"status": "ok"}))
        assert await client.health_check() is True
        await client.aclose()

    async def test_unhealthy_status(self):
        client = _client(lambda request: httpx.Response(503))
        assert await client.health_check() is False
        await client.aclose()

    async def test_unreachable_never_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        assert await client.health_check() is False
        await client.aclose()


class TestParseStatusFrame:
    def test_frame_event_name_carried(self):
        event = parse_status_frame("t-1", SseFrame(event="status", data='{"status": "pending"}'))
        assert event is not None
        assert event.event == "status"
        assert event.status == TaskStatus.PENDING
