"""中间件 + 日志配置测试

测试内容：
1. 每个响应携带 X-Request-ID，传入时沿用；请求日志绑定用户与耗时
2. 路径中的实体 ID 提取
3. setup_logging 的两种渲染模式与 logger 缓存开关
4. 应用配置日志后模块级 logger 仍可被捕获
"""

import logging

import pytest
import pytest_asyncio
import structlog
from adremix.core.config import get_log_cache_loggers
from adremix.core.models import AdConceptSubject
from adremix.core.utils import new_id
from adremix.gateway.main import create_app, init_app_state
from adremix.gateway.middleware.logging_config import setup_logging
from adremix.gateway.middleware.trace_mw import extract_trace_context
from httpx import ASGITransport, AsyncClient
from structlog.testing import LogCapture, capture_logs


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest_asyncio.fixture
async def test_app(store_group, fake_job_client, monkeypatch):
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    app = create_app()
    # 手动初始化（绕过 lifespan）
    init_app_state(app, store_group, fake_job_client)
    yield app
    await app.state.relay.shutdown()


@pytest_asyncio.fixture
async def client(test_app) -> AsyncClient:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


class TestRequestId:
    async def test_request_id_in_response_header(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        # ULID 格式：26 字符
        assert len(resp.headers["x-request-id"]) == 26

    async def test_request_ids_are_unique(self, client: AsyncClient):
        ids = {(await client.get("/health")).headers["x-request-id"] for _ in range(3)}
        assert len(ids) == 3

    async def test_incoming_request_id_reused(self, client: AsyncClient):
        resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert resp.headers["x-request-id"] == "req-123"

    async def test_error_responses_carry_request_id(self, client: AsyncClient):
        resp = await client.get("/tasks")
        assert resp.status_code == 401
        assert "x-request-id" in resp.headers


class TestRequestLogging:
    async def test_request_context_bound(self, client: AsyncClient):
        cap = LogCapture()
        structlog.configure(processors=[structlog.contextvars.merge_contextvars, cap])

        resp = await client.get(
            "/tasks", headers={"X-User-Id": "user-9", "X-Request-ID": "req-9"}
        )
        assert resp.status_code == 200

        completed = [e for e in cap.entries if e["event"] == "request_completed"]
        assert len(completed) == 1
        assert completed[0]["user_id"] == "user-9"
        assert completed[0]["request_id"] == "req-9"
        assert completed[0]["status_code"] == 200
        assert completed[0]["duration_ms"] >= 0

    async def test_anonymous_request_has_no_user(self, client: AsyncClient):
        cap = LogCapture()
        structlog.configure(processors=[structlog.contextvars.merge_contextvars, cap])

        await client.get("/health")
        started = [e for e in cap.entries if e["event"] == "request_started"]
        assert started and "user_id" not in started[0]


class TestTraceContext:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/ad-concepts/c1", {"concept_id": "c1"}),
            ("/ad-concepts/c1/stream", {"concept_id": "c1"}),
            ("/ad-recipes/generate", {}),
            ("/ad-recipes/r1", {"recipe_id": "r1"}),
            ("/tasks/t1/poll", {"task_id": "t1"}),
            ("/tasks", {}),
            ("/health", {}),
        ],
    )
    def test_extract(self, path: str, expected: dict):
        assert extract_trace_context(path) == expected


class TestSetupLogging:
    def test_json_mode(self):
        setup_logging(log_format="json", log_level="WARNING")
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_dev_mode(self):
        setup_logging(log_format="dev", log_level="DEBUG")
        formatter = logging.getLogger().handlers[0].formatter
        assert isinstance(formatter.processors[-1], structlog.dev.ConsoleRenderer)

    def test_logger_cache_disabled_by_env(self):
        setup_logging(log_format="dev")
        assert structlog.get_config()["cache_logger_on_first_use"] is False

    def test_logger_cache_default(self, monkeypatch):
        monkeypatch.delenv("ADREMIX_LOG_CACHE_LOGGERS")
        assert get_log_cache_loggers() is True
        monkeypatch.setenv("ADREMIX_LOG_CACHE_LOGGERS", "FALSE")
        assert get_log_cache_loggers() is False


class TestModuleLoggers:
    async def test_capturable_after_app_setup(self, client: AsyncClient, registry):
        """create_app 配置日志后，模块级 logger 仍可被多次 capture_logs 捕获"""
        await client.get("/health")
        for task_id in ("t-1", "t-2"):
            with capture_logs() as logs:
                await registry.register(
                    new_id(), AdConceptSubject(ad_archive_id="a"), task_id
                )
            assert any(e["event"] == "task_registered" for e in logs)
