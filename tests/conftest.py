"""全局 pytest 配置 -- 临时 SQLite 数据库 + 假 Job Service 客户端 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
import structlog
from adremix.core.creative_store import CreativeStore
from adremix.core.registry import TaskRegistry
from adremix.core.store import StoreGroup, create_store_group
from fakes import FakeJobClient


@pytest.fixture(autouse=True)
def _reset_structlog(monkeypatch):
    """每个测试使用 structlog 默认配置；setup_logging 不缓存 logger（capture_logs 需要）"""
    monkeypatch.setenv("ADREMIX_LOG_CACHE_LOGGERS", "false")
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def registry(store_group: StoreGroup) -> TaskRegistry:
    return TaskRegistry(store_group)


@pytest_asyncio.fixture
async def creatives(store_group: StoreGroup) -> CreativeStore:
    return CreativeStore(store_group)


@pytest.fixture
def fake_job_client() -> FakeJobClient:
    return FakeJobClient()
