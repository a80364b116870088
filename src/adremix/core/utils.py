"""ID 与时间戳工具"""

import json
from datetime import UTC, datetime, timedelta
from typing import Any

from ulid import ULID


def new_id() -> str:
    """生成本地 UUID（由 ULID 转换，保持时间有序）"""
    return str(ULID().to_uuid())


def utcnow() -> datetime:
    return datetime.now(UTC)


def advance(previous: datetime, now: datetime | None = None) -> datetime:
    """返回严格晚于 previous 的时间戳（时钟未前进时补 1 微秒）"""
    now = now or utcnow()
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def to_db_ts(value: datetime) -> str:
    """定宽 ISO-8601 字符串，字典序即时间序"""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def to_db_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def from_db_json(value: str | None, default: Any = None) -> Any:
    if value is None or value == "":
        return default
    return json.loads(value)
