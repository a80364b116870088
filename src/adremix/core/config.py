"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、SSE 心跳间隔、当前用户请求头、日志格式等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("ADREMIX_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "ADREMIX_DB_PATH",
        str(_get_base_dir() / "sqlite" / "adremix.db"),
    )


def get_user_header() -> str:
    """获取携带当前用户 ID 的请求头名称"""
    return os.environ.get("ADREMIX_USER_HEADER", "X-User-Id")


def get_log_format() -> str:
    """日志渲染模式：dev / json"""
    return os.environ.get("ADREMIX_LOG_FORMAT", "dev")


def get_log_level() -> str:
    """日志级别"""
    return os.environ.get("ADREMIX_LOG_LEVEL", "INFO")


def get_log_cache_loggers() -> bool:
    """是否在首次使用时缓存 logger"""
    return os.environ.get("ADREMIX_LOG_CACHE_LOGGERS", "true").lower() != "false"


# 浏览器 SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("ADREMIX_SSE_HEARTBEAT_INTERVAL", "15")
)

# 浏览器侧订阅队列容量，超过后该订阅者被丢弃
UPDATE_QUEUE_MAXSIZE: int = int(
    os.environ.get("ADREMIX_UPDATE_QUEUE_MAXSIZE", "100")
)

# 配方 prompt 中单个 JSON 片段的缩进
PROMPT_JSON_INDENT: int = 2
