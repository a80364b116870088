"""JobServiceConfig -- Job Service 配置加载

从环境变量加载配置，不硬编码服务地址。
"""

import os

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

DEFAULT_SUBMIT_TIMEOUT_S = 30.0
DEFAULT_STREAM_IDLE_TIMEOUT_S = 120.0


class JobServiceConfig(BaseModel):
    """Job Service 配置 -- 从环境变量加载

    环境变量:
        ADREMIX_JOB_SERVICE_URL: 服务地址（默认 http://localhost:3006）
        ADREMIX_JOB_SERVICE_KEY: Bearer 访问密钥（可选）
        ADREMIX_JOB_SUBMIT_TIMEOUT_S: 提交任务超时（秒，默认 30）
        ADREMIX_STREAM_IDLE_TIMEOUT_S: 状态流空闲超时（秒，默认 120）
    """

    base_url: str = Field(
        default="http://localhost:3006",
        description="Job Service 基础 URL",
    )
    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer 访问密钥，为空时不发送 Authorization 头",
    )
    submit_timeout_s: float = Field(
        default=DEFAULT_SUBMIT_TIMEOUT_S,
        gt=0,
        description="提交任务超时（秒）",
    )
    stream_idle_timeout_s: float = Field(
        default=DEFAULT_STREAM_IDLE_TIMEOUT_S,
        gt=0,
        description="状态流两次事件之间允许的最长间隔（秒）",
    )


def _read_positive_float(env_var: str, fallback: float) -> float | None:
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        parsed = float(val)
    except ValueError:
        parsed = -1.0
    if parsed <= 0:
        log.warning(
            "invalid_timeout_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        # 使用默认值，不阻塞启动
        return None
    return parsed


def load_job_service_config() -> JobServiceConfig:
    """从环境变量加载 Job Service 配置

    Returns:
        JobServiceConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("ADREMIX_JOB_SERVICE_URL"):
        kwargs["base_url"] = val

    if val := os.environ.get("ADREMIX_JOB_SERVICE_KEY"):
        kwargs["api_key"] = SecretStr(val)

    submit = _read_positive_float("ADREMIX_JOB_SUBMIT_TIMEOUT_S", DEFAULT_SUBMIT_TIMEOUT_S)
    if submit is not None:
        kwargs["submit_timeout_s"] = submit

    idle = _read_positive_float("ADREMIX_STREAM_IDLE_TIMEOUT_S", DEFAULT_STREAM_IDLE_TIMEOUT_S)
    if idle is not None:
        kwargs["stream_idle_timeout_s"] = idle

    return JobServiceConfig(**kwargs)
