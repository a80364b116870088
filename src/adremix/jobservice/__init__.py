"""AdRemix Job Service 包 -- 外部任务服务客户端

公共接口从此入口导入。
"""

from .client import JobServiceClient, parse_status_frame
from .config import JobServiceConfig, load_job_service_config
from .exceptions import (
    JobServiceError,
    MalformedStatusEvent,
    StreamClosedPrematurely,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from .models import JobKind, StatusEvent, SubmitJobResult
from .sse import SseFrame, iter_sse_frames

__all__ = [
    # 客户端
    "JobServiceClient",
    "parse_status_frame",
    # 配置
    "JobServiceConfig",
    "load_job_service_config",
    # 数据模型
    "JobKind",
    "StatusEvent",
    "SubmitJobResult",
    "SseFrame",
    "iter_sse_frames",
    # 异常
    "JobServiceError",
    "UpstreamUnavailable",
    "UpstreamTimeout",
    "UpstreamRejected",
    "StreamClosedPrematurely",
    "MalformedStatusEvent",
]
