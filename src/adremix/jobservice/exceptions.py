"""Job Service 异常体系

所有上游错误都在客户端内部被转换为以下类型，
gateway 边界再统一映射为 502 / 504。
"""


class JobServiceError(Exception):
    """Job Service 包基础异常"""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UpstreamUnavailable(JobServiceError):
    """Job Service 不可达（连接失败、DNS 解析失败等）"""

    def __init__(self, base_url: str, original_error: Exception) -> None:
        """
        Args:
            base_url: 尝试连接的服务地址
            original_error: 原始异常
        """
        super().__init__(f"Job service unreachable: {base_url} -- {original_error}")
        self.base_url = base_url
        self.original_error = original_error


class UpstreamTimeout(JobServiceError):
    """请求在超时时间内没有完成"""

    def __init__(self, operation: str, timeout_s: float) -> None:
        super().__init__(f"Job service {operation} timed out after {timeout_s}s")
        self.operation = operation
        self.timeout_s = timeout_s


class UpstreamRejected(JobServiceError):
    """Job Service 返回非 2xx，或 2xx 响应缺少必需字段"""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Job service rejected request: HTTP {status_code} {body[:200]}")
        self.status_code = status_code
        self.body = body


class StreamClosedPrematurely(JobServiceError):
    """状态流在终态事件之前中断（连接断开或空闲超时）"""

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(f"StreamClosedPrematurely: {reason}")
        self.task_id = task_id
        self.reason = reason


class MalformedStatusEvent(JobServiceError):
    """状态响应无法解析（非 JSON、缺少或未知 status）"""

    def __init__(self, task_id: str, detail: str) -> None:
        super().__init__(f"Malformed status payload for task {task_id}: {detail}")
        self.task_id = task_id
        self.detail = detail
