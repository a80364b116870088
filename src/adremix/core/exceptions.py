"""Core 异常体系

所有领域异常在 gateway 边界被统一转换为 HTTP 错误码，
不允许内部异常细节穿透到 UI。
"""


class AdRemixError(Exception):
    """核心包基础异常"""

    code: str = "INTERNAL_ERROR"


class InvalidInputError(AdRemixError):
    """请求输入不合法（缺失/非法 ID、URL 等）"""

    code = "INVALID_INPUT"


class AuthenticationError(AdRemixError):
    """没有可识别的当前用户"""

    code = "UNAUTHORIZED"


class OwnershipError(AdRemixError):
    """实体属于其他用户"""

    code = "FORBIDDEN"

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} {entity_id} belongs to a different user")
        self.kind = kind
        self.entity_id = entity_id


class EntityNotFoundError(AdRemixError):
    """实体不存在"""

    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} with id {entity_id} does not exist")
        self.kind = kind
        self.entity_id = entity_id


class TaskNotFoundError(EntityNotFoundError):
    """Task Registry 中没有该 task_id"""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__("Task", task_id)


class RecipeInputsNotReadyError(AdRemixError):
    """配方引用的概念尚未 completed"""

    code = "CONCEPTS_NOT_READY"

    def __init__(self, pending_ids: list[str]) -> None:
        super().__init__(
            "Concepts are not completed yet: " + ", ".join(pending_ids)
        )
        self.pending_ids = pending_ids


class StoreError(AdRemixError):
    """存储层写入/连接失败

    携带 task_id / entity_id 上下文，便于人工对账。
    """

    code = "STORE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        task_id: str | None = None,
        entity_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.entity_id = entity_id
