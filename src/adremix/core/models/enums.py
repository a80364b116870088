"""枚举定义 -- 任务状态机与任务主体类型

包含 TaskStatus 状态机、SubjectKind 枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """任务状态机，取值与外部任务服务保持一致"""

    # 活跃状态
    PENDING = "pending"
    PROCESSING = "processing"

    # 终态
    COMPLETED = "completed"
    FAILED = "failed"


# 合法状态流转：只允许向前推进
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {
        TaskStatus.PROCESSING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
    },
    TaskStatus.PROCESSING: {
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
    },
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
}

ACTIVE_STATES: set[TaskStatus] = {
    TaskStatus.PENDING,
    TaskStatus.PROCESSING,
}


class SubjectKind(StrEnum):
    """任务主体类型"""

    AD_CONCEPT = "ad_concept"
    AD_RECIPE = "ad_recipe"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def allowed_predecessors(to_status: TaskStatus) -> set[TaskStatus]:
    """返回可以流转到 to_status 的所有前置状态（用于条件更新子句）"""
    return {
        from_status
        for from_status, targets in VALID_TRANSITIONS.items()
        if to_status in targets
    }
