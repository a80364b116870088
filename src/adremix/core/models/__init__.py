"""AdRemix Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .document import JsonDocument, as_document
from .entities import Concept, Product, Recipe, Workflow
from .enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    SubjectKind,
    TaskStatus,
    allowed_predecessors,
    validate_transition,
)
from .task import AdConceptSubject, AdRecipeSubject, SubjectRef, Task

__all__ = [
    # 枚举
    "TaskStatus",
    "SubjectKind",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "ACTIVE_STATES",
    "validate_transition",
    "allowed_predecessors",
    # Task
    "Task",
    "SubjectRef",
    "AdConceptSubject",
    "AdRecipeSubject",
    # 实体
    "Concept",
    "Recipe",
    "Product",
    "Workflow",
    # 文档
    "JsonDocument",
    "as_document",
]
