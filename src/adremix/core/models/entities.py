"""持久化实体模型 -- Concept / Recipe / Product / Workflow

四类行集合均以 UUID 为主键，带 created_at / updated_at 与 user_id 归属。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .document import JsonDocument
from .enums import TERMINAL_STATES, TaskStatus


class Concept(BaseModel):
    """广告创意概念

    提交提取任务后立即以 pending 创建，终态时由 Stream Relay 写入一次。
    """

    id: str
    user_id: str
    ad_archive_id: str
    task_id: str = Field(description="外部任务 ID（反向引用）")
    page_name: str = Field(default="", description="广告所属主页名称")
    status: TaskStatus = TaskStatus.PENDING
    concept_json: JsonDocument = Field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class Recipe(BaseModel):
    """广告配方：概念 + 产品组装成的 prompt 包"""

    id: str
    user_id: str
    name: str
    concept_ids: list[str] = Field(default_factory=list)
    product_id: str
    prompt_json: JsonDocument = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.COMPLETED
    task_id: str | None = Field(default=None, description="由外部服务生成时的任务 ID")
    error_message: str | None = None
    is_generated: bool = Field(default=False, description="图片是否已生成")
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class Product(BaseModel):
    """产品（销售页属性），对核心层只读"""

    id: str
    user_id: str
    name: str
    sales_url: str
    details_json: JsonDocument = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Workflow(BaseModel):
    """抓取工作流：保存一批竞品广告原始数据"""

    id: str
    user_id: str
    name: str
    ads: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
