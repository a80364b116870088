"""Task Domain Model -- 外部任务在本地的登记记录

task_id 由外部任务服务签发，是跨系统关联主键；
local_id 为本地生成的 UUID。
实体（Concept/Recipe）通过自身的 task_id 字段反向引用 Task。
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, JsonValue, model_validator

from .enums import TERMINAL_STATES, TaskStatus


class AdConceptSubject(BaseModel):
    """概念提取任务的主体：一条被抓取的广告"""

    kind: Literal["ad_concept"] = "ad_concept"
    ad_archive_id: str = Field(description="广告库中的广告 ID")


class AdRecipeSubject(BaseModel):
    """配方生成任务的主体：若干概念 + 一个产品"""

    kind: Literal["ad_recipe"] = "ad_recipe"
    concept_ids: list[str] = Field(description="有序的概念 ID 列表")
    product_id: str = Field(description="产品 ID")


SubjectRef = Annotated[
    AdConceptSubject | AdRecipeSubject,
    Field(discriminator="kind"),
]


class Task(BaseModel):
    """Task 数据模型

    终态（completed/failed）之后不再变化；
    result_payload 与 error_message 有且仅有一个在终态被设置。
    """

    task_id: str = Field(description="外部任务服务签发的任务 ID")
    local_id: str = Field(description="本地生成的唯一 ID（UUID）")
    subject: SubjectRef = Field(description="任务主体")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    result_payload: JsonValue | None = Field(
        default=None,
        description="任务结果，仅 completed 时存在",
    )
    error_message: str | None = Field(
        default=None,
        description="错误信息，仅 failed 时存在",
    )
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @model_validator(mode="after")
    def _check_outcome(self) -> "Task":
        has_result = self.result_payload is not None
        has_error = self.error_message is not None
        if self.status == TaskStatus.COMPLETED:
            if not has_result or has_error:
                raise ValueError("completed task must carry result_payload only")
        elif self.status == TaskStatus.FAILED:
            if not has_error or has_result:
                raise ValueError("failed task must carry error_message only")
        elif has_result or has_error:
            raise ValueError(f"{self.status} task cannot carry an outcome")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES
