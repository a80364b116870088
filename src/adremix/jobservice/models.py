"""数据模型 -- JobKind + SubmitJobResult + StatusEvent

只校验编排逻辑依赖的字段（status / result / error），其余字段透传忽略。
"""

import json
from enum import StrEnum
from typing import Any

from adremix.core.models import TaskStatus
from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator


class JobKind(StrEnum):
    """外部任务类型，取值为提交端点路径"""

    EXTRACT_AD_CONCEPT = "/api/v1/extract-ad-concept"
    GENERATE_AD_RECIPE = "/api/v1/generate-ad-recipe"


class SubmitJobResult(BaseModel):
    """提交任务的响应"""

    model_config = ConfigDict(extra="ignore")

    task_id: str = Field(min_length=1, description="外部任务 ID")
    status: TaskStatus | None = Field(default=None, description="提交时的状态")
    message: str | None = Field(default=None, description="服务端附带信息")


class StatusEvent(BaseModel):
    """状态流中的一条事件"""

    model_config = ConfigDict(extra="ignore")

    event: str = Field(default="message", description="SSE 事件名")
    status: TaskStatus = Field(description="任务状态")
    result: JsonValue | None = Field(default=None, description="completed 时的结果")
    error: str | None = Field(default=None, description="failed 时的错误信息")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value, ensure_ascii=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)
