"""结构化文档类型

concept_json / prompt_json / details_json 的上游结构不固定，
统一建模为 JSON 映射树，只校验核心逻辑实际依赖的字段。
"""

from typing import Any

from pydantic import JsonValue

JsonDocument = dict[str, JsonValue]


def as_document(value: Any) -> JsonDocument:
    """将任意 JSON 结果规整为文档映射

    - None -> {}
    - dict -> 原样返回
    - 其他标量/数组 -> {"result": value}
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    return {"result": value}
