"""SSE 帧解析

把逐行输入（httpx Response.aiter_lines）组装为事件帧：
- 空行分发一帧
- ':' 开头的注释行忽略
- 多行 data 以 '\\n' 连接
- 流结束时仍有未分发的 data 也会分发
"""

from collections.abc import AsyncIterable, AsyncIterator

from pydantic import BaseModel


class SseFrame(BaseModel):
    """一个完整的 SSE 事件帧"""

    event: str = "message"
    data: str = ""
    id: str | None = None


def _split_field(line: str) -> tuple[str, str]:
    name, sep, value = line.partition(":")
    if not sep:
        return line, ""
    if value.startswith(" "):
        value = value[1:]
    return name, value


async def iter_sse_frames(lines: AsyncIterable[str]) -> AsyncIterator[SseFrame]:
    """逐行解析 SSE 流，产出事件帧（没有 data 的帧被丢弃）"""
    event_name = ""
    data_lines: list[str] = []
    event_id: str | None = None

    async for raw in lines:
        line = raw.rstrip("\r\n")
        if line == "":
            if data_lines:
                yield SseFrame(
                    event=event_name or "message",
                    data="\n".join(data_lines),
                    id=event_id,
                )
            event_name = ""
            data_lines = []
            continue
        if line.startswith(":"):
            continue

        name, value = _split_field(line)
        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event_name = value
        elif name == "id":
            event_id = value
        # retry 及未知字段忽略

    if data_lines:
        yield SseFrame(
            event=event_name or "message",
            data="\n".join(data_lines),
            id=event_id,
        )
