"""广告概念路由

POST /ad-concepts: 为选中的广告提取概念
GET /ad-concepts: 按 adIds 或 ids 读取概念（经状态对账）
GET /ad-concepts/{concept_id}: 单个概念
GET /ad-concepts/{concept_id}/stream: SSE 推送概念状态直到终态
"""

import asyncio
import json

from adremix.core.config import SSE_HEARTBEAT_INTERVAL
from adremix.core.creative_store import CreativeStore
from adremix.core.models import Concept
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sse_starlette.sse import EventSourceResponse

from ..deps import (
    get_concept_service,
    get_creatives,
    get_current_user,
    get_reconciler,
    get_relay,
    get_update_hub,
)
from ..services.concept_service import ConceptService
from ..services.reconciler import StateReconciler
from ..services.stream_relay import StreamRelay
from ..services.update_hub import TaskUpdate, UpdateHub

router = APIRouter()


class ExtractConceptsRequest(BaseModel):
    """概念提取请求体"""

    model_config = ConfigDict(populate_by_name=True)

    ad_ids: list[str] = Field(alias="adIds", min_length=1, description="广告 ID 列表")


def _split_ids(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    return [part.strip() for part in raw.split(",") if part.strip()]


def concept_stream_payload(concept: Concept, update: TaskUpdate | None = None) -> str:
    """浏览器 SSE data：{id, task_id, status, concept_json, error}"""
    status = concept.status
    error = concept.error_message
    if update is not None and not update.final:
        status = update.task.status
    return json.dumps(
        {
            "id": concept.id,
            "task_id": concept.task_id,
            "status": status,
            "concept_json": concept.concept_json,
            "error": error,
        },
        ensure_ascii=False,
    )


@router.post("/ad-concepts")
async def extract_concepts(
    body: ExtractConceptsRequest,
    user_id: str = Depends(get_current_user),
    service: ConceptService = Depends(get_concept_service),
):
    concepts = await service.extract_concepts(user_id, body.ad_ids)
    return {
        "success": True,
        "concepts": [c.model_dump(mode="json") for c in concepts],
    }


@router.get("/ad-concepts")
async def list_concepts(
    ad_ids: str | None = Query(default=None, alias="adIds", description="逗号分隔的广告 ID"),
    ids: str | None = Query(default=None, description="逗号分隔的概念 ID（保持请求顺序）"),
    user_id: str = Depends(get_current_user),
    reconciler: StateReconciler = Depends(get_reconciler),
):
    concept_ids = _split_ids(ids)
    if concept_ids is not None:
        concepts = await reconciler.load_concepts(user_id, concept_ids)
    else:
        concepts = await reconciler.load_concepts_for_ads(user_id, _split_ids(ad_ids))
    return {"concepts": [c.model_dump(mode="json") for c in concepts]}


@router.get("/ad-concepts/{concept_id}")
async def get_concept(
    concept_id: str,
    user_id: str = Depends(get_current_user),
    reconciler: StateReconciler = Depends(get_reconciler),
):
    concept = await reconciler.load_concept(user_id, concept_id)
    return {"concept": concept.model_dump(mode="json")}


@router.get("/ad-concepts/{concept_id}/stream")
async def stream_concept(
    concept_id: str,
    user_id: str = Depends(get_current_user),
    reconciler: StateReconciler = Depends(get_reconciler),
    creatives: CreativeStore = Depends(get_creatives),
    relay: StreamRelay = Depends(get_relay),
    hub: UpdateHub = Depends(get_update_hub),
):
    """SSE 概念状态流

    1. 先订阅 UpdateHub，再读取当前行，避免漏掉两者之间的更新
    2. 推送当前状态；已终态时立即结束
    3. 实时推送更新，终态时推送落盘后的概念并结束
    4. 心跳时经 StateReconciler 重新读取概念（必要时恢复订阅），终态即推送并结束
    """
    concept = await reconciler.load_concept(user_id, concept_id)
    task_id = concept.task_id

    async def event_generator():
        queue = await hub.subscribe(task_id)
        relay.acquire(task_id)
        try:
            current = await creatives.get_concept(concept_id) or concept
            yield {"data": concept_stream_payload(current)}
            if current.is_terminal:
                return

            while True:
                try:
                    update: TaskUpdate = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    # 心跳保活 + 兜底重读（hub 消息可能被丢弃），中继已退出时重新订阅
                    yield {"comment": "heartbeat"}
                    latest = await reconciler.load_concept(user_id, concept_id)
                    if latest.is_terminal:
                        yield {"data": concept_stream_payload(latest)}
                        return
                    continue

                if update.final:
                    latest = await creatives.get_concept(concept_id) or current
                    yield {"data": concept_stream_payload(latest)}
                    return
                yield {"data": concept_stream_payload(current, update)}
        finally:
            relay.release(task_id)
            await hub.unsubscribe(task_id, queue)

    return EventSourceResponse(event_generator())
