"""ConceptService -- 概念提取请求编排

对选中的每条广告：复用最近一次未失败的概念，否则提交提取任务、
登记 Task、创建 pending 概念，再经 StateReconciler 确保登记与中继订阅。
"""

from typing import Any

import structlog
from adremix.core.creative_store import CreativeStore
from adremix.core.exceptions import EntityNotFoundError, InvalidInputError
from adremix.core.models import AdConceptSubject, Concept, TaskStatus
from adremix.core.registry import TaskRegistry
from adremix.core.store import StoreGroup
from adremix.core.utils import new_id
from adremix.jobservice import JobKind, JobServiceClient

from .reconciler import StateReconciler

log = structlog.get_logger()


def _first_url(entries: Any, *keys: str) -> str | None:
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for key in keys:
            url = entry.get(key)
            if isinstance(url, str) and url:
                return url
    return None


def pick_creative_media(ad: dict[str, Any]) -> tuple[str, str] | None:
    """选出送去分析的素材

    优先级：snapshot.images -> snapshot.cards -> snapshot.videos 的预览图。

    Returns:
        (url, type)，type 为 "image" 或 "video"；没有可用素材时返回 None
    """
    snapshot = ad.get("snapshot") or {}
    if not isinstance(snapshot, dict):
        return None

    image_keys = ("original_image_url", "resized_image_url")
    url = _first_url(snapshot.get("images"), *image_keys)
    if url:
        return url, "image"
    url = _first_url(snapshot.get("cards"), *image_keys)
    if url:
        return url, "image"
    url = _first_url(snapshot.get("videos"), "video_preview_image_url")
    if url:
        return url, "video"
    return None


def ad_archive_id_of(ad: dict[str, Any]) -> str:
    value = ad.get("ad_archive_id")
    return "" if value is None else str(value)


class ConceptService:
    """概念提取业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        registry: TaskRegistry,
        creatives: CreativeStore,
        job_client: JobServiceClient,
        reconciler: StateReconciler,
    ) -> None:
        self._stores = store_group
        self._registry = registry
        self._creatives = creatives
        self._job_client = job_client
        self._reconciler = reconciler

    async def find_user_ads(self, user_id: str) -> dict[str, dict[str, Any]]:
        """汇总用户所有工作流中的广告（ad_archive_id -> 广告），新工作流优先"""
        ads: dict[str, dict[str, Any]] = {}
        for workflow in await self._stores.workflow_store.list_for_user(user_id):
            for ad in workflow.ads:
                ad_id = ad_archive_id_of(ad)
                if ad_id:
                    ads.setdefault(ad_id, ad)
        return ads

    async def extract_concepts(self, user_id: str, ad_ids: list[str]) -> list[Concept]:
        """为选中的广告提取概念

        Returns:
            按请求顺序的概念列表（复用的或新建 pending 的）

        Raises:
            InvalidInputError: ad_ids 为空，或广告没有可分析的素材
            EntityNotFoundError: 用户工作流中没有任何匹配的广告
            JobServiceError: 提交任务失败（之前已创建的概念继续被追踪）
        """
        requested = [a for a in dict.fromkeys(str(a) for a in ad_ids) if a]
        if not requested:
            raise InvalidInputError("adIds is required and must be a non-empty array")

        ads = await self.find_user_ads(user_id)
        selected = [a for a in requested if a in ads]
        if not selected:
            raise EntityNotFoundError("Ad", requested[0])
        skipped = [a for a in requested if a not in ads]
        if skipped:
            log.info("unknown_ads_skipped", ad_archive_ids=skipped)

        concepts: list[Concept] = []
        for ad_id in selected:
            existing = await self._creatives.latest_concept_for_ad(user_id, ad_id)
            if existing is not None and existing.status != TaskStatus.FAILED:
                await self._reconciler.track_concepts([existing])
                concepts.append(existing)
                continue
            concepts.append(await self._submit_extraction(user_id, ads[ad_id]))
        return concepts

    async def _submit_extraction(self, user_id: str, ad: dict[str, Any]) -> Concept:
        ad_id = ad_archive_id_of(ad)
        media = pick_creative_media(ad)
        if media is None:
            raise InvalidInputError(f"Ad {ad_id} has no image or video to analyse")
        media_url, media_type = media

        submitted = await self._job_client.submit_job(
            JobKind.EXTRACT_AD_CONCEPT,
            {"image_url": media_url, "type": media_type},
        )
        await self._registry.register(
            new_id(), AdConceptSubject(ad_archive_id=ad_id), submitted.task_id
        )
        concept = await self._creatives.create_pending_concept(
            ad_id,
            submitted.task_id,
            user_id,
            page_name=str(ad.get("page_name") or ""),
        )
        await self._reconciler.track_concepts([concept])
        return concept
