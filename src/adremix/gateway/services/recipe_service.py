"""RecipeService -- 配方组装与生成

create_recipe 直接用模板组装 prompt_json（completed）；
generate_recipe 提交外部生成任务，配方以 pending 创建，由中继落盘。
"""

import json
from typing import Any

import structlog
from adremix.core.config import PROMPT_JSON_INDENT
from adremix.core.creative_store import CreativeStore
from adremix.core.exceptions import EntityNotFoundError, InvalidInputError
from adremix.core.models import AdRecipeSubject, Concept, JsonDocument, Product, Recipe
from adremix.core.registry import TaskRegistry
from adremix.core.utils import new_id
from adremix.jobservice import JobKind, JobServiceClient

from .concept_service import ConceptService, pick_creative_media
from .stream_relay import StreamRelay

log = structlog.get_logger()

RECIPE_PROMPT_TEMPLATE = """\
You are an expert ad creative designer. Use the following inputs to generate a high-converting Facebook ad image (9:16 format):

Existing Ad Description (JSON):
{ad_concept}

Product Info (JSON):
{product_details}

Creative Instructions:
Format: Facebook Ad (9:16 square)
Design: Follow layout, concept, and ad structure from the ad description JSON.
Visuals: Extract all branding, colors, and product images only from the mockup.
Messaging: Use core messaging and tone from the ad JSON.
CTA: Include if part of the original concept.
Design Quality: Bold, scroll-stopping, mobile-optimized, and visually clean.

Goal: Reimagine the ad concept described in the JSON using the branding and visual identity from the product mockup, resulting in a compelling, brand-aligned Facebook ad creative that maintains proven layout structure and messaging effectiveness."""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=PROMPT_JSON_INDENT, ensure_ascii=False)


def build_recipe_prompt(concepts: list[Concept], product: Product) -> JsonDocument:
    """组装 prompt_json = {ad_concepts, product_details, prompt_text}

    单个概念时模板内嵌该概念本身，多个概念时内嵌概念数组。
    """
    ad_concepts = [c.concept_json for c in concepts]
    ad_concept = ad_concepts[0] if len(ad_concepts) == 1 else ad_concepts
    return {
        "ad_concepts": ad_concepts,
        "product_details": product.details_json,
        "prompt_text": RECIPE_PROMPT_TEMPLATE.format(
            ad_concept=_dump(ad_concept),
            product_details=_dump(product.details_json),
        ),
    }


class RecipeService:
    """配方业务服务"""

    def __init__(
        self,
        registry: TaskRegistry,
        creatives: CreativeStore,
        job_client: JobServiceClient,
        relay: StreamRelay,
        concept_service: ConceptService,
    ) -> None:
        self._registry = registry
        self._creatives = creatives
        self._job_client = job_client
        self._relay = relay
        self._concept_service = concept_service

    async def create_recipe(
        self,
        user_id: str,
        name: str,
        concept_ids: list[str],
        product_id: str,
    ) -> Recipe:
        """用模板直接组装配方"""
        inputs = await self._creatives.check_recipe_inputs(user_id, concept_ids, product_id)
        prompt_json = build_recipe_prompt(*inputs)
        return await self._creatives.create_recipe(
            user_id, name, concept_ids, product_id, prompt_json, inputs=inputs
        )

    async def generate_recipe(
        self,
        user_id: str,
        name: str,
        concept_ids: list[str],
        product_id: str,
    ) -> Recipe:
        """提交外部配方生成任务，返回 pending 配方

        Raises:
            EntityNotFoundError: 首个概念对应的广告已不在用户工作流中
            InvalidInputError: 广告没有可用图片
            JobServiceError: 提交失败
        """
        inputs = await self._creatives.check_recipe_inputs(user_id, concept_ids, product_id)
        concepts, product = inputs
        lead = concepts[0]
        ads = await self._concept_service.find_user_ads(user_id)
        ad = ads.get(lead.ad_archive_id)
        if ad is None:
            raise EntityNotFoundError("Ad", lead.ad_archive_id)
        media = pick_creative_media(ad)
        if media is None:
            raise InvalidInputError(f"Ad {lead.ad_archive_id} has no image to remix")
        image_url = media[0]

        submitted = await self._job_client.submit_job(
            JobKind.GENERATE_AD_RECIPE,
            {
                "ad_archive_id": lead.ad_archive_id,
                "image_url": image_url,
                "sales_url": product.sales_url,
                "user_id": user_id,
            },
        )
        await self._registry.register(
            new_id(),
            AdRecipeSubject(concept_ids=list(concept_ids), product_id=product_id),
            submitted.task_id,
        )
        recipe = await self._creatives.create_pending_recipe(
            user_id,
            name,
            concept_ids,
            product_id,
            submitted.task_id,
            prompt_json=build_recipe_prompt(concepts, product),
            inputs=inputs,
        )
        self._relay.ensure_subscription(submitted.task_id)
        log.info("recipe_generation_submitted", recipe_id=recipe.id, task_id=submitted.task_id)
        return recipe
