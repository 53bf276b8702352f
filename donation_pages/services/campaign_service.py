from __future__ import annotations
import json
import logging
import os
from typing import Any

import redis

from donation_pages.models.blocks import Block, blocks_from_document, layout_document
from donation_pages.models.campaign import Campaign, MediaItem, Progress
from donation_pages.services.gateway import ApiClient
from donation_pages.utils.errors import ApiError
from donation_pages.utils.page_layout import validate_layout

logger = logging.getLogger(__name__)

PROGRESS_CACHE_TTL = int(os.getenv("PROGRESS_CACHE_TTL", "30"))


def get_public_campaign(api: ApiClient, campaign_id: str) -> Campaign:
    return Campaign.from_api(api.get_json("campaign_public", id=campaign_id) or {})


def get_progress(api: ApiClient, campaign_id: str, cache=None) -> Progress:
    """Campaign progress, cached for PROGRESS_CACHE_TTL seconds when a cache is given."""
    key = f"campaign:{campaign_id}:progress:v1"
    use_cache = cache is not None and PROGRESS_CACHE_TTL > 0
    if use_cache:
        try:
            cached = cache.get(key)
        except redis.RedisError as e:
            logger.warning("[progress] cache read failed: %s", e)
            cached = None
        if cached:
            return Progress.from_api(json.loads(cached))
    data = api.get_json("campaign_progress", id=campaign_id) or {}
    if use_cache:
        try:
            cache.setex(key, PROGRESS_CACHE_TTL, json.dumps(data, default=str))
        except redis.RedisError as e:
            logger.warning("[progress] cache write failed: %s", e)
    return Progress.from_api(data)


def list_media(api: ApiClient, campaign_id: str) -> list[MediaItem]:
    data = api.get_json("campaign_media", id=campaign_id)
    if not isinstance(data, list):
        return []
    items = [MediaItem.from_api(d) for d in data]
    return [m for m in items if m is not None]


def get_page_layout(api: ApiClient, campaign_id: str) -> list[Block]:
    data = api.get_json("page_layout", id=campaign_id) or {}
    return blocks_from_document(data.get("page_layout") if isinstance(data, dict) else None)


def save_page_layout(api: ApiClient, campaign_id: str, blocks: list[Block]) -> list[Block]:
    """Validate locally, then persist in the {"blocks": [...]} envelope."""
    doc = layout_document(blocks)
    ok, err = validate_layout(doc["blocks"])
    if not ok:
        raise ApiError(err, status_code=400)
    data = api.put_json("page_layout", {"page_layout": doc}, id=campaign_id) or {}
    saved = data.get("page_layout") if isinstance(data, dict) else None
    logger.info("[layout] saved campaign=%s blocks=%d", campaign_id, len(blocks))
    return blocks_from_document(saved) if saved is not None else blocks
