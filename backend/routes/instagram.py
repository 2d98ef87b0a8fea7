"""Instagram data routes: cache-fronted Graph API aggregates.

GET  /api/instagram/profile            account + profile
GET  /api/instagram/media              media list with per-post insights
GET  /api/instagram/stories            active stories with per-story insights
GET  /api/instagram/insights           last 30 days of account insights
GET  /api/instagram/audience           audience breakdowns (alias: /demographics)
POST /api/instagram/cache/invalidate   drop cached aggregates for the caller (alias: /sync)
POST /api/instagram/insights/sync      pull N days of insights into the store
POST /api/instagram/custom             uncached passthrough of a relative Graph path
GET  /api/instagram/cache/stats        the caller's cached keys
"""

import logging

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field

from deps import get_aggregator, get_cache, require_user_id
from services.aggregator import DEFAULT_INSIGHT_DAYS, RESOURCES, Aggregator, cache_key
from services.cache import TTLCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/instagram")


class InsightsSyncRequest(BaseModel):
    days: int = Field(DEFAULT_INSIGHT_DAYS, ge=7, le=365)


class CustomRequest(BaseModel):
    endpoint: str = Field(min_length=2, max_length=500)


@router.get("/profile")
async def profile(
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    return await aggregator.profile(user_id)


@router.get("/media")
async def media(
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    return await aggregator.media(user_id)


@router.get("/stories")
async def stories(
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    return await aggregator.stories(user_id)


@router.get("/insights")
async def insights(
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    return await aggregator.insights(user_id)


@router.get("/audience")
@router.get("/demographics")
async def audience(
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    return await aggregator.demographics(user_id)


@router.post("/cache/invalidate")
@router.post("/sync")
async def invalidate(
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    """Force the next aggregate reads to go back to Instagram."""
    removed = aggregator.invalidate(user_id)
    return {"ok": True, "invalidated": removed}


@router.post("/insights/sync")
async def sync_insights(
    body: InsightsSyncRequest | None = Body(None),
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    days = body.days if body else DEFAULT_INSIGHT_DAYS
    synced = await aggregator.sync_insights(user_id, days)
    return {"synced": synced}


@router.post("/custom")
async def custom(
    body: CustomRequest,
    user_id: str = Depends(require_user_id),
    aggregator: Aggregator = Depends(get_aggregator),
) -> dict:
    return {"endpoint": body.endpoint, "data": await aggregator.custom(user_id, body.endpoint)}


@router.get("/cache/stats")
async def cache_stats(
    user_id: str = Depends(require_user_id),
    cache: TTLCache = Depends(get_cache),
) -> dict:
    """Cache diagnostics limited to the caller's own keys."""
    owned = {cache_key(resource, user_id) for resource in RESOURCES}
    keys = [key for key in cache.stats()["keys"] if key in owned]
    return {"size": len(keys), "keys": keys}
