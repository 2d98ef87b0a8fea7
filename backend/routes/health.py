"""Health and readiness check routes."""

import asyncio
import logging

from fastapi import APIRouter, Depends

from config import settings
from deps import get_cache, get_store
from services.cache import TTLCache
from services.store import Store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check, no external calls."""
    return {"status": "ok", "service": "wrapped-api", "commit": settings.git_sha}


@router.get("/health")
async def health(
    store: Store = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
) -> dict:
    """Deep health check that pings the database."""
    db_up = await asyncio.to_thread(store.ping)
    return {
        "status": "ok",
        "service": "wrapped-api",
        "commit": settings.git_sha,
        "db": "up" if db_up else "down",
        "mock_mode": settings.mock_mode,
        "cache_size": cache.stats()["size"],
    }
