"""Cache-fronted Instagram aggregates.

Each aggregate (profile, media, stories, insights, demographics) follows the
same path: check the cache, and on a miss resolve the owner's linked
account, fetch from the Graph API (fanning out one insights call per item
where needed), upsert into the store, then cache the assembled response.

Failures on a required fetch propagate and nothing is cached, so the next
request retries the whole path. Failures on a single item's insights are
logged and replaced with zeros.

Cache keys are "<resource>:<owner_id>". The invalidation path deletes by
the same prefix, so keys must only be built through cache_key().

The cache holds its own deep copy of each aggregate and hands out copies on
a hit, so callers can never mutate a cached value.
"""

import asyncio
import copy
import logging
from typing import Awaitable, Callable

from config import settings
from errors import NotLinkedError, UnauthorizedError, UpstreamError
from models import IgAccount
from services.cache import TTLCache
from services.instagram import InstagramClient
from services.store import Store

logger = logging.getLogger(__name__)

RESOURCES = ("profile", "media", "stories", "insights", "demographics")

MEDIA_INSIGHT_DEFAULTS = {"impressions": 0, "reach": 0, "saved": 0, "engagement": 0}
STORY_INSIGHT_DEFAULTS = {"impressions": 0, "reach": 0, "replies": 0, "exits": 0}

DEFAULT_INSIGHT_DAYS = 30

ClientFactory = Callable[[str], InstagramClient]


def cache_key(resource: str, owner_id: str) -> str:
    return f"{resource}:{owner_id}"


def invalidate_owner(
    cache: TTLCache, owner_id: str, resources: tuple[str, ...] = RESOURCES
) -> int:
    """Drop every cached aggregate for owner_id. Does not touch the store."""
    if not owner_id:
        raise UnauthorizedError()
    removed = sum(cache.delete_prefix(cache_key(r, owner_id)) for r in resources)
    logger.info("Invalidated %d cached aggregates for owner %s", removed, owner_id)
    return removed


class Aggregator:
    def __init__(
        self,
        cache: TTLCache,
        store: Store,
        client_factory: ClientFactory = InstagramClient,
        ttl_seconds: float | None = None,
        timeout: float | None = None,
        concurrency: int | None = None,
    ):
        self.cache = cache
        self.store = store
        self.client_factory = client_factory
        self.ttl_seconds = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.timeout = settings.upstream_timeout_seconds if timeout is None else timeout
        self.concurrency = max(1, settings.fanout_concurrency if concurrency is None else concurrency)

    # -- Aggregates ---------------------------------------------------------

    async def profile(self, owner_id: str) -> dict:
        async def build(account: IgAccount, client: InstagramClient) -> dict:
            profile = await self._call(client.fetch_profile())
            return {"account": account.to_dict(), "profile": profile}

        return await self._cached("profile", owner_id, build)

    async def media(self, owner_id: str) -> dict:
        async def build(account: IgAccount, client: InstagramClient) -> dict:
            items = await self._call(client.fetch_media())
            items = await self._with_insights(
                items, client.fetch_media_insights, MEDIA_INSIGHT_DEFAULTS, "media"
            )
            await asyncio.to_thread(self.store.upsert_media, account.id, items)
            return {"count": len(items), "media": items}

        return await self._cached("media", owner_id, build)

    async def stories(self, owner_id: str) -> dict:
        async def build(account: IgAccount, client: InstagramClient) -> dict:
            items = await self._call(client.fetch_stories())
            items = await self._with_insights(
                items, client.fetch_story_insights, STORY_INSIGHT_DEFAULTS, "story"
            )
            await asyncio.to_thread(self.store.upsert_stories, account.id, items)
            return {"count": len(items), "stories": items}

        return await self._cached("stories", owner_id, build)

    async def insights(self, owner_id: str) -> dict:
        async def build(account: IgAccount, client: InstagramClient) -> dict:
            rows = await self._call(client.fetch_account_insights(DEFAULT_INSIGHT_DAYS))
            await asyncio.to_thread(self.store.upsert_daily_insights, account.id, rows)
            return {"days": len(rows), "rows": rows}

        return await self._cached("insights", owner_id, build)

    async def demographics(self, owner_id: str) -> dict:
        async def build(account: IgAccount, client: InstagramClient) -> dict:
            demographics = await self._call(client.fetch_demographics())
            await asyncio.to_thread(self.store.upsert_demographics, account.id, demographics)
            return demographics

        return await self._cached("demographics", owner_id, build)

    # -- Sync ---------------------------------------------------------------

    async def sync_insights(self, owner_id: str, days: int = DEFAULT_INSIGHT_DAYS) -> int:
        """Pull `days` of daily account insights into the store, bypassing the cache."""
        account = await self._account(owner_id)
        client = self.client_factory(account.token)
        rows = await self._call(client.fetch_account_insights(days))
        synced = await asyncio.to_thread(self.store.upsert_daily_insights, account.id, rows)
        invalidate_owner(self.cache, owner_id, ("insights",))
        return synced

    async def custom(self, owner_id: str, endpoint: str) -> dict:
        """Pass a read-only Graph API path through for the owner. Never cached."""
        account = await self._account(owner_id)
        client = self.client_factory(account.token)
        return await self._call(client.fetch_custom(endpoint))

    def invalidate(self, owner_id: str) -> int:
        return invalidate_owner(self.cache, owner_id)

    # -- Internals ----------------------------------------------------------

    async def _cached(
        self,
        resource: str,
        owner_id: str,
        build: Callable[[IgAccount, InstagramClient], Awaitable[dict]],
    ) -> dict:
        key = cache_key(resource, owner_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return copy.deepcopy(cached)

        logger.debug("Cache miss: %s", key)
        account = await self._account(owner_id)
        result = await build(account, self.client_factory(account.token))
        self.cache.set(key, copy.deepcopy(result), ttl_seconds=self.ttl_seconds)
        return result

    async def _account(self, owner_id: str) -> IgAccount:
        if not owner_id:
            raise UnauthorizedError()
        account = await asyncio.to_thread(self.store.get_account_for_user, owner_id)
        if account is None:
            raise NotLinkedError()
        return account

    async def _call(self, coro: Awaitable):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"Instagram API timed out after {self.timeout}s") from e

    async def _with_insights(
        self,
        items: list[dict],
        fetch: Callable[[str], Awaitable[dict]],
        defaults: dict,
        label: str,
    ) -> list[dict]:
        """Attach per-item insights, one Graph call per item, bounded concurrency."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def one(item: dict) -> dict:
            async with semaphore:
                try:
                    return await self._call(fetch(item["id"]))
                except Exception as e:
                    logger.warning("%s insights failed for %s: %s", label, item.get("id"), e)
                    return dict(defaults)

        results = await asyncio.gather(*[one(item) for item in items])
        return [
            {**item, "insights": {**defaults, **insights}}
            for item, insights in zip(items, results)
        ]
