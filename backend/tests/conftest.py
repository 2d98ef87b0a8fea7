"""Shared fixtures and fakes for backend tests."""

from __future__ import annotations

import asyncio
from collections import Counter

import pytest
from fastapi.testclient import TestClient

from app import create_app
from errors import UpstreamError
from services.aggregator import Aggregator
from services.cache import TTLCache
from services.store import Store


class FakeClock:
    """Manually advanced clock for TTLCache."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeInstagram:
    """Stands in for InstagramClient and its factory; counts every upstream call."""

    def __init__(self, media_count: int = 5):
        self.calls: Counter = Counter()
        self.tokens: list[str] = []
        self.profile = {"id": "ig-1", "username": "tester", "account_type": "CREATOR", "followers_count": 100}
        self.media = [
            {
                "id": f"m-{i}",
                "caption": f"Post {i}",
                "media_type": "IMAGE",
                "media_url": f"https://cdn.example/m-{i}.jpg",
                "permalink": f"https://instagram.com/p/m-{i}",
                "timestamp": f"2025-06-{i:02d}T10:00:00+0000",
                "like_count": 10 * i,
                "comments_count": i,
            }
            for i in range(1, media_count + 1)
        ]
        self.stories = [
            {"id": f"s-{i}", "media_type": "IMAGE", "media_url": f"https://cdn.example/s-{i}.jpg",
             "timestamp": "2025-06-30T08:00:00+0000"}
            for i in range(1, 3)
        ]
        self.failing_insights: set[str] = set()
        self.fail_profile = False
        self.delay = 0.0
        self.custom_endpoints: list[str] = []

    def __call__(self, access_token: str) -> "FakeInstagram":
        self.tokens.append(access_token)
        return self

    async def exchange_code(self, code: str) -> dict:
        self.calls["exchange_code"] += 1
        return {"access_token": f"short-{code}", "expires_in": 3600}

    async def exchange_long_lived_token(self, short_token: str) -> dict:
        self.calls["exchange_long_lived_token"] += 1
        return {"access_token": f"long-{short_token}", "expires_in": 5184000}

    async def fetch_profile(self) -> dict:
        self.calls["profile"] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_profile:
            raise UpstreamError("Instagram API error: rate limited")
        return dict(self.profile)

    async def fetch_media(self) -> list[dict]:
        self.calls["media"] += 1
        return [dict(m) for m in self.media]

    async def fetch_media_insights(self, media_id: str) -> dict:
        self.calls["media_insights"] += 1
        if media_id in self.failing_insights:
            raise UpstreamError(f"insights unavailable for {media_id}")
        return {"impressions": 100, "reach": 80, "saved": 5, "engagement": 20}

    async def fetch_stories(self) -> list[dict]:
        self.calls["stories"] += 1
        return [dict(s) for s in self.stories]

    async def fetch_story_insights(self, story_id: str) -> dict:
        self.calls["story_insights"] += 1
        if story_id in self.failing_insights:
            raise RuntimeError("connection reset")
        return {"impressions": 50, "reach": 40, "replies": 2, "exits": 3}

    async def fetch_account_insights(self, days: int = 30) -> list[dict]:
        self.calls["account_insights"] += 1
        return [
            {"date": f"2025-06-{30 - i:02d}", "impressions": 1000, "reach": 500 + i,
             "profile_views": 20, "follower_count": 100 + i}
            for i in range(min(days, 30))
        ]

    async def fetch_demographics(self) -> dict:
        self.calls["demographics"] += 1
        return {"age_gender": {"F.18-24": 10}, "cities": {"Paris, France": 4}, "countries": {"FR": 7}}

    async def fetch_custom(self, endpoint: str) -> dict:
        self.calls["custom"] += 1
        self.custom_endpoints.append(endpoint)
        return {"data": [{"id": "m-1"}]}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


@pytest.fixture
def store(tmp_path):
    store = Store(f"sqlite:///{tmp_path / 'test.db'}")
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture
def instagram():
    return FakeInstagram()


@pytest.fixture
def owner_id(store):
    """An app user with a linked Instagram account."""
    user = store.upsert_user("tester@local.mock", "tester")
    store.upsert_account(user.id, "ig-1", "tester", "short-token", "long-token")
    return user.id


@pytest.fixture
def aggregator(cache, store, instagram):
    return Aggregator(cache, store, instagram, ttl_seconds=1200, timeout=1.0, concurrency=2)


@pytest.fixture
def client(cache, store, instagram):
    app = create_app(cache=cache, store=store, client_factory=instagram)
    with TestClient(app) as client:
        yield client
