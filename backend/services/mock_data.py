"""Deterministic mock dataset served when MOCK_MODE is on.

Timestamps are anchored to a fixed date so repeated calls return identical
payloads.
"""

from datetime import datetime, timedelta, timezone

MOCK_ANCHOR = datetime(2025, 12, 31, 12, 0, tzinfo=timezone.utc)


def mock_profile() -> dict:
    return {
        "id": "mock-ig-001",
        "username": "mock.creator",
        "account_type": "CREATOR",
        "media_count": 42,
        "followers_count": 12034,
        "follows_count": 420,
    }


def mock_media(count: int = 8) -> list[dict]:
    return [
        {
            "id": f"mock-media-{i + 1}",
            "caption": f"Mock post #{i + 1}",
            "media_type": "IMAGE" if i % 2 == 0 else "VIDEO",
            "media_url": f"https://picsum.photos/seed/mock-{i + 1}/1000/1000",
            "permalink": f"https://instagram.com/p/mock-{i + 1}",
            "timestamp": (MOCK_ANCHOR - timedelta(days=i)).isoformat(),
            "like_count": 120 + i * 12,
            "comments_count": 10 + i * 2,
        }
        for i in range(count)
    ]


def mock_media_insights(media_id: str) -> dict:
    n = _index(media_id)
    return {
        "impressions": 1500 + n * 40,
        "reach": 1100 + n * 30,
        "saved": 12 + n,
        "engagement": 140 + n * 14,
    }


def mock_stories(count: int = 3) -> list[dict]:
    return [
        {
            "id": f"mock-story-{i + 1}",
            "media_type": "IMAGE",
            "media_url": f"https://picsum.photos/seed/story-{i + 1}/1080/1920",
            "timestamp": (MOCK_ANCHOR - timedelta(hours=i * 6)).isoformat(),
        }
        for i in range(count)
    ]


def mock_story_insights(story_id: str) -> dict:
    n = _index(story_id)
    return {
        "impressions": 600 + n * 25,
        "reach": 480 + n * 20,
        "replies": n,
        "exits": 15 + n * 2,
    }


def mock_account_insights(days: int = 30) -> list[dict]:
    anchor = MOCK_ANCHOR.date()
    return [
        {
            "date": (anchor - timedelta(days=i)).isoformat(),
            "impressions": 1000 + i * 15,
            "reach": 700 + i * 11,
            "profile_views": 90 + i,
            "follower_count": 11500 + i * 5,
        }
        for i in range(days)
    ]


def mock_demographics() -> dict:
    return {
        "age_gender": {"F.18-24": 2100, "F.25-34": 3400, "M.18-24": 1800, "M.25-34": 2900, "U.35-44": 600},
        "cities": {"Los Angeles, California": 1200, "New York, New York": 980, "London, England": 640},
        "countries": {"US": 7400, "GB": 1300, "CA": 900, "AU": 450},
    }


def mock_custom(path: str) -> dict:
    """Canned payload for an arbitrary Graph path; unknown paths get an empty list."""
    known = {
        "/me": mock_profile,
        "/me/media": lambda: {"data": mock_media()},
        "/me/stories": lambda: {"data": mock_stories()},
    }
    build = known.get(path.rstrip("/"))
    return build() if build else {"data": []}


def _index(item_id: str) -> int:
    tail = item_id.rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else 0
