"""Instagram Graph API client.

Thin async wrapper over the Graph API endpoints the dashboard needs. With
MOCK_MODE on (the default for local development) every call returns the
canned dataset from services.mock_data and no request leaves the process.

All failures surface as UpstreamError so handlers can tell an Instagram
problem from a bug.
"""

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx

from config import settings
from errors import InvalidRequestError, UpstreamError
from services import mock_data

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.facebook.com/v21.0"
OAUTH_AUTHORIZE_URL = "https://www.instagram.com/oauth/authorize"

PROFILE_FIELDS = "id,username,account_type,media_count,followers_count,follows_count"
MEDIA_FIELDS = "id,caption,media_type,media_url,permalink,timestamp,like_count,comments_count"
STORY_FIELDS = "id,media_type,media_url,timestamp"
MEDIA_METRICS = ("impressions", "reach", "saved", "engagement")
STORY_METRICS = ("impressions", "reach", "replies", "exits")
ACCOUNT_METRICS = ("impressions", "reach", "profile_views", "follower_count")
DEMOGRAPHIC_METRICS = {
    "audience_gender_age": "age_gender",
    "audience_city": "cities",
    "audience_country": "countries",
}


def oauth_url(state: str) -> str:
    """Build the Instagram authorize URL for the OAuth start step."""
    params = {
        "client_id": settings.instagram_client_id or "mock-client-id",
        "redirect_uri": settings.instagram_redirect_uri,
        "scope": settings.instagram_scopes,
        "response_type": "code",
        "state": state,
        "force_reauth": "true",
    }
    return f"{OAUTH_AUTHORIZE_URL}?{urlencode(params)}"


class InstagramClient:
    """Graph API calls scoped to one account's access token."""

    def __init__(
        self,
        access_token: str = "",
        mock: bool | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.mock = settings.mock_mode if mock is None else mock
        self.timeout = settings.upstream_timeout_seconds if timeout is None else timeout
        self._transport = transport

    # -- OAuth --------------------------------------------------------------

    async def exchange_code(self, code: str) -> dict:
        if self.mock:
            return {"access_token": f"mock-access-{code}", "token_type": "bearer", "expires_in": 3600}
        return await self._request(
            "POST",
            "/oauth/access_token",
            data={
                "client_id": settings.instagram_client_id or "",
                "client_secret": settings.instagram_client_secret or "",
                "grant_type": "authorization_code",
                "redirect_uri": settings.instagram_redirect_uri,
                "code": code,
            },
        )

    async def exchange_long_lived_token(self, short_token: str) -> dict:
        if self.mock:
            return {
                "access_token": f"mock-long-{short_token}",
                "token_type": "bearer",
                "expires_in": 60 * 60 * 24 * 60,
            }
        return await self._request(
            "GET",
            "/access_token",
            params={
                "grant_type": "ig_exchange_token",
                "client_secret": settings.instagram_client_secret or "",
                "access_token": short_token,
            },
        )

    # -- Resources ----------------------------------------------------------

    async def fetch_profile(self) -> dict:
        if self.mock:
            return mock_data.mock_profile()
        return await self._get("/me", fields=PROFILE_FIELDS)

    async def fetch_media(self) -> list[dict]:
        if self.mock:
            return mock_data.mock_media()
        payload = await self._get("/me/media", fields=MEDIA_FIELDS)
        return payload.get("data", [])

    async def fetch_media_insights(self, media_id: str) -> dict:
        if self.mock:
            return mock_data.mock_media_insights(media_id)
        payload = await self._get(f"/{media_id}/insights", metric=",".join(MEDIA_METRICS))
        return _flatten_metrics(payload, MEDIA_METRICS)

    async def fetch_stories(self) -> list[dict]:
        if self.mock:
            return mock_data.mock_stories()
        payload = await self._get("/me/stories", fields=STORY_FIELDS)
        return payload.get("data", [])

    async def fetch_story_insights(self, story_id: str) -> dict:
        if self.mock:
            return mock_data.mock_story_insights(story_id)
        payload = await self._get(f"/{story_id}/insights", metric=",".join(STORY_METRICS))
        return _flatten_metrics(payload, STORY_METRICS)

    async def fetch_account_insights(self, days: int = 30) -> list[dict]:
        """Daily account metrics, one row per day, newest first."""
        if self.mock:
            return mock_data.mock_account_insights(days)
        until = datetime.now(timezone.utc)
        since = until - timedelta(days=days)
        payload = await self._get(
            "/me/insights",
            metric=",".join(ACCOUNT_METRICS),
            period="day",
            since=int(since.timestamp()),
            until=int(until.timestamp()),
        )
        return _pivot_daily(payload)

    async def fetch_demographics(self) -> dict:
        if self.mock:
            return mock_data.mock_demographics()
        payload = await self._get(
            "/me/insights",
            metric=",".join(DEMOGRAPHIC_METRICS),
            period="lifetime",
        )
        result = {name: {} for name in DEMOGRAPHIC_METRICS.values()}
        for metric in payload.get("data", []):
            name = DEMOGRAPHIC_METRICS.get(metric.get("name"))
            values = metric.get("values") or [{}]
            if name:
                result[name] = values[0].get("value") or {}
        return result

    async def fetch_custom(self, endpoint: str) -> dict:
        """GET a relative Graph path such as "/me/media?fields=id,caption"."""
        parts = urlsplit(endpoint)
        if parts.scheme or parts.netloc or not parts.path.startswith("/"):
            raise InvalidRequestError(f"Graph endpoint must be a relative path: {endpoint!r}")
        if self.mock:
            return mock_data.mock_custom(parts.path)
        return await self._get(parts.path, **dict(parse_qsl(parts.query)))

    # -- HTTP ---------------------------------------------------------------

    async def _get(self, path: str, **params) -> dict:
        params["access_token"] = self.access_token
        return await self._request("GET", path, params=params)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with httpx.AsyncClient(
                base_url=GRAPH_BASE, timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Graph API %s %s failed: %s", method, path, e)
            raise UpstreamError(f"Instagram API request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Instagram API returned invalid JSON for {path}") from e

        if isinstance(payload, dict) and "error" in payload:
            message = payload["error"].get("message", "unknown error")
            logger.warning("Graph API %s %s returned error: %s", method, path, message)
            raise UpstreamError(f"Instagram API error: {message}")
        return payload


def _flatten_metrics(payload: dict, metrics: tuple[str, ...]) -> dict:
    """Turn a Graph insights payload into {metric: int}; missing metrics are 0."""
    result = dict.fromkeys(metrics, 0)
    for metric in payload.get("data", []):
        name = metric.get("name")
        values = metric.get("values") or [{}]
        if name in result:
            result[name] = int(values[0].get("value") or 0)
    return result


def _pivot_daily(payload: dict) -> list[dict]:
    rows: dict[str, dict] = {}
    for metric in payload.get("data", []):
        name = metric.get("name")
        if name not in ACCOUNT_METRICS:
            continue
        for point in metric.get("values", []):
            day = str(point.get("end_time", ""))[:10]
            if not day:
                continue
            row = rows.setdefault(day, {"date": day, **dict.fromkeys(ACCOUNT_METRICS, 0)})
            row[name] = int(point.get("value") or 0)
    return sorted(rows.values(), key=lambda r: r["date"], reverse=True)
