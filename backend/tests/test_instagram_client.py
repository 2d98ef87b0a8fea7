"""Tests for the Graph API client, using httpx.MockTransport."""

import httpx
import pytest

from errors import InvalidRequestError, UpstreamError
from services import mock_data
from services.instagram import InstagramClient, oauth_url
from services.store import parse_timestamp


def make_client(handler) -> InstagramClient:
    return InstagramClient("tok", mock=False, timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_mock_mode_serves_canned_data_without_network():
    def handler(request):  # pragma: no cover - must not be called
        raise AssertionError("network used in mock mode")

    client = InstagramClient("tok", mock=True, transport=httpx.MockTransport(handler))

    assert await client.fetch_profile() == mock_data.mock_profile()
    assert len(await client.fetch_media()) == 8
    assert await client.fetch_media() == await client.fetch_media()
    assert len(await client.fetch_account_insights(7)) == 7


@pytest.mark.asyncio
async def test_fetch_profile_sends_token_and_fields():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"id": "1", "username": "real"})

    profile = await make_client(handler).fetch_profile()

    assert profile == {"id": "1", "username": "real"}
    assert seen["path"] == "/v21.0/me"
    assert seen["params"]["access_token"] == "tok"
    assert "username" in seen["params"]["fields"]


@pytest.mark.asyncio
async def test_media_insights_flattened_with_missing_metrics_zeroed():
    def handler(request):
        return httpx.Response(200, json={"data": [
            {"name": "impressions", "values": [{"value": 321}]},
            {"name": "reach", "values": [{"value": 123}]},
        ]})

    insights = await make_client(handler).fetch_media_insights("m-1")

    assert insights == {"impressions": 321, "reach": 123, "saved": 0, "engagement": 0}


@pytest.mark.asyncio
async def test_account_insights_pivoted_by_day():
    def handler(request):
        return httpx.Response(200, json={"data": [
            {"name": "reach", "values": [
                {"value": 10, "end_time": "2025-06-01T07:00:00+0000"},
                {"value": 20, "end_time": "2025-06-02T07:00:00+0000"},
            ]},
            {"name": "impressions", "values": [
                {"value": 30, "end_time": "2025-06-02T07:00:00+0000"},
            ]},
        ]})

    rows = await make_client(handler).fetch_account_insights(2)

    assert [r["date"] for r in rows] == ["2025-06-02", "2025-06-01"]
    assert rows[0]["reach"] == 20 and rows[0]["impressions"] == 30
    assert rows[1]["impressions"] == 0


@pytest.mark.asyncio
async def test_demographics_mapped_to_dimensions():
    def handler(request):
        return httpx.Response(200, json={"data": [
            {"name": "audience_country", "values": [{"value": {"US": 5}}]},
        ]})

    result = await make_client(handler).fetch_demographics()

    assert result == {"age_gender": {}, "cities": {}, "countries": {"US": 5}}


@pytest.mark.asyncio
async def test_graph_error_payload_raises_upstream_error():
    def handler(request):
        return httpx.Response(200, json={"error": {"message": "Invalid OAuth access token"}})

    with pytest.raises(UpstreamError, match="Invalid OAuth access token"):
        await make_client(handler).fetch_media()


@pytest.mark.asyncio
async def test_http_error_raises_upstream_error():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(UpstreamError):
        await make_client(handler).fetch_profile()


@pytest.mark.asyncio
async def test_network_error_raises_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        await make_client(handler).fetch_stories()


def test_oauth_url_carries_state():
    url = oauth_url("state-123")
    assert url.startswith("https://www.instagram.com/oauth/authorize?")
    assert "state=state-123" in url
    assert "force_reauth=true" in url


def test_parse_timestamp_formats():
    assert parse_timestamp("2025-01-31T10:00:00+0000").year == 2025
    assert parse_timestamp("2025-01-31T10:00:00Z").utcoffset().total_seconds() == 0
    assert parse_timestamp("2025-01-31T10:00:00+00:00").day == 31
    assert parse_timestamp(None) is None
    assert parse_timestamp("not-a-date") is None


@pytest.mark.asyncio
async def test_custom_endpoint_forwards_path_and_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"data": [{"id": "1"}]})

    payload = await make_client(handler).fetch_custom("/me/media?fields=id,caption&access_token=stolen")

    assert payload == {"data": [{"id": "1"}]}
    assert seen["path"] == "/v21.0/me/media"
    assert seen["params"] == {"fields": "id,caption", "access_token": "tok"}


@pytest.mark.asyncio
@pytest.mark.parametrize("endpoint", ["https://evil.example/x", "//evil.example/x", "me/media"])
async def test_custom_endpoint_must_be_relative(endpoint):
    def handler(request):  # pragma: no cover - must not be called
        raise AssertionError("request sent for a non-relative endpoint")

    with pytest.raises(InvalidRequestError):
        await make_client(handler).fetch_custom(endpoint)


@pytest.mark.asyncio
async def test_custom_endpoint_in_mock_mode():
    client = InstagramClient("tok", mock=True)
    assert (await client.fetch_custom("/me"))["username"] == mock_data.mock_profile()["username"]
    assert len((await client.fetch_custom("/me/media?fields=id"))["data"]) == 8
    assert await client.fetch_custom("/17841400/tags") == {"data": []}
