"""Instagram OAuth linking routes."""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode, urljoin

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from config import settings
from deps import get_cache, get_client_factory, get_store
from errors import InvalidRequestError
from services.aggregator import ClientFactory, invalidate_owner
from services.cache import TTLCache
from services.instagram import oauth_url
from services.store import Store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

CALLBACK_PATH = "/auth/instagram/callback"


@router.get("/instagram/start")
async def instagram_start(store: Store = Depends(get_store)) -> dict:
    state = str(uuid.uuid4())
    await asyncio.to_thread(store.create_oauth_session, state, CALLBACK_PATH)
    return {"authUrl": oauth_url(state), "state": state}


@router.get("/instagram/callback")
async def instagram_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    store: Store = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> RedirectResponse:
    """Exchange the OAuth code, link the account, and send the user to the dashboard."""
    if not code or not state:
        raise InvalidRequestError("Missing code/state")

    oauth = await asyncio.to_thread(store.get_oauth_session, state)
    if oauth is None or oauth.consumed_at is not None:
        raise InvalidRequestError("Invalid or consumed state")

    client = client_factory("")
    token = await client.exchange_code(code)
    long_lived = await client.exchange_long_lived_token(token["access_token"])
    access = long_lived.get("access_token") or token["access_token"]
    profile = await client_factory(access).fetch_profile()

    username = profile.get("username") or "mock.creator"
    user = await asyncio.to_thread(store.upsert_user, f"{username}@local.mock", username)
    expires_in = long_lived.get("expires_in") or 3600
    await asyncio.to_thread(
        store.upsert_account,
        user.id,
        profile.get("id") or "mock-ig-001",
        username,
        token["access_token"],
        long_lived.get("access_token"),
        datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )
    await asyncio.to_thread(store.consume_oauth_session, state, user.id)

    # A relinked account may have different data behind the same user id.
    invalidate_owner(cache, user.id)
    logger.info("Linked Instagram account @%s to user %s", username, user.id)

    redirect = urljoin(settings.frontend_url, "/dashboard") + "?" + urlencode({"userId": user.id})
    return RedirectResponse(redirect, status_code=302)
