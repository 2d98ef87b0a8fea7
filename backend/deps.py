"""FastAPI dependencies: per-app shared objects and the caller's identity."""

from fastapi import Depends, Header, Request

from errors import UnauthorizedError
from services.aggregator import Aggregator, ClientFactory
from services.cache import TTLCache
from services.store import Store


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_client_factory(request: Request) -> ClientFactory:
    return request.app.state.client_factory


def get_aggregator(
    cache: TTLCache = Depends(get_cache),
    store: Store = Depends(get_store),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> Aggregator:
    return Aggregator(cache, store, client_factory)


def require_user_id(x_user_id: str | None = Header(None)) -> str:
    """Owner identity from the x-user-id header, checked before any cache or upstream work."""
    if not x_user_id:
        raise UnauthorizedError()
    return x_user_id
