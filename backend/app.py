"""FastAPI application entry point for the Instagram Wrapped API."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from errors import register_error_handlers
from services.aggregator import ClientFactory
from services.cache import TTLCache
from services.instagram import InstagramClient
from services.store import Store

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(
    cache: TTLCache | None = None,
    store: Store | None = None,
    client_factory: ClientFactory | None = None,
) -> FastAPI:
    """Build the app. The cache, store and Instagram client factory live on
    app.state for the process lifetime; tests pass their own."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        missing = settings.validate()
        if missing:
            logger.warning("Missing env vars (live Instagram access will fail): %s", ", ".join(missing))
        app.state.store.create_all()
        app.state.cache.start_sweeper()
        yield
        app.state.cache.stop_sweeper()
        app.state.store.dispose()

    app = FastAPI(title="Instagram Wrapped API", version="1.0.0", lifespan=lifespan)

    app.state.cache = cache or TTLCache(
        default_ttl=settings.cache_ttl_seconds,
        sweep_interval=settings.cache_sweep_interval_seconds,
    )
    app.state.store = store or Store(settings.database_url)
    app.state.client_factory = client_factory or InstagramClient

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.auth import router as auth_router
    from routes.health import router as health_router
    from routes.instagram import router as instagram_router
    from routes.wrapped import router as wrapped_router

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(instagram_router)
    app.include_router(wrapped_router)

    return app


app = create_app()
