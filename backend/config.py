"""Centralized configuration: all env vars in one place."""

import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")
        self.frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./wrapped.db")

        # Instagram Graph API. Mock mode serves a canned dataset and never
        # calls the network.
        self.mock_mode: bool = _env_bool("MOCK_MODE", "true")
        self.instagram_client_id: str | None = os.getenv("INSTAGRAM_CLIENT_ID")
        self.instagram_client_secret: str | None = os.getenv("INSTAGRAM_CLIENT_SECRET")
        self.instagram_redirect_uri: str = os.getenv(
            "INSTAGRAM_REDIRECT_URI", "http://localhost:4000/auth/instagram/callback"
        )
        self.instagram_scopes: str = os.getenv(
            "INSTAGRAM_SCOPES", "instagram_basic,instagram_manage_insights,pages_show_list"
        )
        self.upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "15"))
        self.fanout_concurrency: int = int(os.getenv("FANOUT_CONCURRENCY", "4"))

        # OpenAI image generation
        self.openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
        self.openai_image_model: str = os.getenv("OPENAI_IMAGE_MODEL", "dall-e-3")

        # Aggregate cache
        self.cache_ttl_seconds: float = float(os.getenv("CACHE_TTL_SECONDS", "1200"))
        self.cache_sweep_interval_seconds: float = float(
            os.getenv("CACHE_SWEEP_INTERVAL_SECONDS", "300")
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return list of env vars missing for live (non-mock) Instagram access."""
        if self.mock_mode:
            return []
        required = ["INSTAGRAM_CLIENT_ID", "INSTAGRAM_CLIENT_SECRET"]
        return [var for var in required if not getattr(self, var.lower())]


settings = Settings()
