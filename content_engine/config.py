"""
Settings for every content engine process (API, worker, sweeper, transfer worker).

Values come from the environment or a local .env file. Services that are
not configured (Supabase, Redis, a provider, BunnyCDN) are reported at
startup rather than failing the import.
"""

import sys
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Environment-backed settings, validated once at import."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== Supabase Configuration =====
    SUPABASE_URL: str | None = Field(
        default=None,
        description="Supabase project URL"
    )

    SUPABASE_ANON_KEY: str | None = Field(
        default=None,
        description="Supabase anon/public key"
    )

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (for server-side operations, bypasses RLS)"
    )

    JOBS_TABLE: str = Field(
        default="ai_jobs",
        description="Table holding AI job records"
    )

    ASSETS_TABLE: str = Field(
        default="assets",
        description="Table holding generated assets"
    )

    # ===== Redis / Queue Configuration =====
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for the priority queue and RQ transfers (redis:// or rediss://)"
    )

    QUEUE_KEY: str = Field(
        default="ai_jobs:queue",
        description="Sorted set holding queued job ids"
    )

    QUEUE_SEQUENCE_KEY: str = Field(
        default="ai_jobs:queue:seq",
        description="Counter used to keep FIFO order within a priority tier"
    )

    # ===== Text Generation =====
    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for content generation and optimization"
    )

    TEXT_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Model used for text jobs"
    )

    TEXT_MAX_TOKENS: int = Field(
        default=1000,
        ge=100,
        le=16000,
        description="Maximum tokens per text generation"
    )

    TEMPERATURE: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="LLM temperature for text jobs"
    )

    TEXT_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        ge=1.0,
        description="Timeout for a single text generation call"
    )

    # ===== Image Generation =====
    REPLICATE_API_TOKEN: str | None = Field(
        default=None,
        description="Replicate API token for asynchronous image generation"
    )

    IMAGE_MODEL: str = Field(
        default="google/imagen-3-fast",
        description="Replicate model for image generation"
    )

    IMAGE_WIDTH: int = Field(
        default=1024,
        ge=256,
        le=2048,
        description="Nominal width recorded on generated assets"
    )

    IMAGE_HEIGHT: int = Field(
        default=1024,
        ge=256,
        le=2048,
        description="Nominal height recorded on generated assets"
    )

    # ===== Webhooks =====
    APP_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL, used to build the image provider webhook URL"
    )

    WEBHOOK_SECRET: str | None = Field(
        default=None,
        description="Shared secret expected as ?token= on provider webhooks (disabled when unset)"
    )

    # ===== Permanent Storage (BunnyCDN) =====
    BUNNY_API_KEY: str | None = Field(
        default=None,
        description="BunnyCDN storage zone access key"
    )

    BUNNY_STORAGE_ZONE: str | None = Field(
        default=None,
        description="BunnyCDN storage zone name"
    )

    BUNNY_CDN_HOSTNAME: str | None = Field(
        default=None,
        description="Pull zone hostname serving the storage zone"
    )

    BUNNY_STORAGE_REGION: str = Field(
        default="sg",
        description="Storage region prefix (storage endpoints are region specific)"
    )

    ASSET_TRANSFER_BACKEND: Literal["background", "rq"] = Field(
        default="background",
        description="Where asset transfers run: asyncio task in-process, or the RQ transfers queue"
    )

    TRANSFER_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        ge=1.0,
        description="HTTP timeout for downloading and uploading a single asset"
    )

    # ===== Worker =====
    ENABLE_AI_WORKER: bool = Field(
        default=False,
        description="Run the AI job worker inside the web process (use run_worker in production)"
    )

    WORKER_POLL_INTERVAL: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds to wait when the queue is empty"
    )

    WORKER_FAILURE_BACKOFF: float = Field(
        default=10.0,
        ge=0.0,
        description="Seconds to pause after an unexpected processing failure"
    )

    # ===== Reconciliation =====
    SWEEP_INTERVAL_SECONDS: int = Field(
        default=300,
        ge=10,
        description="How often the orphan sweep runs"
    )

    ORPHAN_TIMEOUT_MINUTES: int = Field(
        default=15,
        ge=1,
        description="Queued jobs older than this without a queue entry are re-enqueued"
    )

    STALE_PROCESSING_MINUTES: int = Field(
        default=30,
        ge=1,
        description="Image jobs processing longer than this are polled at the provider"
    )

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEBUG: bool = Field(
        default=True,
        description="Include exception details in error responses"
    )

    DEV_MODE: bool = Field(
        default=True,
        description="Bypass API key auth when no keys are configured"
    )

    @field_validator("DEBUG", "DEV_MODE", "ENABLE_AI_WORKER", mode="before")
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (platform env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="API server host"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    # ===== Security Settings =====
    API_KEYS: str | None = Field(
        default=None,
        description="Comma-separated list of valid API keys. If empty/None and DEV_MODE=True, auth is bypassed."
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for all (dev only)."
    )

    RATE_LIMIT_PER_MINUTE: int = Field(
        default=60,
        ge=0,
        le=10000,
        description="Max API requests per minute per API key (0 = unlimited)"
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Get list of valid API keys."""
        if not self.API_KEYS:
            return []
        return [k.strip() for k in self.API_KEYS.split(",") if k.strip()]

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins.

        In production (DEV_MODE=false), '*' falls back to APP_BASE_URL.
        """
        if self.ALLOWED_ORIGINS == "*":
            if self.DEV_MODE:
                return ["*"]
            print(
                "⚠️  WARNING: ALLOWED_ORIGINS='*' is not secure in production. "
                f"Using APP_BASE_URL ({self.APP_BASE_URL}) instead.",
                file=sys.stderr
            )
            return [self.APP_BASE_URL]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def auth_required(self) -> bool:
        """Check if authentication is required (False in dev mode with no keys)."""
        return bool(self.api_keys_list) or not self.DEV_MODE

    # ===== Computed Properties =====

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase is configured for server-side access."""
        return (
            self.SUPABASE_URL is not None
            and self.SUPABASE_SERVICE_KEY is not None
        )

    @property
    def can_generate_text(self) -> bool:
        return self.ANTHROPIC_API_KEY is not None

    @property
    def can_generate_images(self) -> bool:
        return self.REPLICATE_API_TOKEN is not None

    @property
    def bunny_configured(self) -> bool:
        """Check if permanent storage transfer is possible."""
        return (
            self.BUNNY_API_KEY is not None
            and self.BUNNY_STORAGE_ZONE is not None
            and self.BUNNY_CDN_HOSTNAME is not None
        )

    @property
    def image_webhook_url(self) -> str:
        """Completion webhook handed to the image provider on submit."""
        url = f"{self.APP_BASE_URL.rstrip('/')}/api/webhooks/image-provider"
        if self.WEBHOOK_SECRET:
            url = f"{url}?token={self.WEBHOOK_SECRET}"
        return url


# Global configuration instance
# Import this in other modules: from content_engine.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Text model: {config.TEXT_MODEL}")
    print(f"Image model: {config.IMAGE_MODEL}")
    print(f"Text Generation: {'✓' if config.can_generate_text else '✗'}")
    print(f"Image Generation: {'✓' if config.can_generate_images else '✗'}")
    print(f"Supabase: {'✓' if config.supabase_configured else '✗'}")
    print(f"Redis: {'✓' if config.REDIS_URL else '✗'}")
    print(f"BunnyCDN: {'✓' if config.bunny_configured else '✗'}")
    print(f"Transfer backend: {config.ASSET_TRANSFER_BACKEND}")
