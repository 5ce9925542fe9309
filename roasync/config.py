"""ROASYNC — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_api_version: str = "v18.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_page_delay: float = 0.2  # seconds between insight pages

    # ── Shopify API ──
    shopify_api_version: str = "2024-10"
    shopify_request_delay: float = 0.5  # Shopify allows ~2 req/s

    # ── Currency ──
    fx_rates_url: str = "https://open.er-api.com/v6/latest/EUR"
    reporting_currency: str = "EUR"

    # ── Token Vault ──
    encryption_key: str = ""  # hex AES key; empty = plaintext (degraded)

    # ── Database ──
    database_url: str = ""

    # ── Sync ──
    max_pages_per_run: int = 10
    sync_deadline_seconds: float = 240.0
    http_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    rate_limit_retry_after: int = 300
    image_batch_size: int = 10
    image_batch_delay: float = 0.2

    # ── Metrics / Decisions ──
    transaction_fee_rate: float = 0.05
    default_market_tier: str = "low"  # low | mid | high

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_hour: int = 3  # Daily sync at 3 AM

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/roasync.db"
        return "sqlite:///./roasync.db"

    @property
    def meta_base(self) -> str:
        return f"{self.meta_base_url}/{self.meta_api_version}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
