"""ADSYNC — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""  # Fallback when no stored connection exists
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_request_timeout: float = 20.0  # seconds, per request
    meta_max_retries: int = 3
    meta_retry_base_delay: float = 2.0  # seconds

    # ── Pagination ──
    insights_max_pages: int = 15
    listing_max_pages: int = 50
    listing_page_limit: int = 500
    inventory_page_delay: float = 0.5  # seconds between inventory pages

    # ── Batch API Throttle ──
    batch_size: int = 50
    batch_delay: float = 1.0  # seconds between batch calls

    # ── Persistence ──
    database_url: str = ""
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 300  # seconds
    insert_batch_size: int = 1000
    upsert_batch_size: int = 200

    # ── Media Sync ──
    media_cooldown_hours: float = 24.0

    # ── Downstream ──
    alerts_url: str = ""  # Empty disables the alert trigger
    alerts_timeout: float = 10.0

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_hour: int = 3  # Daily run at 3 AM UTC
    default_date_preset: str = "last_30d"

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adsync.db"
        return "sqlite:///./adsync.db"

    @property
    def graph_base(self) -> str:
        return f"{self.meta_base_url}/{self.meta_api_version}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
