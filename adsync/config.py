"""AdSync - Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_request_timeout: float = 30.0
    meta_max_retries: int = 3
    meta_retry_base_delay: float = 1.0  # 1s, 2s, 4s
    meta_rate_limit_base_delay: float = 2.0  # throttled calls back off longer
    meta_page_limit: int = 100
    meta_max_pages: int = 50

    # ── Insight fan-out ──
    insight_batch_size: int = 10
    insight_batch_pause: float = 0.5

    # ── Sync run ──
    sync_window_days: int = 7
    sync_max_concurrent_accounts: int = 4
    sync_account_timeout: float = 600.0
    assign_unmapped_campaigns_to_first_client: bool = False

    # ── Alerts ──
    roas_alert_threshold: float = 1.5
    budget_alert_ratio: float = 1.2
    notification_queue_size: int = 1000

    # ── Security ──
    token_encryption_key: str = ""

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_hour: int = 3  # Daily run at 3 AM UTC

    @property
    def meta_graph_url(self) -> str:
        return f"{self.meta_base_url}/{self.meta_api_version}"

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adsync.db"
        return "sqlite:///./adsync.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
