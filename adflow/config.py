"""ADFLOW — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── Automation Webhook ──
    automation_webhook_url: Optional[str] = None  # app-level default
    automation_callback_secret: Optional[str] = None
    public_app_url: str = "http://localhost:8000"
    webhook_timeout_seconds: float = 15.0
    webhook_max_retries: int = 2
    webhook_retry_base_delay: float = 1.0  # seconds

    # ── Reconciliation ──
    automation_ack_timeout_seconds: int = 120
    automation_callback_timeout_minutes: int = 60
    scheduler_enabled: bool = True
    reconcile_interval_minutes: int = 5

    # ── App ──
    log_level: str = "INFO"

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adflow.db"
        return "sqlite:///./adflow.db"

    @property
    def callback_url(self) -> str:
        """Public URL the workflow engine posts automation results to."""
        return f"{self.public_app_url.rstrip('/')}/webhooks/automation/status"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
