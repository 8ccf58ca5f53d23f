"""Promoto — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_ad_account_id: str = ""
    meta_api_version: str = "v23.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_payor_name: str = "Promoto Agency"  # EU DSA payor shown on ad sets

    # ── Budget ──
    adset_daily_budget: float = 20.0
    min_daily_budget: float = 5.0
    budget_currency: str = "PLN"

    # ── Database ──
    database_url: str = ""

    # ── AI Providers ──
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    sarvam_api_key: Optional[str] = None
    default_ai_provider: str = "claude"  # claude | openai | sarvam

    # ── Webhook ──
    webhook_secret: str = ""  # Empty disables the shared-secret check

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    expiration_hour: int = 0  # Daily sweep at 00:01
    expiration_minute: int = 1
    cache_ttl_seconds: int = 30

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/promoto.db"
        return "sqlite:///./promoto.db"

    @property
    def effective_daily_budget(self) -> float:
        """Configured ad set budget, never below the platform floor."""
        return max(self.adset_daily_budget, self.min_daily_budget)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
