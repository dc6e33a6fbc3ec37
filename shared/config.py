"""
Centralized configuration for the EduSpark backend.

All settings are loaded from environment variables with sensible defaults.
Module-specific settings should be namespaced (e.g., STRIPE_*, CASHFREE_*).
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "EduSpark API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    # CORS settings
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    jwt_audience: str = "authenticated"
    supabase_db_url: str = ""  # direct Postgres URL, used by run_migrations.py

    # Entitlements
    entitlement_backend: str = "memory"  # "memory" or "supabase"
    signup_bonus_credits: int = 500
    paid_daily_credits: dict[str, int] = {"silver": 30, "gold": 100}
    free_monthly_credits: int = 100
    cas_max_retries: int = 3

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_tiers: dict[str, str] = {
        "price_1Pg2bOSJ0AbB7rS9sLKmR0pM": "silver",
        "price_1Pg2cFSJ0AbB7rS9qP2vB8bZ": "gold",
    }

    # Cashfree
    cashfree_app_id: str = ""
    cashfree_secret_key: str = ""
    cashfree_webhook_secret: str = ""
    cashfree_amount_tiers: dict[int, str] = {499: "silver", 999: "gold"}

    # Content generation
    google_api_key: str = ""
    generation_max_attempts: int = 3
    generation_initial_delay: float = 1.0  # seconds, doubled after each retry
    generation_cache_size: int = 256  # most recent distinct requests kept in memory

    # Feature Flags
    enable_activity_log: bool = True
    enable_webhooks: bool = True


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
