"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'journal.db'}"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]  # Next.js dev server

    # Auth (tokens are issued elsewhere; we only decode them)
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # Cache
    cache_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    cache_namespace: str = "tj"
    trade_cache_ttl: int = 300  # seconds
    summary_cache_ttl: int = 60
    symbols_cache_ttl: int = 300

    # P&L and analytics
    brokerage_profile: str = "default"  # "default", "zerodha", "upstox"
    risk_free_rate: float = 0.0  # annual
    trading_days_per_year: int = 252

    # Listing
    default_page_size: int = 20
    max_page_size: int = 100

    model_config = {"env_prefix": "TJ_", "env_file": ".env"}


settings = Settings()
