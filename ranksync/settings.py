"""Centralized settings for ranksync.

Uses pydantic-settings to load from environment variables (prefixed RANKSYNC_)
with defaults matching the leaderboard service's local development setup.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """ranksync settings loaded from environment variables."""

    # --- Endpoints ---
    ws_url: str = "ws://localhost:5000/ws/leaderboard"
    api_base_url: str = "http://localhost:5000/api/leaderboard"
    snapshot_path: str = "/snapshot"
    batch_path: str = "/batch"
    request_timeout: float = 15.0
    snapshot_limit: int = 50

    # --- Sync timing (milliseconds) ---
    heartbeat_interval_ms: int = 30_000
    rate_limit_cooldown_ms: int = 30_000
    http_polling_interval_ms: int = 10_000

    # --- Feature flags ---
    enable_http_fallback: bool = False

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "RANKSYNC_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
