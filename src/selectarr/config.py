"""Centralised configuration via Pydantic Settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide configuration loaded from environment variables."""

    model_config = {"env_prefix": "SELECTARR_", "frozen": True}

    # PostgreSQL
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "selectarr"
    db_password: str = "selectarr"
    db_name: str = "selectarr"
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Redis queue consumed by the download orchestrator
    queue_grab: str = "selectarr:grab"

    # Scoring
    # Upper bound on releases enriched concurrently within one batch.
    scoring_concurrency: int = 16

    # Pending release scheduler
    scheduler_interval_seconds: int = 60
    scheduler_batch_size: int = 50

    # Blocklist housekeeping (runs on every scheduler tick when enabled)
    blocklist_purge_expired: bool = True
    # Seconds a cached per-target blocklist lookup is reused before reloading.
    blocklist_cache_ttl_seconds: int = 300

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"


def get_settings() -> Settings:
    """Factory, overridable in tests."""
    return Settings()
