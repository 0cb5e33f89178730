from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    app_name: str = "Probewatch"
    app_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./probewatch.db"

    # JWT
    secret_key: str = "change-me-in-production-use-a-real-secret-key"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24  # 24 hours

    # Reference timezone for uptime day boundaries
    timezone: str = "UTC"

    # Health check defaults (overridden at runtime by the settings store)
    health_check_enabled: bool = True
    scheduler_interval_ms: int = 10000
    thread_pool_size: int = 10
    default_interval_seconds: int = 60
    default_timeout_seconds: int = 10
    default_failure_threshold: int = 3
    probe_grace_seconds: float = 2.0

    # Uptime history
    uptime_history_enabled: bool = True
    uptime_degraded_weight: float = 1.0  # 1.0 = degraded minutes count as downtime
    max_backfill_days: int = 365

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
