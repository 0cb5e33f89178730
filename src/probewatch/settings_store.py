"""
Runtime health-check settings, persisted as key/value rows and editable without a restart.

The scheduler never holds on to these values: it calls ``load_snapshot`` once at the
start of every tick and passes the resulting frozen snapshot through that tick.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from probewatch.config import get_settings
from probewatch.exceptions import ConfigurationError
from probewatch.models.health_check_setting import HealthCheckSetting

logger = logging.getLogger("probewatch.settings")

KEY_ENABLED = "enabled"
KEY_SCHEDULER_INTERVAL_MS = "scheduler_interval_ms"
KEY_THREAD_POOL_SIZE = "thread_pool_size"
KEY_DEFAULT_INTERVAL_SECONDS = "default_interval_seconds"
KEY_DEFAULT_TIMEOUT_SECONDS = "default_timeout_seconds"

# key -> (min, max) for integer settings
INT_BOUNDS = {
    KEY_SCHEDULER_INTERVAL_MS: (1000, 3_600_000),
    KEY_THREAD_POOL_SIZE: (1, 200),
    KEY_DEFAULT_INTERVAL_SECONDS: (1, 86_400),
    KEY_DEFAULT_TIMEOUT_SECONDS: (1, 300),
}
SETTING_KEYS = {KEY_ENABLED, *INT_BOUNDS}


@dataclass(frozen=True)
class SchedulerSnapshot:
    enabled: bool
    scheduler_interval_ms: int
    thread_pool_size: int
    default_interval_seconds: int
    default_timeout_seconds: int
    default_failure_threshold: int

    @classmethod
    def defaults(cls) -> "SchedulerSnapshot":
        settings = get_settings()
        return cls(
            enabled=settings.health_check_enabled,
            scheduler_interval_ms=settings.scheduler_interval_ms,
            thread_pool_size=settings.thread_pool_size,
            default_interval_seconds=settings.default_interval_seconds,
            default_timeout_seconds=settings.default_timeout_seconds,
            default_failure_threshold=settings.default_failure_threshold,
        )


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("true", "1", "yes", "on"):
        return True
    if normalized in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


async def get_all_settings(db: AsyncSession) -> dict[str, str]:
    result = await db.execute(select(HealthCheckSetting))
    return {row.setting_key: row.setting_value for row in result.scalars().all()}


async def get_setting(db: AsyncSession, key: str, default: str | None = None) -> str | None:
    result = await db.execute(
        select(HealthCheckSetting).where(HealthCheckSetting.setting_key == key)
    )
    row = result.scalar_one_or_none()
    return row.setting_value if row else default


def normalize_setting(key: str, value) -> str:
    """Validate one setting and return its stored string form."""
    if key not in SETTING_KEYS:
        raise ConfigurationError(f"Unknown health check setting: {key}")

    if key == KEY_ENABLED:
        if isinstance(value, bool):
            return "true" if value else "false"
        try:
            return "true" if _parse_bool(str(value)) else "false"
        except ValueError:
            raise ConfigurationError(f"{key} must be true or false")

    low, high = INT_BOUNDS[key]
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer")
    if isinstance(value, bool) or not low <= number <= high:
        raise ConfigurationError(f"{key} must be between {low} and {high}")
    return str(number)


async def update_settings(db: AsyncSession, updates: dict) -> dict[str, str]:
    """Validate every update first, then write them all; nothing is written on error."""
    normalized = {key: normalize_setting(key, value) for key, value in updates.items()}

    if normalized:
        result = await db.execute(
            select(HealthCheckSetting).where(HealthCheckSetting.setting_key.in_(normalized))
        )
        existing = {row.setting_key: row for row in result.scalars().all()}
        for key, value in normalized.items():
            row = existing.get(key)
            if row is None:
                db.add(HealthCheckSetting(setting_key=key, setting_value=value))
            else:
                row.setting_value = value
            logger.info(f"Updated health check setting: {key} = {value}")
        await db.commit()

    return normalized


async def load_snapshot(db: AsyncSession) -> SchedulerSnapshot:
    defaults = SchedulerSnapshot.defaults()
    stored = await get_all_settings(db)

    def read_int(key: str, fallback: int) -> int:
        raw = stored.get(key)
        if raw is None:
            return fallback
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Invalid {key} setting {raw!r}, using default {fallback}")
            return fallback

    enabled = defaults.enabled
    if KEY_ENABLED in stored:
        try:
            enabled = _parse_bool(stored[KEY_ENABLED])
        except ValueError:
            logger.warning(f"Invalid enabled setting {stored[KEY_ENABLED]!r}, using default {enabled}")

    return SchedulerSnapshot(
        enabled=enabled,
        scheduler_interval_ms=read_int(KEY_SCHEDULER_INTERVAL_MS, defaults.scheduler_interval_ms),
        thread_pool_size=max(1, read_int(KEY_THREAD_POOL_SIZE, defaults.thread_pool_size)),
        default_interval_seconds=read_int(KEY_DEFAULT_INTERVAL_SECONDS, defaults.default_interval_seconds),
        default_timeout_seconds=read_int(KEY_DEFAULT_TIMEOUT_SECONDS, defaults.default_timeout_seconds),
        default_failure_threshold=defaults.default_failure_threshold,
    )
