"""Tests for the runtime health check settings store."""
import pytest

from probewatch.exceptions import ConfigurationError
from probewatch.models import HealthCheckSetting
from probewatch.settings_store import (
    SchedulerSnapshot,
    get_all_settings,
    get_setting,
    load_snapshot,
    normalize_setting,
    update_settings,
)


def test_normalize_values():
    assert normalize_setting("enabled", True) == "true"
    assert normalize_setting("enabled", "OFF") == "false"
    assert normalize_setting("thread_pool_size", "12") == "12"
    assert normalize_setting("scheduler_interval_ms", 1000) == "1000"


@pytest.mark.parametrize(
    "key,value,message",
    [
        ("enabled", "maybe", "true or false"),
        ("thread_pool_size", 0, "between 1 and 200"),
        ("scheduler_interval_ms", 999, "between 1000 and 3600000"),
        ("default_timeout_seconds", "ten", "must be an integer"),
        ("default_interval_seconds", True, "between 1 and 86400"),
        ("retention_days", 30, "Unknown health check setting"),
    ],
)
def test_normalize_rejects(key, value, message):
    with pytest.raises(ConfigurationError, match=message):
        normalize_setting(key, value)


@pytest.mark.asyncio
async def test_empty_store_uses_defaults(db):
    assert await load_snapshot(db) == SchedulerSnapshot.defaults()
    assert await get_setting(db, "enabled", "unset") == "unset"


@pytest.mark.asyncio
async def test_update_then_load(db):
    written = await update_settings(db, {"enabled": False, "thread_pool_size": 3})
    assert written == {"enabled": "false", "thread_pool_size": "3"}

    await update_settings(db, {"thread_pool_size": 5})
    snapshot = await load_snapshot(db)
    assert snapshot.enabled is False
    assert snapshot.thread_pool_size == 5
    assert await get_all_settings(db) == {"enabled": "false", "thread_pool_size": "5"}


@pytest.mark.asyncio
async def test_invalid_batch_writes_nothing(db):
    with pytest.raises(ConfigurationError):
        await update_settings(db, {"enabled": False, "thread_pool_size": 500})

    assert await get_all_settings(db) == {}


@pytest.mark.asyncio
async def test_corrupt_stored_value_falls_back(db):
    db.add(HealthCheckSetting(setting_key="scheduler_interval_ms", setting_value="soon"))
    await db.commit()

    snapshot = await load_snapshot(db)
    assert snapshot.scheduler_interval_ms == SchedulerSnapshot.defaults().scheduler_interval_ms
