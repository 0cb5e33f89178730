"""
APScheduler integration: the health check tick job and the daily uptime job.
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from probewatch.config import get_settings
from probewatch.database import get_session_factory
from probewatch.dispatcher import get_dispatcher
from probewatch.uptime import calculate_daily_uptime

logger = logging.getLogger("probewatch.scheduler")
settings = get_settings()

TICK_JOB_ID = "health_check_tick"
DAILY_UPTIME_JOB_ID = "daily_uptime"

scheduler = AsyncIOScheduler(timezone=settings.timezone)
_tick_interval_ms: int | None = None


def schedule_tick(interval_ms: int, immediate: bool = True) -> None:
    """Add or replace the tick job at a fixed delay of ``interval_ms``.

    From inside a running tick pass ``immediate=False``: the running instance
    still counts against ``max_instances``, so an immediate run would be skipped.
    """
    global _tick_interval_ms
    options = {"next_run_time": datetime.now(timezone.utc)} if immediate else {}
    scheduler.add_job(
        run_scheduled_tick,
        trigger=IntervalTrigger(seconds=interval_ms / 1000),
        id=TICK_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        **options,
    )
    _tick_interval_ms = interval_ms


async def run_scheduled_tick() -> None:
    """Run one dispatcher tick; errors are logged and the next tick still fires."""
    dispatcher = get_dispatcher()
    try:
        await dispatcher.run_tick()
    except Exception:
        logger.exception("Health check tick failed")

    snapshot = dispatcher.last_snapshot
    if snapshot is not None and snapshot.scheduler_interval_ms != _tick_interval_ms:
        logger.info(f"Scheduler interval changed to {snapshot.scheduler_interval_ms}ms")
        schedule_tick(snapshot.scheduler_interval_ms, immediate=False)


async def run_daily_uptime() -> None:
    try:
        async with get_session_factory()() as db:
            await calculate_daily_uptime(db)
    except Exception:
        logger.exception("Error in daily uptime calculation")


async def start_scheduler() -> None:
    """Read the persisted settings, schedule both jobs and start the scheduler."""
    snapshot = await get_dispatcher().load_snapshot()
    schedule_tick(snapshot.scheduler_interval_ms)

    if settings.uptime_history_enabled:
        scheduler.add_job(
            run_daily_uptime,
            trigger=CronTrigger(hour=0, minute=5, timezone=settings.timezone),
            id=DAILY_UPTIME_JOB_ID,
            replace_existing=True,
            max_instances=1,
        )

    scheduler.start()
    logger.info(
        f"Scheduler started (tick every {snapshot.scheduler_interval_ms}ms, "
        f"pool size {snapshot.thread_pool_size}, checks {'enabled' if snapshot.enabled else 'disabled'})"
    )


async def stop_scheduler() -> None:
    """Stop scheduling new ticks, then wait for probes already in flight."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    await get_dispatcher().drain()
