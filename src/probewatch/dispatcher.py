"""
Health check dispatcher: runs due probes on a bounded pool and records their outcomes.

One tick: snapshot settings, collect due entities, dispatch them with at most
``thread_pool_size`` probes in flight, then wait for every dispatched probe to
finish before the tick returns. Probes for the same entity never overlap: a
second request for an entity that is already being probed waits for and shares
the running probe's result.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from probewatch.clock import utcnow
from probewatch.database import get_session_factory
from probewatch.exceptions import ConfigurationError
from probewatch.probes import ProbeOutcome, run_probe
from probewatch.registry import (
    EffectiveCheck,
    list_candidates,
    list_due_candidates,
    resolve_entity_check,
)
from probewatch.settings_store import SchedulerSnapshot, load_snapshot
from probewatch.transitions import apply_outcome

logger = logging.getLogger("probewatch.dispatcher")

ProbeRunner = Callable[[str, str, float, int | None], Awaitable[ProbeOutcome]]


@dataclass
class CheckRun:
    check: EffectiveCheck
    outcome: ProbeOutcome
    recorded: bool
    duration_ms: int


@dataclass
class TickReport:
    skipped: bool
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    unrecorded: int = 0
    duration_ms: int = 0


@dataclass
class TriggerResult:
    success: bool
    message: str
    duration_ms: int
    entities_checked: int = 1


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class WorkerPool:
    """Resizable bound on probes in flight, shared by ticks and manual triggers."""

    def __init__(self, size: int) -> None:
        self.size = size
        self.active = 0
        self._changed = asyncio.Condition()

    async def resize(self, size: int) -> None:
        async with self._changed:
            self.size = size
            self._changed.notify_all()

    async def __aenter__(self) -> "WorkerPool":
        async with self._changed:
            await self._changed.wait_for(lambda: self.active < self.size)
            self.active += 1
        return self

    async def __aexit__(self, *exc) -> None:
        async with self._changed:
            self.active -= 1
            self._changed.notify_all()


class HealthCheckDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        probe: ProbeRunner = run_probe,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._probe = probe
        self._clock = clock
        self._inflight: dict[tuple[str, str], asyncio.Task] = {}
        self._tick_lock = asyncio.Lock()
        self.pool = WorkerPool(SchedulerSnapshot.defaults().thread_pool_size)
        self.last_snapshot: SchedulerSnapshot | None = None

    async def load_snapshot(self) -> SchedulerSnapshot:
        async with self._session_factory() as db:
            snapshot = await load_snapshot(db)
        self.last_snapshot = snapshot
        if snapshot.thread_pool_size != self.pool.size:
            await self.pool.resize(snapshot.thread_pool_size)
        return snapshot

    async def run_tick(self) -> TickReport:
        """Run one Collecting -> Dispatching -> Draining cycle."""
        async with self._tick_lock:
            start = time.monotonic()
            snapshot = await self.load_snapshot()
            if not snapshot.enabled:
                logger.debug("Health checks are globally disabled, skipping tick")
                return TickReport(skipped=True)

            async with self._session_factory() as db:
                due = await list_due_candidates(db, snapshot, self._clock())

            runs = await self._dispatch(due)
            report = TickReport(
                skipped=False,
                dispatched=len(runs),
                succeeded=sum(1 for r in runs if r.outcome.success),
                failed=sum(1 for r in runs if not r.outcome.success),
                unrecorded=sum(1 for r in runs if not r.recorded),
                duration_ms=_elapsed_ms(start),
            )
            logger.debug(
                f"Tick complete: {report.dispatched} checked, {report.failed} failed, "
                f"{report.unrecorded} unrecorded in {report.duration_ms}ms"
            )
            return report

    async def trigger_all(self) -> TriggerResult:
        """Probe every checkable entity now, ignoring intervals, and wait for all of them."""
        start = time.monotonic()
        snapshot = await self._require_enabled()
        logger.info("Manual trigger: running all health checks")

        async with self._session_factory() as db:
            candidates = await list_candidates(db, snapshot)
        runs = await self._dispatch(candidates)

        logger.info(f"Manual trigger: checked {len(runs)} entities")
        return TriggerResult(
            success=True,
            message=f"Checked {len(runs)} entities",
            duration_ms=_elapsed_ms(start),
            entities_checked=len(runs),
        )

    async def trigger_entity(self, entity_type: str, entity_id: str) -> TriggerResult:
        """Probe one entity now, sharing the result if a probe for it is already running."""
        start = time.monotonic()
        snapshot = await self._require_enabled()
        logger.info(f"Manual trigger: running health check for {entity_type.lower()} {entity_id}")

        async with self._session_factory() as db:
            check = await resolve_entity_check(db, entity_type, entity_id, snapshot)

        run = await self._run_serialized(check)
        return TriggerResult(
            success=run.outcome.success,
            message=run.outcome.message,
            duration_ms=_elapsed_ms(start),
        )

    async def drain(self) -> None:
        """Wait for probes that are still running (used on shutdown)."""
        pending = list(self._inflight.values())
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight health check(s)")
            await asyncio.gather(*pending, return_exceptions=True)

    async def _require_enabled(self) -> SchedulerSnapshot:
        snapshot = await self.load_snapshot()
        if not snapshot.enabled:
            raise ConfigurationError("Health checks are globally disabled")
        return snapshot

    async def _dispatch(self, checks: list[EffectiveCheck]) -> list[CheckRun]:
        if not checks:
            return []
        return list(await asyncio.gather(*(self._run_serialized(c) for c in checks)))

    async def _run_serialized(self, check: EffectiveCheck) -> CheckRun:
        task = self._inflight.get(check.key)
        if task is None:
            task = asyncio.create_task(self._probe_and_record(check))
            self._inflight[check.key] = task

            def _forget(done: asyncio.Task, key=check.key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)
        else:
            logger.debug(f"{check.entity_type} {check.name} already being checked, sharing result")
        return await asyncio.shield(task)

    async def _probe_and_record(self, check: EffectiveCheck) -> CheckRun:
        async with self.pool:
            start = time.monotonic()
            try:
                outcome = await self._probe(
                    check.check_type, check.target, check.timeout_seconds, check.expected_status
                )
            except Exception as e:
                outcome = ProbeOutcome(False, f"Check error: {str(e)[:200]}")

            if outcome.success:
                logger.debug(f"{check.entity_type} {check.name} check successful: {outcome.message}")

            try:
                async with self._session_factory() as db:
                    await apply_outcome(db, check, outcome, self._clock())
            except Exception:
                logger.exception(
                    f"Failed to record check result for {check.entity_type} {check.name}; "
                    f"it will be retried next tick"
                )
                return CheckRun(check, outcome, recorded=False, duration_ms=_elapsed_ms(start))

            return CheckRun(check, outcome, recorded=True, duration_ms=_elapsed_ms(start))


_dispatcher: HealthCheckDispatcher | None = None


def get_dispatcher() -> HealthCheckDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = HealthCheckDispatcher()
    return _dispatcher
