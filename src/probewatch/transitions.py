"""
Status transition engine: folds a probe outcome into an entity's check state and
opens or resolves the automated incident that tracks a sustained outage.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from probewatch.clock import ensure_utc, utcnow
from probewatch.models.component import StatusComponent
from probewatch.models.incident import Incident, IncidentComponent
from probewatch.probes import ProbeOutcome
from probewatch.registry import EffectiveCheck, load_entity
from probewatch.statuses import (
    APP,
    COMPONENT,
    CRITICAL,
    INVESTIGATING,
    MAJOR_OUTAGE,
    OPERATIONAL,
    PLATFORM,
    RESOLVED,
    SYSTEM_USER,
)

logger = logging.getLogger("probewatch.transitions")


@dataclass
class TransitionResult:
    status: str
    consecutive_failures: int
    incident_opened: bool = False
    incident_resolved: bool = False


async def find_open_automated_incidents(
    db: AsyncSession, source_type: str, source_id: str
) -> list[Incident]:
    result = await db.execute(
        select(Incident)
        .where(
            Incident.created_by == SYSTEM_USER,
            Incident.resolved_at.is_(None),
            Incident.source_type == source_type,
            Incident.source_id == source_id,
        )
        .order_by(Incident.started_at.desc())
    )
    return list(result.scalars().all())


def _record_result(entity, outcome: ProbeOutcome, now: datetime, failures: int) -> None:
    entity.last_check_at = now
    entity.last_check_success = outcome.success
    entity.last_check_message = outcome.message
    entity.consecutive_failures = failures


async def apply_outcome(
    db: AsyncSession,
    check: EffectiveCheck,
    outcome: ProbeOutcome,
    now: datetime | None = None,
) -> TransitionResult | None:
    """Apply one probe outcome to the entity behind ``check`` and commit.

    Incidents are edge-triggered: one opens when the failure counter reaches the
    threshold exactly, and later failures leave it alone.
    """
    now = now or utcnow()
    entity = await load_entity(db, check.entity_type, check.entity_id)
    if entity is None:
        logger.info(f"{check.entity_type} {check.entity_id} disappeared before its result was recorded")
        return None

    previous_failures = entity.consecutive_failures or 0
    result = TransitionResult(status=entity.status, consecutive_failures=0)

    if outcome.success:
        _record_result(entity, outcome, now, 0)
        if previous_failures > 0:
            result.incident_resolved = await _recover(db, check, entity, previous_failures, now)
    else:
        failures = previous_failures + 1
        _record_result(entity, outcome, now, failures)
        logger.warning(
            f"{check.entity_type} {entity.name} check failed ({failures}/{check.failure_threshold}): "
            f"{outcome.message}"
        )
        if failures == check.failure_threshold:
            result.incident_opened = await _open_outage(db, check, entity, outcome, now)

    if check.dependent_ids:
        await _sync_dependents(
            db, check, entity, outcome, now,
            outage_started=(
                not outcome.success and entity.consecutive_failures == check.failure_threshold
            ),
            recovered=result.incident_resolved,
        )

    result.status = entity.status
    result.consecutive_failures = entity.consecutive_failures
    await db.commit()
    return result


async def _open_outage(
    db: AsyncSession, check: EffectiveCheck, entity, outcome: ProbeOutcome, now: datetime
) -> bool:
    previous_status = entity.status
    entity.status = MAJOR_OUTAGE
    logger.warning(
        f"{check.entity_type} {entity.name} changed from {previous_status} to MAJOR_OUTAGE "
        f"after {entity.consecutive_failures} consecutive failures"
    )

    # Incidents belong to apps; platforms only carry the status
    if check.entity_type == PLATFORM:
        return False

    if await find_open_automated_incidents(db, check.entity_type, check.entity_id):
        return False

    if check.entity_type == APP:
        app_id = entity.id
        linked = list(check.dependent_ids)
    else:
        app_id = entity.app_id
        linked = [entity.id]

    incident = Incident(
        app_id=app_id,
        title=f"{entity.name} is down",
        description=outcome.message,
        status=INVESTIGATING,
        severity=CRITICAL,
        impact=MAJOR_OUTAGE,
        started_at=now,
        created_by=SYSTEM_USER,
        source_type=check.entity_type,
        source_id=check.entity_id,
    )
    incident.component_links = [
        IncidentComponent(component_id=component_id, component_status=MAJOR_OUTAGE)
        for component_id in linked
    ]
    db.add(incident)
    logger.warning(f"INCIDENT: {entity.name} ({check.target}) is DOWN - {outcome.message}")
    return True


async def _recover(
    db: AsyncSession, check: EffectiveCheck, entity, previous_failures: int, now: datetime
) -> bool:
    if check.entity_type == PLATFORM:
        if entity.status == MAJOR_OUTAGE and previous_failures >= check.failure_threshold:
            entity.status = OPERATIONAL
            logger.info(f"PLATFORM {entity.name} auto-restored to OPERATIONAL")
        return False

    open_incidents = await find_open_automated_incidents(db, check.entity_type, check.entity_id)
    if not open_incidents:
        return False

    for incident in open_incidents:
        incident.status = RESOLVED
        incident.resolved_at = now
    previous_status = entity.status
    entity.status = OPERATIONAL

    started = ensure_utc(open_incidents[-1].started_at)
    logger.info(
        f"RESOLVED: {entity.name} ({check.target}) is back UP after {_format_duration(now - started)} "
        f"(was {previous_status})"
    )
    return True


async def _sync_dependents(
    db: AsyncSession,
    check: EffectiveCheck,
    app,
    outcome: ProbeOutcome,
    now: datetime,
    outage_started: bool,
    recovered: bool,
) -> None:
    """Mirror the app's probe state onto components that inherit its check."""
    result = await db.execute(
        select(StatusComponent).where(StatusComponent.id.in_(check.dependent_ids))
    )
    for component in result.scalars().all():
        _record_result(component, outcome, now, app.consecutive_failures)
        if outage_started:
            component.status = MAJOR_OUTAGE
        elif recovered and component.status == MAJOR_OUTAGE:
            component.status = OPERATIONAL
            logger.info(f"{COMPONENT} {component.name} auto-restored with app {app.name}")


def _format_duration(delta: timedelta) -> str:
    """Format a timedelta as a human-readable string."""
    total_seconds = max(0, int(delta.total_seconds()))
    if total_seconds < 60:
        return f"{total_seconds}s"
    elif total_seconds < 3600:
        minutes = total_seconds // 60
        return f"{minutes}m"
    elif total_seconds < 86400:
        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    else:
        days = total_seconds // 86400
        hours = (total_seconds % 86400) // 3600
        return f"{days}d {hours}h" if hours else f"{days}d"
