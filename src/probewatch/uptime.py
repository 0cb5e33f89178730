"""
Uptime aggregator: rebuilds a minute-by-minute timeline of one day from incidents
and maintenance windows, and upserts the resulting daily uptime record.

Each minute is classified exactly once by the most severe condition active in it:
outage incident > degraded incident > maintenance > operational.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import null, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from probewatch.clock import ensure_utc, utcnow
from probewatch.config import get_settings
from probewatch.exceptions import AggregationError, ConfigurationError, EntityNotFoundError, UptimeDateError
from probewatch.models.app import StatusApp
from probewatch.models.component import StatusComponent
from probewatch.models.incident import Incident, IncidentComponent
from probewatch.models.maintenance import MaintenanceComponent, MaintenanceWindow
from probewatch.models.platform import StatusPlatform
from probewatch.models.uptime_record import UptimeRecord
from probewatch.registry import MODELS
from probewatch.statuses import (
    APP,
    CANCELLED,
    COMPONENT,
    DEGRADED,
    MAJOR_OUTAGE,
    OPERATIONAL,
    OUTAGE_SEVERITIES,
    PARTIAL_OUTAGE,
    PLATFORM,
)

logger = logging.getLogger("probewatch.uptime")
settings = get_settings()

# Minute classes, ordered by precedence
MINUTE_OPERATIONAL = 0
MINUTE_MAINTENANCE = 1
MINUTE_DEGRADED = 2
MINUTE_OUTAGE = 3

RECORD_COLUMNS = {
    PLATFORM: UptimeRecord.platform_id,
    APP: UptimeRecord.app_id,
    COMPONENT: UptimeRecord.component_id,
}


@dataclass(frozen=True)
class EntityRef:
    entity_type: str
    entity_id: str


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime
    level: int


@dataclass
class DaySummary:
    total_minutes: int
    operational_minutes: int
    degraded_minutes: int
    outage_minutes: int
    maintenance_minutes: int
    incident_count: int
    maintenance_count: int
    uptime_percentage: Decimal
    status: str

    @property
    def is_consistent(self) -> bool:
        return (
            self.operational_minutes + self.degraded_minutes
            + self.outage_minutes + self.maintenance_minutes
        ) == self.total_minutes


def reference_zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def today_in_reference_zone(now: datetime | None = None) -> date:
    return (now or utcnow()).astimezone(reference_zone()).date()


def day_bounds(day: date, tz: ZoneInfo | None = None) -> tuple[datetime, datetime]:
    """UTC instants of local midnight at the start and end of ``day``."""
    tz = tz or reference_zone()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def severity_level(severity: str | None) -> int:
    return MINUTE_OUTAGE if severity in OUTAGE_SEVERITIES else MINUTE_DEGRADED


def component_status_level(component_status: str | None) -> int:
    if component_status in (MAJOR_OUTAGE, PARTIAL_OUTAGE):
        return MINUTE_OUTAGE
    if component_status == DEGRADED:
        return MINUTE_DEGRADED
    return MINUTE_OPERATIONAL


def classify_minutes(day_start: datetime, day_end: datetime, intervals: list[Interval]) -> list[int]:
    total = int((day_end - day_start).total_seconds() // 60)
    minutes = [MINUTE_OPERATIONAL] * total
    for interval in intervals:
        start = max(interval.start, day_start)
        end = min(interval.end, day_end)
        if end <= start:
            continue
        # A minute counts if the interval touches any part of it
        first = int((start - day_start).total_seconds() // 60)
        last = min(total, math.ceil((end - day_start).total_seconds() / 60))
        for minute in range(first, last):
            if minutes[minute] < interval.level:
                minutes[minute] = interval.level
    return minutes


def summarize(
    minutes: list[int],
    incident_count: int,
    maintenance_count: int,
    degraded_weight: float | None = None,
) -> DaySummary:
    weight = Decimal(str(settings.uptime_degraded_weight if degraded_weight is None else degraded_weight))
    total = len(minutes)
    outage = minutes.count(MINUTE_OUTAGE)
    degraded = minutes.count(MINUTE_DEGRADED)
    maintenance = minutes.count(MINUTE_MAINTENANCE)
    operational = minutes.count(MINUTE_OPERATIONAL)

    if total:
        down = Decimal(outage) + Decimal(degraded) * weight
        uptime = (Decimal(100) * (Decimal(total) - down) / Decimal(total)).quantize(
            Decimal("0.001"), rounding=ROUND_HALF_UP
        )
    else:
        uptime = Decimal("100.000")

    if outage:
        status = MAJOR_OUTAGE
    elif degraded:
        status = DEGRADED
    else:
        status = OPERATIONAL

    return DaySummary(
        total_minutes=total,
        operational_minutes=operational,
        degraded_minutes=degraded,
        outage_minutes=outage,
        maintenance_minutes=maintenance,
        incident_count=incident_count,
        maintenance_count=maintenance_count,
        uptime_percentage=uptime,
        status=status,
    )


async def _load_intervals(
    db: AsyncSession, ref: EntityRef, day_start: datetime, day_end: datetime, now: datetime
) -> tuple[list[Interval], int, int]:
    """Incident and maintenance intervals touching the day, plus their distinct counts."""
    overlaps_day = (
        Incident.started_at < day_end,
        Incident.started_at < now,
        or_(Incident.resolved_at.is_(None), Incident.resolved_at > day_start),
    )
    maintenance_query = select(MaintenanceWindow).where(
        MaintenanceWindow.status != CANCELLED,
        MaintenanceWindow.starts_at < day_end,
        MaintenanceWindow.ends_at > day_start,
    )

    if ref.entity_type == COMPONENT:
        incident_query = (
            select(Incident, IncidentComponent.component_status)
            .join(IncidentComponent, IncidentComponent.incident_id == Incident.id)
            .where(IncidentComponent.component_id == ref.entity_id, *overlaps_day)
        )
        maintenance_query = maintenance_query.join(
            MaintenanceComponent, MaintenanceComponent.maintenance_id == MaintenanceWindow.id
        ).where(MaintenanceComponent.component_id == ref.entity_id)
    else:
        if ref.entity_type == PLATFORM:
            app_filter = Incident.app_id.in_(
                select(StatusApp.id).where(StatusApp.platform_id == ref.entity_id)
            )
            maintenance_filter = MaintenanceWindow.app_id.in_(
                select(StatusApp.id).where(StatusApp.platform_id == ref.entity_id)
            )
        else:
            app_filter = Incident.app_id == ref.entity_id
            maintenance_filter = MaintenanceWindow.app_id == ref.entity_id
        incident_query = select(Incident, null()).where(app_filter, *overlaps_day)
        maintenance_query = maintenance_query.where(maintenance_filter)

    # incident id -> (incident, worst level)
    incidents: dict[str, tuple[Incident, int]] = {}
    for incident, component_status in (await db.execute(incident_query)).all():
        level = max(severity_level(incident.severity), component_status_level(component_status))
        if incident.id in incidents:
            level = max(level, incidents[incident.id][1])
        incidents[incident.id] = (incident, level)

    maintenances = {m.id: m for m in (await db.execute(maintenance_query)).scalars().all()}

    intervals = []
    for incident, level in incidents.values():
        end = ensure_utc(incident.resolved_at) or now
        intervals.append(Interval(ensure_utc(incident.started_at), min(end, now), level))
    for window in maintenances.values():
        intervals.append(
            Interval(ensure_utc(window.starts_at), ensure_utc(window.ends_at), MINUTE_MAINTENANCE)
        )
    return intervals, len(incidents), len(maintenances)


def validate_past_date(day: date, now: datetime | None = None) -> None:
    if day >= today_in_reference_zone(now):
        raise UptimeDateError("Cannot calculate uptime for today or future dates")


async def compute_day_summary(
    db: AsyncSession, ref: EntityRef, day: date, now: datetime | None = None
) -> DaySummary:
    now = now or utcnow()
    day_start, day_end = day_bounds(day)
    intervals, incident_count, maintenance_count = await _load_intervals(db, ref, day_start, day_end, now)
    minutes = classify_minutes(day_start, day_end, intervals)
    return summarize(minutes, incident_count, maintenance_count)


async def calculate_uptime_for_date(
    db: AsyncSession, ref: EntityRef, day: date, now: datetime | None = None
) -> UptimeRecord:
    """Compute and upsert the uptime record for one entity on one fully elapsed day."""
    now = now or utcnow()
    validate_past_date(day, now)

    model = MODELS.get(ref.entity_type)
    if model is None or await db.get(model, ref.entity_id) is None:
        raise EntityNotFoundError(f"{ref.entity_type.capitalize()} not found: {ref.entity_id}")

    summary = await compute_day_summary(db, ref, day, now)
    if not summary.is_consistent:
        logger.error(f"Minute totals inconsistent for {ref} on {day}, recomputing")
        summary = await compute_day_summary(db, ref, day, now)
        if not summary.is_consistent:
            raise AggregationError(f"Minute totals do not add up for {ref.entity_type} {ref.entity_id} on {day}")

    try:
        record = await _upsert_record(db, ref, day, summary)
        await db.commit()
    except IntegrityError:
        # A concurrent run inserted the same (entity, date) first; overwrite its row
        await db.rollback()
        logger.info(f"Uptime record for {ref} on {day} written concurrently, updating it")
        record = await _upsert_record(db, ref, day, summary)
        await db.commit()

    logger.debug(
        f"Saved uptime record for {ref.entity_type.lower()} {ref.entity_id} on {day}: "
        f"{summary.uptime_percentage}% (outage: {summary.outage_minutes}min, "
        f"degraded: {summary.degraded_minutes}min, maintenance: {summary.maintenance_minutes}min)"
    )
    return record


async def _upsert_record(
    db: AsyncSession, ref: EntityRef, day: date, summary: DaySummary
) -> UptimeRecord:
    column = RECORD_COLUMNS[ref.entity_type]
    result = await db.execute(
        select(UptimeRecord).where(column == ref.entity_id, UptimeRecord.record_date == day)
    )
    record = result.scalars().first()
    if record is None:
        record = UptimeRecord(record_date=day)
        setattr(record, column.key, ref.entity_id)
        db.add(record)

    record.status = summary.status
    record.uptime_percentage = summary.uptime_percentage
    record.total_minutes = summary.total_minutes
    record.operational_minutes = summary.operational_minutes
    record.degraded_minutes = summary.degraded_minutes
    record.outage_minutes = summary.outage_minutes
    record.maintenance_minutes = summary.maintenance_minutes
    record.incident_count = summary.incident_count
    record.maintenance_count = summary.maintenance_count
    return record


async def list_entity_refs(db: AsyncSession) -> list[EntityRef]:
    refs = []
    for entity_type, model in ((PLATFORM, StatusPlatform), (APP, StatusApp), (COMPONENT, StatusComponent)):
        result = await db.execute(select(model.id).order_by(model.id))
        refs.extend(EntityRef(entity_type, entity_id) for entity_id in result.scalars().all())
    return refs


async def calculate_uptime_for_all(
    db: AsyncSession, day: date, now: datetime | None = None
) -> int:
    """Upsert uptime for every platform, app and component; returns how many succeeded."""
    now = now or utcnow()
    validate_past_date(day, now)

    processed = 0
    for ref in await list_entity_refs(db):
        try:
            await calculate_uptime_for_date(db, ref, day, now)
            processed += 1
        except Exception as e:
            await db.rollback()
            logger.error(f"Error calculating uptime for {ref.entity_type.lower()} {ref.entity_id} on {day}: {e}")

    logger.debug(f"Uptime calculation completed for {processed} entities on {day}")
    return processed


def validate_backfill_days(days: int) -> None:
    limit = settings.max_backfill_days
    if days < 1 or days > limit:
        raise ConfigurationError(f"days must be between 1 and {limit}")


async def backfill_uptime_history(
    db: AsyncSession, days: int, now: datetime | None = None
) -> int:
    """Recompute the last ``days`` full days, oldest first; returns days processed."""
    validate_backfill_days(days)
    now = now or utcnow()
    today = today_in_reference_zone(now)
    logger.info(f"Starting uptime history backfill for {days} days")

    has_entities = bool(await list_entity_refs(db))
    processed = 0
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset)
        try:
            if await calculate_uptime_for_all(db, day, now) or not has_entities:
                processed += 1
            else:
                logger.warning(f"No uptime records could be calculated for date {day}")
        except Exception as e:
            await db.rollback()
            logger.error(f"Error backfilling uptime for date {day}: {e}")

    logger.info(f"Completed uptime history backfill: {processed} days processed")
    return processed


async def calculate_daily_uptime(db: AsyncSession, now: datetime | None = None) -> date:
    """Compute yesterday's uptime for every entity (the daily batch job)."""
    now = now or utcnow()
    yesterday = today_in_reference_zone(now) - timedelta(days=1)
    logger.info(f"Starting daily uptime calculation for date: {yesterday}")
    await calculate_uptime_for_all(db, yesterday, now)
    logger.info(f"Completed daily uptime calculation for date: {yesterday}")
    return yesterday


async def get_uptime_history(
    db: AsyncSession, ref: EntityRef, days: int, now: datetime | None = None
) -> list[UptimeRecord]:
    column = RECORD_COLUMNS[ref.entity_type]
    since = today_in_reference_zone(now) - timedelta(days=days)
    result = await db.execute(
        select(UptimeRecord)
        .where(column == ref.entity_id, UptimeRecord.record_date >= since)
        .order_by(UptimeRecord.record_date)
    )
    return list(result.scalars().all())
