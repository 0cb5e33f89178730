"""
Entity check registry: enumerates checkable platforms, apps and components and
resolves the effective check configuration each one is probed with.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from probewatch.clock import ensure_utc
from probewatch.exceptions import EntityNotCheckableError, EntityNotFoundError
from probewatch.models.app import StatusApp
from probewatch.models.component import StatusComponent
from probewatch.models.platform import StatusPlatform
from probewatch.settings_store import SchedulerSnapshot
from probewatch.statuses import APP, CHECK_NONE, COMPONENT, PLATFORM

MODELS = {
    PLATFORM: StatusPlatform,
    APP: StatusApp,
    COMPONENT: StatusComponent,
}


@dataclass(frozen=True)
class EffectiveCheck:
    entity_type: str
    entity_id: str
    name: str
    check_type: str
    target: str
    interval_seconds: int
    timeout_seconds: int
    expected_status: int | None
    failure_threshold: int
    last_check_at: datetime | None = None
    # Inheriting components whose state follows this app's probe
    dependent_ids: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_type, self.entity_id)

    def is_due(self, now: datetime) -> bool:
        if self.last_check_at is None:
            return True
        return now - self.last_check_at >= timedelta(seconds=self.interval_seconds)


def _check_problem(source) -> str | None:
    if not source.check_enabled:
        return "Health checking is not enabled"
    if not source.check_type or source.check_type == CHECK_NONE:
        return "No check type configured"
    if not source.check_url or not source.check_url.strip():
        return "No check URL configured"
    return None


def resolve_check_config(
    entity_type: str,
    entity,
    snapshot: SchedulerSnapshot,
    parent: StatusApp | None = None,
) -> EffectiveCheck | None:
    """Return the config ``entity`` is probed with, or None when it has no runnable check.

    An inheriting component takes every check field from ``parent``; its own
    check columns are ignored even when ``check_enabled`` is set on it.
    """
    source = entity
    if entity_type == COMPONENT and entity.check_inherit_from_app:
        source = parent
        if source is None:
            return None
    if _check_problem(source) is not None:
        return None

    return EffectiveCheck(
        entity_type=entity_type,
        entity_id=entity.id,
        name=entity.name,
        check_type=source.check_type,
        target=source.check_url.strip(),
        interval_seconds=source.check_interval_seconds or snapshot.default_interval_seconds,
        timeout_seconds=source.check_timeout_seconds or snapshot.default_timeout_seconds,
        expected_status=source.check_expected_status,
        failure_threshold=max(1, source.check_failure_threshold or snapshot.default_failure_threshold),
        last_check_at=ensure_utc(entity.last_check_at),
        dependent_ids=tuple(
            c.id for c in entity.components if c.check_inherit_from_app
        ) if entity_type == APP else (),
    )


async def list_candidates(
    db: AsyncSession,
    snapshot: SchedulerSnapshot,
    now: datetime | None = None,
) -> list[EffectiveCheck]:
    """All independently scheduled entities with a runnable check.

    When ``now`` is given only entities due at that instant are returned.
    Inheriting components are never returned on their own; they ride along
    with their app through ``dependent_ids``.
    """
    candidates: list[EffectiveCheck] = []

    platforms = await db.execute(
        select(StatusPlatform).where(StatusPlatform.check_enabled == True)  # noqa: E712
    )
    for platform in platforms.scalars().all():
        check = resolve_check_config(PLATFORM, platform, snapshot)
        if check:
            candidates.append(check)

    apps = await db.execute(
        select(StatusApp)
        .where(StatusApp.check_enabled == True)  # noqa: E712
        .options(selectinload(StatusApp.components))
    )
    for app in apps.scalars().all():
        check = resolve_check_config(APP, app, snapshot)
        if check:
            candidates.append(check)

    components = await db.execute(
        select(StatusComponent).where(
            StatusComponent.check_inherit_from_app == False,  # noqa: E712
            StatusComponent.check_enabled == True,  # noqa: E712
        )
    )
    for component in components.scalars().all():
        check = resolve_check_config(COMPONENT, component, snapshot)
        if check:
            candidates.append(check)

    if now is not None:
        candidates = [c for c in candidates if c.is_due(now)]
    return candidates


async def list_due_candidates(
    db: AsyncSession, snapshot: SchedulerSnapshot, now: datetime
) -> list[EffectiveCheck]:
    return await list_candidates(db, snapshot, now=now)


async def load_entity(db: AsyncSession, entity_type: str, entity_id: str):
    model = MODELS.get(entity_type)
    if model is None:
        return None
    query = select(model).where(model.id == entity_id)
    if entity_type == APP:
        query = query.options(selectinload(StatusApp.components))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def resolve_entity_check(
    db: AsyncSession, entity_type: str, entity_id: str, snapshot: SchedulerSnapshot
) -> EffectiveCheck:
    """Effective check for one entity, or EntityNotCheckableError explaining why not."""
    label = entity_type.lower()
    entity = await load_entity(db, entity_type, entity_id)
    if entity is None:
        raise EntityNotFoundError(f"{label.capitalize()} not found: {entity_id}")

    if entity_type == COMPONENT and entity.check_inherit_from_app:
        raise EntityNotCheckableError(
            "Component inherits check from app, trigger the app check instead"
        )

    problem = _check_problem(entity)
    if problem is not None:
        raise EntityNotCheckableError(f"{problem} for this {label}")

    return resolve_check_config(entity_type, entity, snapshot)
