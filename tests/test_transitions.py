"""Tests for failure counting, automated incidents and recovery."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from probewatch.models import Incident, StatusApp, StatusComponent, StatusPlatform
from probewatch.probes import ProbeOutcome
from probewatch.registry import resolve_entity_check
from probewatch.settings_store import SchedulerSnapshot
from probewatch.transitions import _format_duration, apply_outcome, find_open_automated_incidents

T0 = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
UP = ProbeOutcome(True, "HTTP 200 (12ms)", 12)
DOWN = ProbeOutcome(False, "HTTP 503 (expected 200)", 40)


async def run_outcomes(db, entity_type, entity_id, outcomes, start=T0):
    check = await resolve_entity_check(db, entity_type, entity_id, SchedulerSnapshot.defaults())
    results = []
    for i, outcome in enumerate(outcomes):
        results.append(await apply_outcome(db, check, outcome, start + timedelta(minutes=i)))
    return results


async def system_incidents(db, app_id):
    result = await db.execute(
        select(Incident)
        .where(Incident.app_id == app_id, Incident.created_by == "system")
        .options(selectinload(Incident.component_links))
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_failures_below_threshold_keep_status(db, checked_app):
    app_id = checked_app["app"].id
    results = await run_outcomes(db, "APP", app_id, [DOWN, DOWN])

    assert [r.consecutive_failures for r in results] == [1, 2]
    assert results[-1].status == "OPERATIONAL"
    assert await system_incidents(db, app_id) == []


@pytest.mark.asyncio
async def test_threshold_opens_exactly_one_incident(db, checked_app):
    app_id = checked_app["app"].id
    results = await run_outcomes(db, "APP", app_id, [DOWN, DOWN, DOWN, DOWN, DOWN])

    assert [r.incident_opened for r in results] == [False, False, True, False, False]
    assert results[-1].status == "MAJOR_OUTAGE"
    assert results[-1].consecutive_failures == 5

    incidents = await system_incidents(db, app_id)
    assert len(incidents) == 1
    incident = incidents[0]
    assert incident.severity == "CRITICAL"
    assert incident.status == "INVESTIGATING"
    assert incident.title == "Billing API is down"
    assert incident.source_type == "APP"
    assert [link.component_id for link in incident.component_links] == [checked_app["inheriting"].id]
    assert incident.component_links[0].component_status == "MAJOR_OUTAGE"


@pytest.mark.asyncio
async def test_success_resets_counter_and_resolves_incident(db, checked_app):
    app_id = checked_app["app"].id
    results = await run_outcomes(db, "APP", app_id, [DOWN, DOWN, DOWN, UP])

    assert results[-1].incident_resolved is True
    assert results[-1].status == "OPERATIONAL"
    assert results[-1].consecutive_failures == 0

    incidents = await system_incidents(db, app_id)
    assert len(incidents) == 1
    assert incidents[0].status == "RESOLVED"
    assert incidents[0].resolved_at is not None
    assert await find_open_automated_incidents(db, "APP", app_id) == []


@pytest.mark.asyncio
async def test_success_before_threshold_resolves_nothing(db, checked_app):
    app_id = checked_app["app"].id
    results = await run_outcomes(db, "APP", app_id, [DOWN, UP])

    assert results[-1].incident_resolved is False
    assert results[-1].consecutive_failures == 0


@pytest.mark.asyncio
async def test_second_outage_opens_new_incident(db, checked_app):
    app_id = checked_app["app"].id
    await run_outcomes(db, "APP", app_id, [DOWN, DOWN, DOWN, UP, DOWN, DOWN, DOWN])

    incidents = await system_incidents(db, app_id)
    assert len(incidents) == 2
    assert sum(1 for i in incidents if i.resolved_at is None) == 1


@pytest.mark.asyncio
async def test_inheriting_components_follow_app(db, checked_app):
    app_id = checked_app["app"].id
    inheriting_id = checked_app["inheriting"].id
    own_id = checked_app["own"].id

    await run_outcomes(db, "APP", app_id, [DOWN, DOWN, DOWN])
    db.expire_all()
    inheriting = await db.get(StatusComponent, inheriting_id)
    own = await db.get(StatusComponent, own_id)
    assert inheriting.status == "MAJOR_OUTAGE"
    assert inheriting.consecutive_failures == 3
    assert inheriting.last_check_success is False
    assert own.status == "OPERATIONAL"
    assert own.last_check_at is None

    await run_outcomes(db, "APP", app_id, [UP], start=T0 + timedelta(hours=1))
    db.expire_all()
    inheriting = await db.get(StatusComponent, inheriting_id)
    assert inheriting.status == "OPERATIONAL"
    assert inheriting.consecutive_failures == 0


@pytest.mark.asyncio
async def test_component_incident_opens_on_parent_app(db, checked_app):
    own_id = checked_app["own"].id
    app_id = checked_app["app"].id
    results = await run_outcomes(db, "COMPONENT", own_id, [DOWN, DOWN])

    assert results[-1].incident_opened is True
    incidents = await system_incidents(db, app_id)
    assert len(incidents) == 1
    assert incidents[0].source_type == "COMPONENT"
    assert incidents[0].source_id == own_id
    assert [link.component_id for link in incidents[0].component_links] == [own_id]

    db.expire_all()
    app = await db.get(StatusApp, app_id)
    assert app.status == "OPERATIONAL"


@pytest.mark.asyncio
async def test_platform_outage_has_no_incident(db):
    platform = StatusPlatform(
        name="Edge",
        check_enabled=True,
        check_type="PING",
        check_url="edge.example.com",
        check_failure_threshold=2,
    )
    db.add(platform)
    await db.commit()

    results = await run_outcomes(db, "PLATFORM", platform.id, [DOWN, DOWN, UP])

    assert results[1].status == "MAJOR_OUTAGE"
    assert results[1].incident_opened is False
    assert results[2].status == "OPERATIONAL"
    assert (await db.execute(select(Incident))).scalars().all() == []


@pytest.mark.asyncio
async def test_manual_status_left_alone_on_recovery(db, checked_app):
    app = checked_app["app"]
    app.status = "DEGRADED"
    await db.commit()

    results = await run_outcomes(db, "APP", app.id, [DOWN, UP])

    assert results[-1].status == "DEGRADED"


def test_format_duration():
    assert _format_duration(timedelta(seconds=42)) == "42s"
    assert _format_duration(timedelta(minutes=5)) == "5m"
    assert _format_duration(timedelta(hours=2, minutes=3)) == "2h 3m"
    assert _format_duration(timedelta(days=1, hours=4)) == "1d 4h"
