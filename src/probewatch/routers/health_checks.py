from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from probewatch.auth import Operator, get_current_operator, require_manager
from probewatch.database import get_db
from probewatch.dispatcher import HealthCheckDispatcher, TriggerResult, get_dispatcher
from probewatch.exceptions import ConfigurationError, EntityNotFoundError
from probewatch.models.app import StatusApp
from probewatch.models.component import StatusComponent
from probewatch.models.platform import StatusPlatform
from probewatch.schemas import (
    EntityCheckStatus,
    HealthCheckSettingsResponse,
    HealthCheckSettingsUpdate,
    HealthCheckStatusResponse,
    TriggerResponse,
)
from probewatch.settings_store import load_snapshot, update_settings
from probewatch.statuses import APP, COMPONENT, ENTITY_STATUSES, PLATFORM

router = APIRouter(prefix="/api/health-checks", tags=["health-checks"])


def _settings_response(snapshot) -> HealthCheckSettingsResponse:
    return HealthCheckSettingsResponse(
        enabled=snapshot.enabled,
        scheduler_interval_ms=snapshot.scheduler_interval_ms,
        thread_pool_size=snapshot.thread_pool_size,
        default_interval_seconds=snapshot.default_interval_seconds,
        default_timeout_seconds=snapshot.default_timeout_seconds,
    )


def _entity_status(entity_type: str, entity, platform_id=None, app_id=None) -> EntityCheckStatus:
    return EntityCheckStatus(
        entity_type=entity_type,
        id=entity.id,
        name=entity.name,
        status=entity.status,
        platform_id=platform_id,
        app_id=app_id,
        check_enabled=bool(entity.check_enabled),
        check_type=entity.check_type or "NONE",
        check_url=entity.check_url,
        check_interval_seconds=entity.check_interval_seconds,
        last_check_at=entity.last_check_at,
        last_check_success=entity.last_check_success,
        last_check_message=entity.last_check_message,
        consecutive_failures=entity.consecutive_failures or 0,
    )


def _trigger_response(result: TriggerResult) -> TriggerResponse:
    return TriggerResponse(
        success=result.success,
        message=result.message,
        duration_ms=result.duration_ms,
        entities_checked=result.entities_checked,
    )


async def _trigger(dispatcher: HealthCheckDispatcher, entity_type: str, entity_id: str) -> TriggerResponse:
    try:
        result = await dispatcher.trigger_entity(entity_type, entity_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return _trigger_response(result)


@router.get("/settings", response_model=HealthCheckSettingsResponse)
async def get_health_check_settings(
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    return _settings_response(await load_snapshot(db))


@router.put("/settings", response_model=HealthCheckSettingsResponse)
async def update_health_check_settings(
    body: HealthCheckSettingsUpdate,
    operator: Operator = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    try:
        await update_settings(db, body.changes())
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return _settings_response(await load_snapshot(db))


@router.get("/status", response_model=HealthCheckStatusResponse)
async def get_health_check_status(
    platform_id: Optional[str] = Query(None, alias="platformId"),
    status_filter: Optional[str] = Query(None, alias="status"),
    check_enabled: Optional[bool] = Query(None, alias="checkEnabled"),
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    """Check state of every platform, app and non-inheriting component."""
    if status_filter and status_filter not in ENTITY_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status: {status_filter}. Use one of {', '.join(ENTITY_STATUSES)}",
        )
    platform_query = select(StatusPlatform).order_by(StatusPlatform.name)
    app_query = select(StatusApp).order_by(StatusApp.name)
    component_query = (
        select(StatusComponent, StatusApp.platform_id)
        .join(StatusApp, StatusComponent.app_id == StatusApp.id)
        .where(StatusComponent.check_inherit_from_app == False)  # noqa: E712
        .order_by(StatusComponent.position, StatusComponent.name)
    )

    if platform_id:
        platform_query = platform_query.where(StatusPlatform.id == platform_id)
        app_query = app_query.where(StatusApp.platform_id == platform_id)
        component_query = component_query.where(StatusApp.platform_id == platform_id)
    if status_filter:
        platform_query = platform_query.where(StatusPlatform.status == status_filter)
        app_query = app_query.where(StatusApp.status == status_filter)
        component_query = component_query.where(StatusComponent.status == status_filter)
    if check_enabled is not None:
        platform_query = platform_query.where(StatusPlatform.check_enabled == check_enabled)
        app_query = app_query.where(StatusApp.check_enabled == check_enabled)
        component_query = component_query.where(StatusComponent.check_enabled == check_enabled)

    entities = []
    for platform in (await db.execute(platform_query)).scalars().all():
        entities.append(_entity_status(PLATFORM, platform))
    for app in (await db.execute(app_query)).scalars().all():
        entities.append(_entity_status(APP, app, platform_id=app.platform_id))
    for component, component_platform_id in (await db.execute(component_query)).all():
        entities.append(
            _entity_status(COMPONENT, component, platform_id=component_platform_id, app_id=component.app_id)
        )

    return HealthCheckStatusResponse(
        total_entities=len(entities),
        enabled_checks=sum(1 for e in entities if e.check_enabled),
        healthy=sum(1 for e in entities if e.check_enabled and e.last_check_success is True),
        unhealthy=sum(1 for e in entities if e.check_enabled and e.last_check_success is False),
        entities=entities,
    )


@router.post("/trigger/all", response_model=TriggerResponse)
async def trigger_all_checks(
    operator: Operator = Depends(require_manager),
    dispatcher: HealthCheckDispatcher = Depends(get_dispatcher),
):
    try:
        result = await dispatcher.trigger_all()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return _trigger_response(result)


@router.post("/trigger/platform/{platform_id}", response_model=TriggerResponse)
async def trigger_platform_check(
    platform_id: str,
    operator: Operator = Depends(require_manager),
    dispatcher: HealthCheckDispatcher = Depends(get_dispatcher),
):
    return await _trigger(dispatcher, PLATFORM, platform_id)


@router.post("/trigger/app/{app_id}", response_model=TriggerResponse)
async def trigger_app_check(
    app_id: str,
    operator: Operator = Depends(require_manager),
    dispatcher: HealthCheckDispatcher = Depends(get_dispatcher),
):
    return await _trigger(dispatcher, APP, app_id)


@router.post("/trigger/component/{component_id}", response_model=TriggerResponse)
async def trigger_component_check(
    component_id: str,
    operator: Operator = Depends(require_manager),
    dispatcher: HealthCheckDispatcher = Depends(get_dispatcher),
):
    return await _trigger(dispatcher, COMPONENT, component_id)
