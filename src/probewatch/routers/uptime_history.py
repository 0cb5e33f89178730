from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from probewatch.auth import Operator, get_current_operator, require_manager
from probewatch.database import get_db
from probewatch.exceptions import ConfigurationError
from probewatch.registry import MODELS
from probewatch.schemas import UptimeRecordResponse, UptimeResponse
from probewatch.statuses import ENTITY_TYPES
from probewatch.uptime import (
    EntityRef,
    backfill_uptime_history,
    calculate_daily_uptime,
    calculate_uptime_for_all,
    get_uptime_history,
    validate_backfill_days,
)

router = APIRouter(prefix="/api/uptime-history", tags=["uptime-history"])


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date format. Use yyyy-MM-dd",
        )


@router.post("/backfill", response_model=UptimeResponse)
async def backfill(
    days: int = Query(90),
    operator: Operator = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    try:
        validate_backfill_days(days)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    processed = await backfill_uptime_history(db, days)
    return UptimeResponse(
        message=f"Backfill completed for {processed} days",
        days_processed=processed,
    )


@router.post("/calculate", response_model=UptimeResponse)
async def calculate(
    date_str: str = Query(..., alias="date"),
    operator: Operator = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    day = _parse_date(date_str)
    try:
        await calculate_uptime_for_all(db, day)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return UptimeResponse(message=f"Uptime calculated for {day}", record_date=day)


@router.post("/trigger-daily", response_model=UptimeResponse)
async def trigger_daily(
    operator: Operator = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    day = await calculate_daily_uptime(db)
    return UptimeResponse(message=f"Daily uptime calculation completed for {day}", record_date=day)


@router.get("/{entity_type}/{entity_id}", response_model=list[UptimeRecordResponse])
async def uptime_history(
    entity_type: str,
    entity_id: str,
    days: int = Query(90),
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db),
):
    kind = entity_type.upper()
    if kind not in ENTITY_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown entity type: {entity_type}",
        )
    try:
        validate_backfill_days(days)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    if await db.get(MODELS[kind], entity_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{kind.capitalize()} not found: {entity_id}",
        )

    records = await get_uptime_history(db, EntityRef(kind, entity_id), days)
    return [UptimeRecordResponse.model_validate(r) for r in records]
