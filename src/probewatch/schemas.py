from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from probewatch.settings_store import INT_BOUNDS


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Health Check Settings ---

class HealthCheckSettingsUpdate(CamelModel):
    enabled: Optional[bool] = None
    scheduler_interval_ms: Optional[int] = None
    thread_pool_size: Optional[int] = None
    default_interval_seconds: Optional[int] = None
    default_timeout_seconds: Optional[int] = None

    @field_validator(
        "scheduler_interval_ms",
        "thread_pool_size",
        "default_interval_seconds",
        "default_timeout_seconds",
    )
    @classmethod
    def within_bounds(cls, v: Optional[int], info: ValidationInfo) -> Optional[int]:
        if v is not None:
            low, high = INT_BOUNDS[info.field_name]
            if v < low or v > high:
                raise ValueError(f"{info.field_name} must be between {low} and {high}")
        return v

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class HealthCheckSettingsResponse(CamelModel):
    enabled: bool
    scheduler_interval_ms: int
    thread_pool_size: int
    default_interval_seconds: int
    default_timeout_seconds: int


# --- Health Check Status ---

class EntityCheckStatus(CamelModel):
    entity_type: str
    id: str
    name: str
    status: str
    platform_id: Optional[str] = None
    app_id: Optional[str] = None
    check_enabled: bool
    check_type: str
    check_url: Optional[str] = None
    check_interval_seconds: Optional[int] = None
    last_check_at: Optional[datetime] = None
    last_check_success: Optional[bool] = None
    last_check_message: Optional[str] = None
    consecutive_failures: int = 0


class HealthCheckStatusResponse(CamelModel):
    total_entities: int
    enabled_checks: int
    healthy: int
    unhealthy: int
    entities: list[EntityCheckStatus]


class TriggerResponse(CamelModel):
    success: bool
    message: str
    duration_ms: int
    entities_checked: int = 1


# --- Uptime History ---

class UptimeResponse(CamelModel):
    message: str
    days_processed: Optional[int] = None
    record_date: Optional[date] = None


class UptimeRecordResponse(CamelModel):
    id: str
    platform_id: Optional[str] = None
    app_id: Optional[str] = None
    component_id: Optional[str] = None
    record_date: date
    status: str
    uptime_percentage: Decimal
    total_minutes: int
    operational_minutes: int
    degraded_minutes: int
    outage_minutes: int
    maintenance_minutes: int
    incident_count: int
    maintenance_count: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
