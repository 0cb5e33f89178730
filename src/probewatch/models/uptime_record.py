import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from sqlalchemy import String, Date, DateTime, Integer, Numeric, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from probewatch.database import Base


class UptimeRecord(Base):
    __tablename__ = "status_uptime_history"
    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN platform_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN app_id IS NULL THEN 0 ELSE 1 END"
            " + CASE WHEN component_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_uptime_single_entity",
        ),
        UniqueConstraint("platform_id", "record_date", name="uq_uptime_platform_date"),
        UniqueConstraint("app_id", "record_date", name="uq_uptime_app_date"),
        UniqueConstraint("component_id", "record_date", name="uq_uptime_component_date"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    platform_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("status_platforms.id", ondelete="CASCADE"), nullable=True
    )
    app_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("status_apps.id", ondelete="CASCADE"), nullable=True
    )
    component_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("status_components.id", ondelete="CASCADE"), nullable=True
    )
    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="OPERATIONAL")
    uptime_percentage: Mapped[Decimal] = mapped_column(
        Numeric(6, 3, asdecimal=True), nullable=False, default=Decimal("100.000")
    )
    total_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=1440)
    operational_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=1440)
    degraded_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    outage_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    maintenance_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incident_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    maintenance_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
