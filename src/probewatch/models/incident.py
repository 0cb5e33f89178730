import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from probewatch.database import Base


class Incident(Base):
    __tablename__ = "status_incidents"
    __table_args__ = (
        Index("ix_status_incidents_source_open", "source_type", "source_id", "resolved_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    app_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="INVESTIGATING")
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="MINOR")  # CRITICAL, MAJOR, MINOR
    impact: Mapped[str | None] = mapped_column(String(50), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)  # "system" for automated incidents
    # Probed entity that opened a system incident (APP or COMPONENT)
    source_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    app: Mapped["StatusApp"] = relationship(back_populates="incidents")  # noqa: F821
    component_links: Mapped[list["IncidentComponent"]] = relationship(
        back_populates="incident", cascade="all, delete-orphan"
    )


class IncidentComponent(Base):
    __tablename__ = "status_incident_components"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    incident_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_incidents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_components.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_status: Mapped[str] = mapped_column(String(50), nullable=False)

    incident: Mapped["Incident"] = relationship(back_populates="component_links")
