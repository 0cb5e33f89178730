import uuid
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from probewatch.database import Base


class MaintenanceWindow(Base):
    __tablename__ = "status_maintenance"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    app_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="SCHEDULED")
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)

    app: Mapped["StatusApp"] = relationship(back_populates="maintenances")  # noqa: F821
    component_links: Mapped[list["MaintenanceComponent"]] = relationship(
        back_populates="maintenance", cascade="all, delete-orphan"
    )


class MaintenanceComponent(Base):
    __tablename__ = "status_maintenance_components"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    maintenance_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_maintenance.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_components.id", ondelete="CASCADE"), nullable=False, index=True
    )

    maintenance: Mapped["MaintenanceWindow"] = relationship(back_populates="component_links")
