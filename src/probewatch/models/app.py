import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from probewatch.database import Base
from probewatch.models.mixins import CheckConfigMixin


class StatusApp(CheckConfigMixin, Base):
    __tablename__ = "status_apps"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    platform_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("status_platforms.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="OPERATIONAL")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    platform: Mapped["StatusPlatform"] = relationship(back_populates="apps")  # noqa: F821
    components: Mapped[list["StatusComponent"]] = relationship(  # noqa: F821
        back_populates="app", cascade="all, delete-orphan"
    )
    incidents: Mapped[list["Incident"]] = relationship(  # noqa: F821
        back_populates="app", cascade="all, delete-orphan"
    )
    maintenances: Mapped[list["MaintenanceWindow"]] = relationship(  # noqa: F821
        back_populates="app", cascade="all, delete-orphan"
    )
