import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Boolean, DateTime, Integer, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from probewatch.database import Base
from probewatch.models.mixins import CheckConfigMixin


class StatusComponent(CheckConfigMixin, Base):
    __tablename__ = "status_components"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    app_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("status_apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="OPERATIONAL")
    position: Mapped[int] = mapped_column(Integer, default=0)
    check_inherit_from_app: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    app: Mapped["StatusApp"] = relationship(back_populates="components")  # noqa: F821
