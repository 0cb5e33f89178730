from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column


class CheckConfigMixin:
    """Probe configuration and last-result columns shared by every checkable entity."""

    check_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    check_type: Mapped[str] = mapped_column(String(30), default="NONE")  # NONE, PING, HTTP_GET, TCP_PORT, SERVICE_HEALTH
    check_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    check_interval_seconds: Mapped[int | None] = mapped_column(Integer, default=60)
    check_timeout_seconds: Mapped[int | None] = mapped_column(Integer, default=10)
    check_expected_status: Mapped[int | None] = mapped_column(Integer, default=200)
    check_failure_threshold: Mapped[int | None] = mapped_column(Integer, default=3)

    last_check_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_check_success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    last_check_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0)
