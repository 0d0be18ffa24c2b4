"""Outbound API usage audit and schedule configuration models."""

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from seo_reporter.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiType(str, enum.Enum):
    GOOGLE = "GOOGLE"
    OPENAI = "OPENAI"
    GEMINI = "GEMINI"


class JobType(str, enum.Enum):
    DATA_COLLECTION = "DATA_COLLECTION"
    REPORT_GENERATION = "REPORT_GENERATION"


class ApiUsage(Base):
    """One row per outbound call attempt.  Written, never read by reporting."""

    __tablename__ = "api_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_type: Mapped[ApiType] = mapped_column(Enum(ApiType), nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cost_estimate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<ApiUsage id={self.id} api={self.api_type.value} "
            f"endpoint={self.endpoint!r} success={self.success}>"
        )


class ScheduleConfig(Base):
    """Enable/disable switch and run bookkeeping for a scheduled job."""

    __tablename__ = "schedule_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_type: Mapped[JobType] = mapped_column(Enum(JobType), nullable=False, unique=True)
    cron_expression: Mapped[str] = mapped_column(String(100), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_run: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleConfig job={self.job_type.value} cron={self.cron_expression!r} "
            f"enabled={self.is_enabled}>"
        )
