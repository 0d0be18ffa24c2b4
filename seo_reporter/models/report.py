"""Weekly report SQLAlchemy model."""

import json
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from seo_reporter.database import Base
from seo_reporter.errors import ReportDataError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeeklyReport(Base):
    """Persisted report for one site and one period.

    ``top_pages`` and ``top_queries`` hold JSON text snapshots of the top-N
    lists at generation time.  The row is upserted on
    (site_id, week_start_date, week_end_date).
    """

    __tablename__ = "weekly_reports"
    __table_args__ = (
        UniqueConstraint(
            "site_id", "week_start_date", "week_end_date", name="uq_weekly_report_site_window"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), default="week", nullable=False)
    total_clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_impressions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_ctr: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    average_position: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    clicks_change: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    impressions_change: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    ctr_change: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    position_change: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    top_pages: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    top_queries: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    insights: Mapped[str] = mapped_column(Text, default="", nullable=False)
    recommendations: Mapped[str] = mapped_column(Text, default="", nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def top_pages_list(self) -> list[dict[str, Any]]:
        return self._decode("top_pages", self.top_pages)

    def top_queries_list(self) -> list[dict[str, Any]]:
        return self._decode("top_queries", self.top_queries)

    def _decode(self, field: str, raw: Optional[str]) -> list[dict[str, Any]]:
        try:
            value = json.loads(raw or "[]")
        except json.JSONDecodeError as exc:
            raise ReportDataError(
                f"WeeklyReport {self.id}: {field} is not valid JSON ({exc})"
            ) from exc
        if not isinstance(value, list):
            raise ReportDataError(
                f"WeeklyReport {self.id}: {field} must be a JSON array, got {type(value).__name__}"
            )
        return value

    def __repr__(self) -> str:
        return (
            f"<WeeklyReport id={self.id} site={self.site_id} "
            f"{self.week_start_date}..{self.week_end_date}>"
        )
