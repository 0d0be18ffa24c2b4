"""Daily Search Console metric SQLAlchemy models (site, page, and query level)."""

from datetime import date as date_type, datetime, timezone

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from seo_reporter.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyMetric(Base):
    """Site-wide totals for one calendar day."""

    __tablename__ = "daily_metrics"
    __table_args__ = (UniqueConstraint("site_id", "date", name="uq_daily_metric_site_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impressions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ctr: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return (
            f"<DailyMetric site={self.site_id} date={self.date} "
            f"clicks={self.clicks} impr={self.impressions}>"
        )


class PageMetric(Base):
    """Per-page metrics for one calendar day."""

    __tablename__ = "page_metrics"
    __table_args__ = (
        UniqueConstraint("site_id", "date", "page", name="uq_page_metric_site_date_page"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    page: Mapped[str] = mapped_column(String(2048), nullable=False, index=True)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impressions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ctr: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<PageMetric site={self.site_id} date={self.date} page={self.page!r}>"


class QueryMetric(Base):
    """Per-query metrics for one calendar day."""

    __tablename__ = "query_metrics"
    __table_args__ = (
        UniqueConstraint("site_id", "date", "query", name="uq_query_metric_site_date_query"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    query: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impressions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ctr: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<QueryMetric site={self.site_id} date={self.date} query={self.query!r}>"
