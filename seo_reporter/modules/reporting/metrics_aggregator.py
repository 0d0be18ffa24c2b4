"""Period totals, top-N extraction, and period-over-period deltas."""

import logging
from datetime import date

from sqlalchemy import func, select

from seo_reporter.database import Database
from seo_reporter.models.metrics import DailyMetric, PageMetric, QueryMetric
from seo_reporter.modules.reporting.schemas import (
    ComparisonMetrics,
    DailyPoint,
    PeriodMetrics,
    TopPage,
    TopQuery,
)

logger = logging.getLogger(__name__)


def pct_change(current: float, previous: float) -> float:
    """Signed percentage change; 0 when there is no previous value.

    A move from zero to a positive value therefore reports 0%, not an
    infinite or "new" change.
    """
    if previous > 0:
        return (current - previous) / previous * 100
    return 0.0


def compare_periods(current: PeriodMetrics, previous: PeriodMetrics) -> ComparisonMetrics:
    return ComparisonMetrics(
        current=current,
        previous=previous,
        clicks_change=pct_change(current.total_clicks, previous.total_clicks),
        impressions_change=pct_change(current.total_impressions, previous.total_impressions),
        ctr_change=pct_change(current.average_ctr, previous.average_ctr),
        position_change=current.average_position - previous.average_position,
    )


class MetricsAggregator:
    """Read-only aggregate queries over the stored daily metrics.

    Usage::

        agg = MetricsAggregator(db)
        current = agg.period_metrics(site_id, start, end)
        previous = agg.period_metrics(site_id, prev_start, prev_end)
        comparison = agg.compare(current, previous)
        pages = agg.top_pages(site_id, start, end, limit=10)
    """

    def __init__(self, db: Database):
        self._db = db

    def period_metrics(self, site_id: int, start: date, end: date) -> PeriodMetrics:
        """Sum clicks/impressions and average CTR/position over ``[start, end]``.

        The averages are plain means over the daily rows, not
        impression-weighted.
        """
        stmt = select(
            func.count(DailyMetric.id),
            func.coalesce(func.sum(DailyMetric.clicks), 0),
            func.coalesce(func.sum(DailyMetric.impressions), 0),
            func.coalesce(func.avg(DailyMetric.ctr), 0.0),
            func.coalesce(func.avg(DailyMetric.position), 0.0),
        ).where(
            DailyMetric.site_id == site_id,
            DailyMetric.date >= start,
            DailyMetric.date <= end,
        )
        with self._db.session() as session:
            count, clicks, impressions, ctr, position = session.execute(stmt).one()

        if not count:
            logger.debug("No daily metrics for site %s in %s..%s", site_id, start, end)
            return PeriodMetrics()
        return PeriodMetrics(
            total_clicks=int(clicks),
            total_impressions=int(impressions),
            average_ctr=float(ctr),
            average_position=float(position),
        )

    def top_pages(self, site_id: int, start: date, end: date, limit: int = 10) -> list[TopPage]:
        rows = self._top_n(PageMetric, PageMetric.page, site_id, start, end, limit)
        return [TopPage(page=label, clicks=c, impressions=i, ctr=ctr, position=p) for label, c, i, ctr, p in rows]

    def top_queries(self, site_id: int, start: date, end: date, limit: int = 10) -> list[TopQuery]:
        rows = self._top_n(QueryMetric, QueryMetric.query, site_id, start, end, limit)
        return [TopQuery(query=label, clicks=c, impressions=i, ctr=ctr, position=p) for label, c, i, ctr, p in rows]

    def _top_n(self, model, label_column, site_id: int, start: date, end: date, limit: int):
        """Group by ``label_column``; order by summed clicks, ties by first insert."""
        if limit <= 0:
            return []
        clicks = func.sum(model.clicks)
        stmt = (
            select(
                label_column,
                clicks,
                func.sum(model.impressions),
                func.avg(model.ctr),
                func.avg(model.position),
            )
            .where(model.site_id == site_id, model.date >= start, model.date <= end)
            .group_by(label_column)
            .order_by(clicks.desc(), func.min(model.id).asc())
            .limit(limit)
        )
        with self._db.session() as session:
            result = session.execute(stmt).all()
        return [
            (label, int(c or 0), int(i or 0), float(ctr or 0.0), float(p or 0.0))
            for label, c, i, ctr, p in result
        ]

    def daily_series(self, site_id: int, start: date, end: date) -> list[DailyPoint]:
        stmt = (
            select(DailyMetric)
            .where(
                DailyMetric.site_id == site_id,
                DailyMetric.date >= start,
                DailyMetric.date <= end,
            )
            .order_by(DailyMetric.date)
        )
        with self._db.session() as session:
            return [
                DailyPoint(
                    date=m.date,
                    clicks=m.clicks,
                    impressions=m.impressions,
                    ctr=m.ctr,
                    position=m.position,
                )
                for m in session.scalars(stmt)
            ]

    @staticmethod
    def compare(current: PeriodMetrics, previous: PeriodMetrics) -> ComparisonMetrics:
        return compare_periods(current, previous)
