"""Pull Search Console rows into the daily/page/query metric tables."""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select

from seo_reporter.database import Database
from seo_reporter.errors import ErrorKind, SiteNotFoundError, error_kind
from seo_reporter.integrations.google_search_console import GoogleSearchConsole
from seo_reporter.models.metrics import DailyMetric, PageMetric, QueryMetric
from seo_reporter.models.site import Site
from seo_reporter.utils.dates import GSC_LAG_DAYS, collection_day

logger = logging.getLogger(__name__)

_METRIC_FIELDS = ("clicks", "impressions", "ctr", "position")


@dataclass
class CollectionResult:
    site_id: int
    day: date
    daily_stored: bool = False
    pages_stored: int = 0
    queries_stored: int = 0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BackfillSummary:
    site_id: int
    results: list[CollectionResult] = field(default_factory=list)

    @property
    def days_ok(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def days_failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


class DataCollector:
    """Upserts one day of Search Console data per site on the natural key.

    Usage::

        collector = DataCollector(db, gsc)
        result = collector.collect_all_metrics(site_id, date(2025, 1, 12))
        collector.collect_for_active_sites()      # default day: today - 3
        collector.backfill(site_id, days=30)
    """

    def __init__(self, db: Database, gsc: GoogleSearchConsole):
        self._db = db
        self._gsc = gsc

    def _site_url(self, site_id: int) -> str:
        with self._db.session() as session:
            site = session.get(Site, site_id)
            if site is None:
                raise SiteNotFoundError(f"Site {site_id} not found")
            return site.google_site_url

    # ------------------------------------------------------------------
    # Single-dimension collection
    # ------------------------------------------------------------------

    def collect_daily_metrics(self, site_id: int, day: date, site_url: Optional[str] = None) -> bool:
        """Store the site-wide totals for ``day``.  Returns False if GSC had no row."""
        site_url = site_url or self._site_url(site_id)
        rows = self._gsc.fetch_range(site_url, day, day, dimension="date")
        if not rows:
            logger.info("No site data for %s on %s", site_url, day)
            return False
        row = rows[0]

        with self._db.session() as session:
            metric = session.scalar(
                select(DailyMetric).where(DailyMetric.site_id == site_id, DailyMetric.date == day)
            )
            if metric is None:
                metric = DailyMetric(site_id=site_id, date=day)
                session.add(metric)
            for name in _METRIC_FIELDS:
                setattr(metric, name, row.get(name) or 0)
        logger.info("Stored daily metrics for site %s on %s", site_id, day)
        return True

    def collect_page_metrics(self, site_id: int, day: date, site_url: Optional[str] = None) -> int:
        site_url = site_url or self._site_url(site_id)
        rows = self._gsc.fetch_range(site_url, day, day, dimension="page")
        stored = self._upsert_breakdown(PageMetric, PageMetric.page, "page", site_id, day, rows)
        logger.info("Stored %d page metrics for site %s on %s", stored, site_id, day)
        return stored

    def collect_query_metrics(self, site_id: int, day: date, site_url: Optional[str] = None) -> int:
        site_url = site_url or self._site_url(site_id)
        rows = self._gsc.fetch_range(site_url, day, day, dimension="query")
        stored = self._upsert_breakdown(QueryMetric, QueryMetric.query, "query", site_id, day, rows)
        logger.info("Stored %d query metrics for site %s on %s", stored, site_id, day)
        return stored

    def _upsert_breakdown(self, model, key_column, key: str, site_id: int, day: date, rows: list[dict]) -> int:
        if not rows:
            return 0
        stored = 0
        with self._db.session() as session:
            existing = {
                getattr(m, key): m
                for m in session.scalars(
                    select(model).where(model.site_id == site_id, model.date == day)
                )
            }
            for row in rows:
                label = row.get(key)
                if not label:
                    continue
                metric = existing.get(label)
                if metric is None:
                    metric = model(site_id=site_id, date=day, **{key: label})
                    session.add(metric)
                    existing[label] = metric
                for name in _METRIC_FIELDS:
                    setattr(metric, name, row.get(name) or 0)
                stored += 1
        return stored

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    def collect_all_metrics(self, site_id: int, day: Optional[date] = None) -> CollectionResult:
        """Collect site, page, and query data for one site and day.

        A Search Console failure is recorded on the result rather than
        raised; a missing site is raised.
        """
        day = day or collection_day()
        site_url = self._site_url(site_id)
        result = CollectionResult(site_id=site_id, day=day)
        try:
            result.daily_stored = self.collect_daily_metrics(site_id, day, site_url)
            result.pages_stored = self.collect_page_metrics(site_id, day, site_url)
            result.queries_stored = self.collect_query_metrics(site_id, day, site_url)
        except Exception as exc:
            logger.error("Collection failed for site %s on %s: %s", site_id, day, exc)
            result.error = str(exc)
            result.error_kind = error_kind(exc)
        return result

    def collect_for_active_sites(self, day: Optional[date] = None) -> list[CollectionResult]:
        day = day or collection_day()
        with self._db.session() as session:
            site_ids = list(
                session.scalars(select(Site.id).where(Site.is_active.is_(True)).order_by(Site.id))
            )
        logger.info("Collecting %s for %d active site(s)", day, len(site_ids))
        return [self.collect_all_metrics(site_id, day) for site_id in site_ids]

    def backfill(self, site_id: int, days: int = 30, today: Optional[date] = None) -> BackfillSummary:
        """Collect each day from ``today - days`` up to ``today - 3``, oldest first."""
        today = today or date.today()
        summary = BackfillSummary(site_id=site_id)
        for offset in range(days, GSC_LAG_DAYS - 1, -1):
            summary.results.append(self.collect_all_metrics(site_id, today - timedelta(days=offset)))
        logger.info(
            "Backfill for site %s: %d day(s) ok, %d failed",
            site_id, summary.days_ok, summary.days_failed,
        )
        return summary
