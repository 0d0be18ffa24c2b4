"""Sitemap and performance-derived indexing issues from Search Console."""

import logging
from datetime import date

from seo_reporter.integrations.google_search_console import GoogleSearchConsole
from seo_reporter.modules.reporting.schemas import TechnicalIssue, TechnicalIssues

logger = logging.getLogger(__name__)

MIN_INDEXED_RATIO = 0.8
ZERO_CLICK_MIN_IMPRESSIONS = 100
DEEP_POSITION = 50
DEEP_POSITION_MIN_IMPRESSIONS = 50


class TechnicalIssueScanner:
    """Best-effort technical checks.  Search Console failures yield no issues."""

    def __init__(self, gsc: GoogleSearchConsole):
        self._gsc = gsc

    def fetch_sitemap_issues(self, site_url: str) -> list[TechnicalIssue]:
        try:
            sitemaps = self._gsc.list_sitemaps(site_url)
        except Exception as exc:
            logger.error("Could not fetch sitemaps for %s: %s", site_url, exc)
            return []

        issues: list[TechnicalIssue] = []
        for sitemap in sitemaps:
            path = sitemap.get("path") or "Unknown sitemap"
            for content in sitemap.get("contents", []):
                submitted = content.get("submitted") or 0
                indexed = content.get("indexed")
                if not submitted or indexed is None:
                    continue
                if indexed < submitted * MIN_INDEXED_RATIO:
                    issues.append(TechnicalIssue(
                        page=path,
                        issue=(
                            f"Low indexing rate: {indexed}/{submitted} URLs indexed "
                            f"({round(indexed / submitted * 100)}%)"
                        ),
                        severity="warning",
                    ))
                if indexed == 0:
                    issues.append(TechnicalIssue(
                        page=path,
                        issue=f"Sitemap has {submitted} URLs but none are indexed",
                        severity="error",
                    ))
        return issues

    def identify_potential_issues(self, site_url: str, start: date, end: date) -> list[TechnicalIssue]:
        """Flag pages with impressions but no clicks, and pages ranking very deep."""
        try:
            rows = self._gsc.fetch_range(site_url, start, end, dimension="page", row_limit=1000)
        except Exception as exc:
            logger.error("Could not fetch page rows for %s: %s", site_url, exc)
            return []

        issues: list[TechnicalIssue] = []
        for row in rows:
            page = row.get("page") or "Unknown"
            impressions = row.get("impressions", 0)
            if impressions > ZERO_CLICK_MIN_IMPRESSIONS and not row.get("clicks"):
                issues.append(TechnicalIssue(
                    page=page,
                    issue=(
                        f"High impressions ({impressions}) but zero clicks - "
                        f"possible indexing or content mismatch"
                    ),
                    severity="warning",
                ))
            position = row.get("position", 0.0)
            if position > DEEP_POSITION and impressions > DEEP_POSITION_MIN_IMPRESSIONS:
                issues.append(TechnicalIssue(
                    page=page,
                    issue=(
                        f"Low average position ({position:.1f}) with {impressions} impressions - "
                        f"may need content optimization"
                    ),
                    severity="info",
                ))
        return issues

    def get_all_technical_issues(self, site_url: str, start: date, end: date) -> TechnicalIssues:
        issues = TechnicalIssues(
            sitemap_issues=self.fetch_sitemap_issues(site_url),
            potential_issues=self.identify_potential_issues(site_url, start, end),
        )
        logger.info(
            "Technical issues for %s: %d errors, %d warnings",
            site_url, issues.total_errors, issues.total_warnings,
        )
        return issues
