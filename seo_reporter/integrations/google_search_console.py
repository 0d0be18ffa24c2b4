"""Google Search Console client for search analytics rows and sitemap status."""

import json
import logging
import os
from datetime import date
from typing import Any, Optional

from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials
from googleapiclient.discovery import build

from seo_reporter.errors import ConfigurationError, ExternalServiceError
from seo_reporter.integrations.api_tracking import ApiUsageTracker
from seo_reporter.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

GSC_SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]
DIMENSIONS = ("date", "page", "query")
MAX_ROW_LIMIT = 25000

QUERY_ENDPOINT = "/searchconsole/v1/searchanalytics/query"
SITEMAPS_ENDPOINT = "/searchconsole/v1/sitemaps/list"


class GoogleSearchConsole:
    """Client for the Search Console API, shared across all tracked sites.

    The credentials file is either a service-account key or an
    authorized-user file holding a refresh token; the ``type`` field in the
    JSON decides which loader is used.

    Usage::

        gsc = GoogleSearchConsole("config/gsc_credentials.json", tracker=tracker)
        rows = gsc.fetch_range("sc-domain:example.com", start, end, "query")
        sitemaps = gsc.list_sitemaps("sc-domain:example.com")
    """

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        tracker: Optional[ApiUsageTracker] = None,
        requests_per_minute: int = 600,
    ):
        self._credentials_path = credentials_path or os.getenv(
            "GSC_CREDENTIALS_PATH", "config/gsc_credentials.json"
        )
        self._tracker = tracker
        self._limiter = RateLimiter.per_minute(requests_per_minute, name="gsc")
        self._service = None

    def authenticate(self) -> None:
        """Build the API service from the credentials file."""
        if not os.path.isfile(self._credentials_path):
            raise ConfigurationError(f"GSC credentials not found: {self._credentials_path}")
        with open(self._credentials_path, "r", encoding="utf-8") as fh:
            info = json.load(fh)

        if info.get("type") == "authorized_user":
            credentials = UserCredentials.from_authorized_user_info(info, scopes=GSC_SCOPES)
        else:
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=GSC_SCOPES
            )
        self._service = build("searchconsole", "v1", credentials=credentials, cache_discovery=False)
        logger.info("Authenticated with Google Search Console (%s).", info.get("type", "service_account"))

    def _ensure_auth(self) -> None:
        if self._service is None:
            self.authenticate()

    def _log_call(self, endpoint: str, success: bool, error: Optional[str] = None) -> None:
        if self._tracker is not None:
            self._tracker.log_google_call(endpoint, success, error)

    # ------------------------------------------------------------------
    # Search analytics
    # ------------------------------------------------------------------

    def fetch_range(
        self,
        site_url: str,
        start: date,
        end: date,
        dimension: str = "date",
        row_limit: int = MAX_ROW_LIMIT,
    ) -> list[dict[str, Any]]:
        """Fetch clicks, impressions, CTR and position grouped by one dimension.

        Args:
            site_url: Search Console property (URL prefix or ``sc-domain:``).
            start: First day, inclusive.
            end: Last day, inclusive.
            dimension: ``"date"``, ``"page"`` or ``"query"``.
            row_limit: Page size; the API maximum is 25000.

        Returns:
            Rows like ``{"query": "...", "clicks": 3, "impressions": 120,
            "ctr": 0.025, "position": 7.4}``.  An empty list is a valid
            result.

        Raises:
            ExternalServiceError: The API call failed.
        """
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unsupported dimension: {dimension!r}")
        self._ensure_auth()
        row_limit = min(row_limit, MAX_ROW_LIMIT)

        rows: list[dict[str, Any]] = []
        start_row = 0
        while True:
            body = {
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "dimensions": [dimension],
                "rowLimit": row_limit,
                "startRow": start_row,
            }
            try:
                with self._limiter:
                    response = (
                        self._service.searchanalytics()
                        .query(siteUrl=site_url, body=body)
                        .execute()
                    )
            except Exception as exc:
                logger.error("GSC query failed for %s (%s): %s", site_url, dimension, exc)
                self._log_call(QUERY_ENDPOINT, False, str(exc))
                raise ExternalServiceError(f"Search Console query failed: {exc}") from exc
            self._log_call(QUERY_ENDPOINT, True)

            batch = response.get("rows", [])
            for raw in batch:
                keys = raw.get("keys") or [""]
                rows.append({
                    dimension: keys[0],
                    "clicks": int(raw.get("clicks", 0)),
                    "impressions": int(raw.get("impressions", 0)),
                    "ctr": float(raw.get("ctr", 0.0)),
                    "position": float(raw.get("position", 0.0)),
                })
            start_row += len(batch)
            if len(batch) < row_limit:
                break

        logger.info(
            "GSC %s rows for %s %s..%s: %d", dimension, site_url, start, end, len(rows)
        )
        return rows

    # ------------------------------------------------------------------
    # Sitemaps
    # ------------------------------------------------------------------

    def list_sitemaps(self, site_url: str) -> list[dict[str, Any]]:
        """List submitted sitemaps with their per-type submitted/indexed counts."""
        self._ensure_auth()
        try:
            with self._limiter:
                response = self._service.sitemaps().list(siteUrl=site_url).execute()
        except Exception as exc:
            logger.error("GSC sitemaps failed for %s: %s", site_url, exc)
            self._log_call(SITEMAPS_ENDPOINT, False, str(exc))
            raise ExternalServiceError(f"Search Console sitemaps list failed: {exc}") from exc
        self._log_call(SITEMAPS_ENDPOINT, True)

        results = []
        for sm in response.get("sitemap", []):
            results.append({
                "path": sm.get("path", ""),
                "last_submitted": sm.get("lastSubmitted"),
                "is_pending": sm.get("isPending", False),
                "warnings": int(sm.get("warnings", 0) or 0),
                "errors": int(sm.get("errors", 0) or 0),
                "contents": [
                    {
                        "type": c.get("type", ""),
                        "submitted": int(c.get("submitted", 0) or 0),
                        "indexed": int(c["indexed"]) if c.get("indexed") is not None else None,
                    }
                    for c in sm.get("contents", [])
                ],
            })
        logger.info("GSC sitemaps for %s: found %d", site_url, len(results))
        return results
