"""Tests for Search Console collection, technical issues and throttling."""

from datetime import date
from unittest.mock import MagicMock

import pytest


DAY = date(2025, 1, 10)


def _fake_gsc(daily=None, pages=None, queries=None):
    gsc = MagicMock()
    rows = {
        "date": daily if daily is not None else [
            {"date": DAY.isoformat(), "clicks": 42, "impressions": 900, "ctr": 0.046, "position": 7.3},
        ],
        "page": pages if pages is not None else [
            {"page": "https://example.com/apply", "clicks": 30, "impressions": 500, "ctr": 0.06, "position": 4.0},
            {"page": "https://example.com/fees", "clicks": 12, "impressions": 400, "ctr": 0.03, "position": 9.0},
        ],
        "query": queries if queries is not None else [
            {"query": "rentals austin", "clicks": 20, "impressions": 300, "ctr": 0.066, "position": 5.0},
        ],
    }

    def fetch_range(site_url, start, end, dimension="date", row_limit=25000):
        return [dict(r) for r in rows[dimension]]

    gsc.fetch_range.side_effect = fetch_range
    return gsc


def _count(db, model):
    from sqlalchemy import func, select

    with db.session() as session:
        return session.scalar(select(func.count(model.id)))


class TestDataCollector:

    def test_collect_all_metrics(self, db, seeded):
        from seo_reporter.models.metrics import DailyMetric, PageMetric, QueryMetric
        from seo_reporter.modules.data_collection.collector import DataCollector

        gsc = _fake_gsc()
        result = DataCollector(db, gsc).collect_all_metrics(seeded.site.id, DAY)

        assert result.ok
        assert result.daily_stored
        assert result.pages_stored == 2
        assert result.queries_stored == 1
        assert _count(db, DailyMetric) == 1
        assert _count(db, PageMetric) == 2
        assert _count(db, QueryMetric) == 1
        gsc.fetch_range.assert_any_call("sc-domain:example.com", DAY, DAY, dimension="page")

    def test_recollecting_a_day_updates_in_place(self, db, seeded):
        from sqlalchemy import select
        from seo_reporter.models.metrics import DailyMetric, PageMetric
        from seo_reporter.modules.data_collection.collector import DataCollector

        DataCollector(db, _fake_gsc()).collect_all_metrics(seeded.site.id, DAY)
        revised = _fake_gsc(
            daily=[{"date": DAY.isoformat(), "clicks": 50, "impressions": 950, "ctr": 0.05, "position": 7.0}],
        )
        DataCollector(db, revised).collect_all_metrics(seeded.site.id, DAY)

        assert _count(db, DailyMetric) == 1
        assert _count(db, PageMetric) == 2
        with db.session() as session:
            assert session.scalar(select(DailyMetric.clicks)) == 50

    def test_no_rows_is_not_an_error(self, db, seeded):
        from seo_reporter.modules.data_collection.collector import DataCollector

        result = DataCollector(db, _fake_gsc(daily=[], pages=[], queries=[])).collect_all_metrics(
            seeded.site.id, DAY
        )
        assert result.ok
        assert not result.daily_stored
        assert result.pages_stored == 0

    def test_rows_without_key_are_skipped(self, db, seeded):
        from seo_reporter.modules.data_collection.collector import DataCollector

        gsc = _fake_gsc(pages=[{"page": "", "clicks": 1, "impressions": 1, "ctr": 1.0, "position": 1.0}])
        assert DataCollector(db, gsc).collect_page_metrics(seeded.site.id, DAY) == 0

    def test_gsc_failure_is_recorded(self, db, seeded):
        from seo_reporter.errors import ErrorKind, ExternalServiceError
        from seo_reporter.modules.data_collection.collector import DataCollector

        gsc = MagicMock()
        gsc.fetch_range.side_effect = ExternalServiceError("quota exceeded")
        result = DataCollector(db, gsc).collect_all_metrics(seeded.site.id, DAY)
        assert not result.ok
        assert "quota exceeded" in result.error
        assert result.error_kind is ErrorKind.EXTERNAL_SERVICE

    def test_missing_site_raises(self, db):
        from seo_reporter.errors import SiteNotFoundError
        from seo_reporter.modules.data_collection.collector import DataCollector

        with pytest.raises(SiteNotFoundError):
            DataCollector(db, _fake_gsc()).collect_all_metrics(42, DAY)

    def test_only_active_sites_are_collected(self, db, seeded):
        from seo_reporter.modules.data_collection.collector import DataCollector

        other = seeded.sites.create_site("other.com", "Other", "https://other.com/", seeded.admin.id)
        seeded.sites.deactivate_site(other.id)

        results = DataCollector(db, _fake_gsc()).collect_for_active_sites(DAY)
        assert [r.site_id for r in results] == [seeded.site.id]

    def test_backfill_covers_days_up_to_lag(self, db, seeded):
        from seo_reporter.modules.data_collection.collector import DataCollector

        summary = DataCollector(db, _fake_gsc()).backfill(seeded.site.id, days=7, today=date(2025, 1, 20))
        days = [r.day for r in summary.results]
        assert days[0] == date(2025, 1, 13)
        assert days[-1] == date(2025, 1, 17)
        assert summary.days_ok == 5
        assert summary.days_failed == 0


class TestTechnicalIssueScanner:

    def test_sitemap_indexing_issues(self):
        from seo_reporter.modules.data_collection.technical_issues import TechnicalIssueScanner

        gsc = MagicMock()
        gsc.list_sitemaps.return_value = [
            {"path": "/sitemap.xml", "contents": [{"type": "web", "submitted": 100, "indexed": 40}]},
            {"path": "/news.xml", "contents": [{"type": "web", "submitted": 10, "indexed": 0}]},
            {"path": "/ok.xml", "contents": [{"type": "web", "submitted": 10, "indexed": 9}]},
        ]
        issues = TechnicalIssueScanner(gsc).fetch_sitemap_issues("sc-domain:example.com")

        assert [(i.page, i.severity) for i in issues] == [
            ("/sitemap.xml", "warning"), ("/news.xml", "warning"), ("/news.xml", "error"),
        ]
        assert "40/100 URLs indexed (40%)" in issues[0].issue

    def test_potential_issues(self):
        from seo_reporter.modules.data_collection.technical_issues import TechnicalIssueScanner

        gsc = _fake_gsc(pages=[
            {"page": "/zero", "clicks": 0, "impressions": 250, "ctr": 0.0, "position": 12.0},
            {"page": "/deep", "clicks": 1, "impressions": 80, "ctr": 0.01, "position": 63.2},
            {"page": "/fine", "clicks": 9, "impressions": 80, "ctr": 0.1, "position": 4.0},
        ])
        issues = TechnicalIssueScanner(gsc).identify_potential_issues("sc-domain:example.com", DAY, DAY)
        assert [(i.page, i.severity) for i in issues] == [("/zero", "warning"), ("/deep", "info")]

    def test_failures_yield_no_issues(self):
        from seo_reporter.modules.data_collection.technical_issues import TechnicalIssueScanner

        gsc = MagicMock()
        gsc.list_sitemaps.side_effect = RuntimeError("403")
        gsc.fetch_range.side_effect = RuntimeError("403")
        issues = TechnicalIssueScanner(gsc).get_all_technical_issues("sc-domain:example.com", DAY, DAY)
        assert issues.all_issues == []
        assert issues.total_errors == 0


class TestGoogleSearchConsole:

    def _client(self, responses, tracker=None):
        from seo_reporter.integrations.google_search_console import GoogleSearchConsole

        gsc = GoogleSearchConsole("missing.json", tracker=tracker)
        service = MagicMock()
        service.searchanalytics.return_value.query.return_value.execute.side_effect = responses
        gsc._service = service
        return gsc, service

    def test_rows_are_normalised(self):
        gsc, _ = self._client([{"rows": [
            {"keys": ["rentals austin"], "clicks": 3.0, "impressions": 120.0, "ctr": 0.025, "position": 7.4},
        ]}])
        rows = gsc.fetch_range("sc-domain:example.com", DAY, DAY, "query")
        assert rows == [{"query": "rentals austin", "clicks": 3, "impressions": 120, "ctr": 0.025, "position": 7.4}]

    def test_pagination(self):
        page = {"rows": [{"keys": [f"q{i}"], "clicks": 1} for i in range(2)]}
        gsc, service = self._client([page, {"rows": [{"keys": ["last"], "clicks": 1}]}])
        rows = gsc.fetch_range("sc-domain:example.com", DAY, DAY, "query", row_limit=2)

        assert [r["query"] for r in rows] == ["q0", "q1", "last"]
        bodies = [c.kwargs["body"] for c in service.searchanalytics.return_value.query.call_args_list]
        assert [b["startRow"] for b in bodies] == [0, 2]

    def test_empty_response(self):
        gsc, _ = self._client([{}])
        assert gsc.fetch_range("sc-domain:example.com", DAY, DAY) == []

    def test_unsupported_dimension(self):
        gsc, _ = self._client([])
        with pytest.raises(ValueError):
            gsc.fetch_range("sc-domain:example.com", DAY, DAY, "country")

    def test_http_error_is_wrapped_and_audited(self):
        from googleapiclient.errors import HttpError
        from seo_reporter.errors import ExternalServiceError

        tracker = MagicMock()
        error = HttpError(MagicMock(status=500, reason="Backend Error"), b"{}")
        gsc, _ = self._client([error], tracker=tracker)

        with pytest.raises(ExternalServiceError):
            gsc.fetch_range("sc-domain:example.com", DAY, DAY)
        assert tracker.log_google_call.call_args.args[1] is False

    def test_token_refresh_error_is_wrapped_and_audited(self):
        from google.auth.exceptions import RefreshError
        from seo_reporter.errors import ExternalServiceError

        tracker = MagicMock()
        gsc, _ = self._client([RefreshError("invalid_grant: Token has been expired or revoked.")], tracker)

        with pytest.raises(ExternalServiceError, match="invalid_grant"):
            gsc.fetch_range("sc-domain:example.com", DAY, DAY)
        tracker.log_google_call.assert_called_once()
        assert tracker.log_google_call.call_args.args[1] is False

    @pytest.mark.parametrize("error", [TimeoutError("timed out"), OSError("connection reset")])
    def test_transport_errors_are_wrapped_and_audited(self, error):
        from seo_reporter.errors import ExternalServiceError

        tracker = MagicMock()
        gsc, _ = self._client([error], tracker=tracker)

        with pytest.raises(ExternalServiceError):
            gsc.fetch_range("sc-domain:example.com", DAY, DAY)
        tracker.log_google_call.assert_called_once()
        assert tracker.log_google_call.call_args.args[1] is False

    def test_sitemap_failure_is_audited(self):
        from google.auth.exceptions import RefreshError
        from seo_reporter.errors import ExternalServiceError
        from seo_reporter.integrations.google_search_console import GoogleSearchConsole, SITEMAPS_ENDPOINT

        tracker = MagicMock()
        gsc = GoogleSearchConsole("missing.json", tracker=tracker)
        gsc._service = MagicMock()
        gsc._service.sitemaps.return_value.list.return_value.execute.side_effect = RefreshError("expired")

        with pytest.raises(ExternalServiceError):
            gsc.list_sitemaps("sc-domain:example.com")
        assert tracker.log_google_call.call_args.args[:2] == (SITEMAPS_ENDPOINT, False)

    def test_missing_credentials(self):
        from seo_reporter.errors import ConfigurationError
        from seo_reporter.integrations.google_search_console import GoogleSearchConsole

        with pytest.raises(ConfigurationError):
            GoogleSearchConsole("/nonexistent/creds.json").authenticate()

    def test_list_sitemaps(self):
        from seo_reporter.integrations.google_search_console import GoogleSearchConsole

        gsc = GoogleSearchConsole("missing.json")
        gsc._service = MagicMock()
        gsc._service.sitemaps.return_value.list.return_value.execute.return_value = {"sitemap": [
            {"path": "/sitemap.xml", "errors": "1", "contents": [{"type": "web", "submitted": "10"}]},
        ]}
        sitemaps = gsc.list_sitemaps("sc-domain:example.com")
        assert sitemaps[0]["errors"] == 1
        assert sitemaps[0]["contents"] == [{"type": "web", "submitted": 10, "indexed": None}]


class TestRateLimiter:

    def test_free_slots_do_not_wait(self):
        from seo_reporter.utils.rate_limiter import RateLimiter

        limiter = RateLimiter(max_calls=3, period=60.0)
        for _ in range(3):
            assert limiter.delay() == 0.0
            with limiter:
                pass
        assert limiter.calls_in_window == 3
        assert limiter.delay() > 0

    def test_hourly_cap(self):
        from seo_reporter.utils.rate_limiter import RateLimiter

        limiter = RateLimiter(max_calls=100, period=1.0, hourly_cap=1)
        limiter.wait_sync()
        assert limiter.delay() > 1.0

    def test_rejects_zero_calls(self):
        from seo_reporter.utils.rate_limiter import RateLimiter

        with pytest.raises(ValueError):
            RateLimiter(max_calls=0)

    @pytest.mark.asyncio
    async def test_async_context(self):
        from seo_reporter.utils.rate_limiter import RateLimiter

        limiter = RateLimiter.per_minute(10, name="llm")
        async with limiter:
            pass
        assert limiter.calls_in_window == 1
