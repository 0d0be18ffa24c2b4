"""Tests for period aggregation, top-N extraction and deltas."""

from datetime import date, timedelta

import pytest


def _add_pages(db, site_id, rows):
    from seo_reporter.models.metrics import PageMetric

    with db.session() as session:
        for day, page, clicks, impressions, ctr, position in rows:
            session.add(PageMetric(
                site_id=site_id, date=day, page=page, clicks=clicks,
                impressions=impressions, ctr=ctr, position=position,
            ))


class TestPctChange:

    def test_regular_change(self):
        from seo_reporter.modules.reporting.metrics_aggregator import pct_change
        assert pct_change(110, 100) == pytest.approx(10.0)
        assert pct_change(80, 100) == pytest.approx(-20.0)

    @pytest.mark.parametrize("current", [0, 1, 500, 10_000])
    def test_zero_previous_is_zero_change(self, current):
        from seo_reporter.modules.reporting.metrics_aggregator import pct_change
        assert pct_change(current, 0) == 0.0


class TestComparePeriods:

    @pytest.mark.parametrize("current_clicks", [0, 3, 1200])
    def test_clicks_change_zero_when_previous_has_no_clicks(self, current_clicks):
        from seo_reporter.modules.reporting.metrics_aggregator import compare_periods
        from seo_reporter.modules.reporting.schemas import PeriodMetrics

        cmp = compare_periods(
            PeriodMetrics(current_clicks, 5000, 0.03, 7.0),
            PeriodMetrics(0, 4000, 0.0, 9.0),
        )
        assert cmp.clicks_change == 0.0
        assert cmp.ctr_change == 0.0

    @pytest.mark.parametrize("current_pos,previous_pos", [
        (8.0, 6.0), (3.25, 11.5), (0.0, 4.2), (12.0, 0.0), (5.5, 5.5),
    ])
    def test_position_change_is_plain_difference(self, current_pos, previous_pos):
        from seo_reporter.modules.reporting.metrics_aggregator import compare_periods
        from seo_reporter.modules.reporting.schemas import PeriodMetrics

        cmp = compare_periods(
            PeriodMetrics(10, 100, 0.1, current_pos),
            PeriodMetrics(10, 100, 0.1, previous_pos),
        )
        assert cmp.position_change == current_pos - previous_pos

    def test_concrete_drop_scenario(self):
        from seo_reporter.modules.reporting.metrics_aggregator import compare_periods
        from seo_reporter.modules.reporting.schemas import PeriodMetrics

        cmp = compare_periods(
            PeriodMetrics(800, 40000, 0.02, 8.0),
            PeriodMetrics(1000, 40000, 0.025, 6.0),
        )
        assert cmp.clicks_change == pytest.approx(-20.0)
        assert cmp.impressions_change == pytest.approx(0.0)
        assert cmp.ctr_change == pytest.approx(-20.0)
        assert cmp.position_change == pytest.approx(2.0)
        assert cmp.total_clicks == 800


class TestPeriodMetrics:

    def test_sums_and_plain_means(self, db, seeded, add_daily):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        start = date(2025, 1, 6)
        add_daily(seeded.site.id, start, 100, 1000, 0.10, 4.0)
        add_daily(seeded.site.id, start + timedelta(days=1), 50, 4000, 0.02, 10.0)
        # Outside the window
        add_daily(seeded.site.id, start + timedelta(days=7), 999, 9999, 0.5, 1.0)

        result = MetricsAggregator(db).period_metrics(seeded.site.id, start, start + timedelta(days=6))
        assert result.total_clicks == 150
        assert result.total_impressions == 5000
        assert result.average_ctr == pytest.approx(0.06)
        assert result.average_position == pytest.approx(7.0)

    def test_empty_range_is_all_zero(self, db, seeded):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator
        from seo_reporter.modules.reporting.schemas import PeriodMetrics

        result = MetricsAggregator(db).period_metrics(seeded.site.id, date(2025, 1, 6), date(2025, 1, 12))
        assert result == PeriodMetrics(0, 0, 0.0, 0.0)
        assert result.is_empty

    def test_other_sites_are_ignored(self, db, seeded, add_daily):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        other = seeded.sites.create_site("other.com", "Other", "https://other.com/", seeded.admin.id)
        add_daily(other.id, date(2025, 1, 6), 500, 5000, 0.1, 3.0)

        result = MetricsAggregator(db).period_metrics(seeded.site.id, date(2025, 1, 6), date(2025, 1, 12))
        assert result.total_clicks == 0


class TestTopN:

    def test_groups_and_orders_by_summed_clicks(self, db, seeded):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        d1, d2 = date(2025, 1, 6), date(2025, 1, 7)
        _add_pages(db, seeded.site.id, [
            (d1, "https://example.com/a", 10, 100, 0.10, 4.0),
            (d2, "https://example.com/a", 30, 300, 0.10, 6.0),
            (d1, "https://example.com/b", 50, 500, 0.10, 2.0),
            (d1, "https://example.com/c", 5, 50, 0.10, 9.0),
        ])
        pages = MetricsAggregator(db).top_pages(seeded.site.id, d1, d2, limit=10)

        assert [p.page for p in pages] == [
            "https://example.com/b", "https://example.com/a", "https://example.com/c",
        ]
        assert pages[1].clicks == 40
        assert pages[1].impressions == 400
        assert pages[1].position == pytest.approx(5.0)

    def test_limit_is_respected(self, db, seeded):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        day = date(2025, 1, 6)
        _add_pages(db, seeded.site.id, [
            (day, f"https://example.com/p{i}", i, i * 10, 0.1, 5.0) for i in range(1, 16)
        ])
        agg = MetricsAggregator(db)
        for limit in (0, 1, 3, 10, 20):
            pages = agg.top_pages(seeded.site.id, day, day, limit=limit)
            assert len(pages) <= limit
            clicks = [p.clicks for p in pages]
            assert clicks == sorted(clicks, reverse=True)

    def test_ties_keep_insertion_order(self, db, seeded):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        day = date(2025, 1, 6)
        _add_pages(db, seeded.site.id, [
            (day, "https://example.com/zeta", 20, 100, 0.2, 3.0),
            (day, "https://example.com/alpha", 20, 100, 0.2, 3.0),
            (day, "https://example.com/mid", 20, 100, 0.2, 3.0),
        ])
        pages = MetricsAggregator(db).top_pages(seeded.site.id, day, day)
        assert [p.page for p in pages] == [
            "https://example.com/zeta", "https://example.com/alpha", "https://example.com/mid",
        ]

    def test_top_queries(self, db, seeded):
        from seo_reporter.models.metrics import QueryMetric
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        day = date(2025, 1, 6)
        with db.session() as session:
            session.add(QueryMetric(site_id=seeded.site.id, date=day, query="pet policy",
                                    clicks=3, impressions=90, ctr=0.03, position=7.0))
            session.add(QueryMetric(site_id=seeded.site.id, date=day, query="rentals near me",
                                    clicks=12, impressions=400, ctr=0.03, position=4.0))
        queries = MetricsAggregator(db).top_queries(seeded.site.id, day, day, limit=1)
        assert len(queries) == 1
        assert queries[0].query == "rentals near me"


class TestDailySeries:

    def test_ordered_by_date(self, db, seeded, add_daily):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

        add_daily(seeded.site.id, date(2025, 1, 8), 3, 30, 0.1, 5.0)
        add_daily(seeded.site.id, date(2025, 1, 6), 1, 10, 0.1, 5.0)
        series = MetricsAggregator(db).daily_series(seeded.site.id, date(2025, 1, 6), date(2025, 1, 12))
        assert [p.date for p in series] == [date(2025, 1, 6), date(2025, 1, 8)]
        assert series[0].to_dict()["date"] == "2025-01-06"
