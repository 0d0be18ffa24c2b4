"""Tests for the rule-based insight engine."""

import pytest


def _cmp(clicks=0.0, impressions=0.0, ctr=0.0, position=0.0):
    from seo_reporter.modules.reporting.schemas import ComparisonMetrics, PeriodMetrics

    return ComparisonMetrics(
        current=PeriodMetrics(100, 1000, 0.1, 5.0),
        previous=PeriodMetrics(100, 1000, 0.1, 5.0),
        clicks_change=clicks,
        impressions_change=impressions,
        ctr_change=ctr,
        position_change=position,
    )


def _severities(findings, signal):
    return [f.severity for f in findings if f.signal == signal]


class TestGenerateInsights:

    def test_concrete_drop_scenario(self):
        """-20% clicks, flat impressions, -20% CTR, +2 positions."""
        from seo_reporter.modules.reporting.insight_engine import generate_insights
        from seo_reporter.modules.reporting.metrics_aggregator import compare_periods
        from seo_reporter.modules.reporting.schemas import PeriodMetrics, Severity

        cmp = compare_periods(
            PeriodMetrics(800, 40000, 0.02, 8.0),
            PeriodMetrics(1000, 40000, 0.025, 6.0),
        )
        findings = generate_insights(cmp)
        messages = [f.message for f in findings]

        assert _severities(findings, "clicks") == [Severity.CRITICAL]
        assert any(m.startswith("CRITICAL: Clicks dropped 20.0%") for m in messages)
        assert _severities(findings, "impressions") == []
        assert _severities(findings, "ctr") == [Severity.WARNING]
        # +2.0 is not strictly worse than the threshold
        assert _severities(findings, "position") == []

        diagnoses = [f.message for f in findings if f.severity is Severity.DIAGNOSIS]
        assert len(diagnoses) == 1
        assert "CTR optimization needed" in diagnoses[0]
        assert not any("algorithm" in m for m in messages)

    @pytest.mark.parametrize("change,expected", [
        (-35.0, "critical"),
        (-20.0, "critical"),
        (-15.0, "warning"),
        (-10.0, None),
        (0.0, None),
        (10.0, None),
        (10.5, "positive"),
    ])
    def test_clicks_thresholds(self, change, expected):
        from seo_reporter.modules.reporting.insight_engine import generate_insights

        severities = _severities(generate_insights(_cmp(clicks=change)), "clicks")
        assert [s.value for s in severities] == ([expected] if expected else [])

    @pytest.mark.parametrize("change,expected", [
        (-25.0, "critical"), (-12.0, "warning"), (15.0, "positive"), (5.0, None),
    ])
    def test_impressions_thresholds(self, change, expected):
        from seo_reporter.modules.reporting.insight_engine import generate_insights

        severities = _severities(generate_insights(_cmp(impressions=change)), "impressions")
        assert [s.value for s in severities] == ([expected] if expected else [])

    def test_ctr_has_no_critical_level(self):
        from seo_reporter.modules.reporting.insight_engine import generate_insights
        from seo_reporter.modules.reporting.schemas import Severity

        findings = generate_insights(_cmp(ctr=-50.0))
        assert _severities(findings, "ctr") == [Severity.WARNING]

    @pytest.mark.parametrize("delta,expected", [
        (3.0, "negative"), (2.0, None), (-2.0, None), (-2.5, "positive"),
    ])
    def test_position_thresholds(self, delta, expected):
        from seo_reporter.modules.reporting.insight_engine import generate_insights

        severities = _severities(generate_insights(_cmp(position=delta)), "position")
        assert [s.value for s in severities] == ([expected] if expected else [])

    def test_both_down_diagnosis(self):
        from seo_reporter.modules.reporting.insight_engine import generate_insights
        from seo_reporter.modules.reporting.schemas import Severity

        findings = generate_insights(_cmp(clicks=-15.0, impressions=-12.0))
        diagnoses = [f for f in findings if f.severity is Severity.DIAGNOSIS]
        assert len(diagnoses) == 1
        assert "algorithm" in diagnoses[0].message
        assert findings[-1] is diagnoses[0]

    def test_no_diagnosis_when_impressions_slightly_down(self):
        from seo_reporter.modules.reporting.insight_engine import generate_insights
        from seo_reporter.modules.reporting.schemas import Severity

        findings = generate_insights(_cmp(clicks=-15.0, impressions=-5.0))
        assert not [f for f in findings if f.severity is Severity.DIAGNOSIS]

    def test_empty_periods_produce_no_alerts(self):
        from seo_reporter.modules.reporting.insight_engine import (
            CONTINUE_MONITORING_LINE,
            NO_CHANGES_LINE,
            format_insights,
            generate_insights,
            generate_recommendations,
            has_alerts,
        )
        from seo_reporter.modules.reporting.metrics_aggregator import compare_periods
        from seo_reporter.modules.reporting.schemas import PeriodMetrics

        cmp = compare_periods(PeriodMetrics(), PeriodMetrics())
        findings = generate_insights(cmp)
        assert findings == []
        assert not has_alerts(findings)
        assert format_insights(findings) == NO_CHANGES_LINE
        assert generate_recommendations(cmp, [], []) == [CONTINUE_MONITORING_LINE]


class TestGenerateRecommendations:

    def test_critical_drop_items_come_first_and_are_numbered(self):
        from seo_reporter.modules.reporting.insight_engine import generate_recommendations

        recs = generate_recommendations(_cmp(clicks=-30.0, position=3.0, ctr=-12.0), [], [])
        assert recs[0].startswith("1. URGENT: Audit top pages")
        assert len(recs) == 3 + 3 + 2
        assert [r.split(".", 1)[0] for r in recs] == [str(n) for n in range(1, 9)]
        assert any("schema markup" in r for r in recs)
        assert any("backlinks" in r for r in recs)

    def test_page_and_query_mining(self):
        from seo_reporter.modules.reporting.insight_engine import generate_recommendations
        from seo_reporter.modules.reporting.schemas import TopPage, TopQuery

        pages = [
            TopPage("https://example.com/rentals/pet-policy/", 1, 500, 0.01, 9.0),
            TopPage("https://example.com/apply", 50, 600, 0.08, 3.0),
            TopPage("https://example.com/fees", 0, 90, 0.0, 20.0),
        ]
        queries = [
            TopQuery("property management", 5, 900, 0.005, 18.0),
            TopQuery("rentals austin", 20, 300, 0.066, 7.0),
            TopQuery("tenant portal", 2, 150, 0.013, 9.0),
        ]
        recs = generate_recommendations(_cmp(), pages, queries)

        assert len(recs) == 3
        assert recs[0] == "1. Optimize CTR for pages with high impressions but low CTR: pet-policy"
        assert recs[1] == '2. Target high-impression, low-CTR queries: "property management"'
        assert recs[2] == '3. Quick win opportunities (position 5-15): "rentals austin"'

    def test_quick_wins_are_capped_at_three(self):
        from seo_reporter.modules.reporting.insight_engine import generate_recommendations
        from seo_reporter.modules.reporting.schemas import TopQuery

        queries = [TopQuery(f"q{i}", 10, 250, 0.04, 6.0) for i in range(5)]
        recs = generate_recommendations(_cmp(), [], queries)
        assert recs == ['1. Quick win opportunities (position 5-15): "q0", "q1", "q2"']

    def test_format_recommendations(self):
        from seo_reporter.modules.reporting.insight_engine import (
            CONTINUE_MONITORING_LINE,
            format_recommendations,
        )

        assert format_recommendations(["1. a", "2. b"]) == "1. a\n2. b"
        assert format_recommendations([]) == CONTINUE_MONITORING_LINE
