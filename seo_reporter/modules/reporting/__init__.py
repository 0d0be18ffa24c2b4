"""Reporting module: aggregation, rule-based and AI insights, report orchestration.

``ReportGenerator`` lives in :mod:`seo_reporter.modules.reporting.report_generator`
and is not re-exported here, since it depends on the tasks module which in
turn imports from this package.
"""

from seo_reporter.modules.reporting.ai_insights import AIInsightAdapter
from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator

__all__ = [
    "AIInsightAdapter",
    "MetricsAggregator",
]
