"""Report orchestration: aggregate, analyse, persist, and fan out tasks."""

import asyncio
import json
import logging
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select

from seo_reporter.database import Database
from seo_reporter.errors import ErrorKind, SiteNotFoundError, StepFailure, error_kind
from seo_reporter.models.report import WeeklyReport
from seo_reporter.modules.accounts.site_service import SiteInfo, SiteService
from seo_reporter.modules.data_collection.technical_issues import TechnicalIssueScanner
from seo_reporter.modules.reporting import insight_engine
from seo_reporter.modules.reporting.ai_insights import AIInsightAdapter
from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator
from seo_reporter.modules.reporting.schemas import (
    AIInsightResult,
    AIInsights,
    ComparisonMetrics,
    InsightContext,
    ReportResult,
    TaskGenerationContext,
    TechnicalIssues,
    TopPage,
    TopQuery,
    Trends,
)
from seo_reporter.modules.tasks.task_generator import AITaskGenerator
from seo_reporter.utils.dates import ReportPeriod, monthly_comparison, resolve_period

logger = logging.getLogger(__name__)

TOP_N = 10


def merge_insights(baseline: str, ai: Optional[AIInsights]) -> str:
    """Baseline text first, then the AI analysis section if there is one."""
    if ai is None:
        return baseline
    key_insights = "\n".join(f"• {item}" for item in ai.key_insights)
    return (
        f"{baseline}\n\nAI ANALYSIS:\n\n{ai.executive_summary}\n\n"
        f"Market Context: {ai.market_context}\n\n"
        f"Key Insights:\n{key_insights}\n\n"
        f"Industry Trends: {ai.industry_trends}"
    )


def merge_recommendations(baseline: str, ai: Optional[AIInsights]) -> str:
    if ai is None:
        return baseline
    section = ""
    if ai.urgent_actions:
        urgent = "\n".join(f"{n}. {a}" for n, a in enumerate(ai.urgent_actions, start=1))
        section += f"URGENT ACTIONS:\n{urgent}\n\n"
    strategic = "\n".join(f"{n}. {r}" for n, r in enumerate(ai.strategic_recommendations, start=1))
    section += f"STRATEGIC RECOMMENDATIONS:\n{strategic}"
    return f"{baseline}\n\nAI STRATEGIC RECOMMENDATIONS:\n\n{section}"


class ReportGenerator:
    """Single-pass report pipeline for one site and window.

    Steps run strictly in order and nothing is retried.  Only the AI step
    and the per-client task fan-out catch failures; a missing site or
    undecodable stored data aborts the run.

    Usage::

        generator = ReportGenerator(db, aggregator, adapter, task_generator, sites)
        result = await generator.generate_report(period_type="week")
        print(result.report.id, result.comparison.clicks_change)
    """

    def __init__(
        self,
        db: Database,
        aggregator: MetricsAggregator,
        ai_adapter: AIInsightAdapter,
        task_generator: Optional[AITaskGenerator],
        site_service: SiteService,
        issue_scanner: Optional[TechnicalIssueScanner] = None,
        top_n: int = TOP_N,
    ):
        self._db = db
        self._aggregator = aggregator
        self._ai = ai_adapter
        self._tasks = task_generator
        self._sites = site_service
        self._scanner = issue_scanner
        self._top_n = top_n

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def generate_report(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        period_type: str = "week",
        site_id: Optional[int] = None,
        include_monthly_comparison: bool = False,
        generate_tasks: bool = True,
        today: Optional[date] = None,
    ) -> ReportResult:
        """Generate, store, and return the report for one site.

        Args:
            start: Explicit window start (with ``end``); overrides ``period_type``.
            end: Explicit window end.
            period_type: ``"week"`` or ``"month"`` when no dates are given.
            site_id: Site to report on; defaults to the first active site.
            include_monthly_comparison: For weekly reports, also compare the
                trailing 30 days with the 30 days before.
            generate_tasks: Fan out AI task generation to client users.
            today: Reference day for window resolution.

        Raises:
            SiteNotFoundError: The site does not exist or no active site is
                configured.
        """
        site = await asyncio.to_thread(self._resolve_site, site_id)
        period = resolve_period(period_type, start, end, today)
        logger.info(
            "Generating %s report for %s: %s..%s (previous %s..%s)",
            period.period_type, site.domain, period.start, period.end,
            period.previous_start, period.previous_end,
        )

        comparison = await asyncio.to_thread(self._compare, site.id, period)
        monthly = None
        if period.period_type == "week" and include_monthly_comparison:
            monthly = await asyncio.to_thread(self._compare, site.id, monthly_comparison(period.end))

        top_pages, top_queries = await asyncio.to_thread(self._top_lists, site.id, period)

        findings = insight_engine.generate_insights(comparison)
        baseline_recs = insight_engine.generate_recommendations(comparison, top_pages, top_queries)
        baseline_insights = insight_engine.format_insights(findings)
        baseline_recommendations = insight_engine.format_recommendations(baseline_recs)

        context = InsightContext(
            comparison=comparison,
            top_pages=top_pages,
            top_queries=top_queries,
            website_domain=site.domain,
            period=period,
        )
        failures: list[StepFailure] = []
        ai_result: Optional[AIInsightResult] = None
        try:
            ai_result = await self._ai.generate_ai_insights(context)
        except Exception as exc:
            logger.error("AI insights failed for %s, continuing with baseline: %s", site.domain, exc)
            failures.append(StepFailure("ai_insights", error_kind(exc), str(exc)))
        if ai_result is not None and ai_result.error:
            failures.append(StepFailure(
                "ai_insights", ai_result.error_kind or ErrorKind.EXTERNAL_SERVICE, ai_result.error
            ))

        ai_for_merge = ai_result.insights if ai_result and ai_result.from_model else None
        insights = merge_insights(baseline_insights, ai_for_merge)
        recommendations = merge_recommendations(baseline_recommendations, ai_for_merge)

        report = await asyncio.to_thread(
            self._upsert_report, site.id, period, comparison, top_pages, top_queries,
            insights, recommendations,
        )

        tasks_created = 0
        if generate_tasks and self._tasks is not None:
            tasks_created = await self._fan_out_tasks(
                site, period, comparison, top_pages, top_queries, baseline_recommendations, failures
            )

        current_series = await asyncio.to_thread(
            self._aggregator.daily_series, site.id, period.start, period.end
        )
        previous_series = await asyncio.to_thread(
            self._aggregator.daily_series, site.id, period.previous_start, period.previous_end
        )

        logger.info("Report %s stored for %s (%d task(s))", report.id, site.domain, tasks_created)
        return ReportResult(
            report=report,
            site_id=site.id,
            website_domain=site.domain,
            period=period,
            comparison=comparison,
            top_pages=top_pages,
            top_queries=top_queries,
            findings=findings,
            baseline_insights=baseline_insights,
            baseline_recommendations=baseline_recommendations,
            insights=insights,
            recommendations=recommendations,
            trends=Trends(current=current_series, previous=previous_series, monthly=monthly),
            ai=ai_result,
            tasks_created=tasks_created,
            failures=failures,
        )

    async def generate_quick_insight(
        self,
        site_id: Optional[int] = None,
        period_type: str = "week",
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> str:
        site = await asyncio.to_thread(self._resolve_site, site_id)
        period = resolve_period(period_type, start, end)
        comparison = await asyncio.to_thread(self._compare, site.id, period)
        top_pages, top_queries = await asyncio.to_thread(self._top_lists, site.id, period)
        context = InsightContext(comparison, top_pages, top_queries, site.domain, period)
        return await self._ai.generate_quick_insight(context)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_site(self, site_id: Optional[int]) -> SiteInfo:
        if site_id is not None:
            return self._sites.get_site(site_id)
        site = self._sites.get_first_active_site()
        if site is None:
            raise SiteNotFoundError("No active site configured")
        return site

    def _compare(self, site_id: int, period: ReportPeriod) -> ComparisonMetrics:
        current = self._aggregator.period_metrics(site_id, period.start, period.end)
        previous = self._aggregator.period_metrics(site_id, period.previous_start, period.previous_end)
        return self._aggregator.compare(current, previous)

    def _top_lists(self, site_id: int, period: ReportPeriod) -> tuple[list[TopPage], list[TopQuery]]:
        return (
            self._aggregator.top_pages(site_id, period.start, period.end, self._top_n),
            self._aggregator.top_queries(site_id, period.start, period.end, self._top_n),
        )

    def _upsert_report(
        self,
        site_id: int,
        period: ReportPeriod,
        comparison: ComparisonMetrics,
        top_pages: Sequence[TopPage],
        top_queries: Sequence[TopQuery],
        insights: str,
        recommendations: str,
    ) -> WeeklyReport:
        """Insert or update the report row on (site, start, end)."""
        with self._db.session() as session:
            report = session.scalar(
                select(WeeklyReport).where(
                    WeeklyReport.site_id == site_id,
                    WeeklyReport.week_start_date == period.start,
                    WeeklyReport.week_end_date == period.end,
                )
            )
            if report is None:
                report = WeeklyReport(
                    site_id=site_id, week_start_date=period.start, week_end_date=period.end
                )
                session.add(report)
            else:
                logger.info("Updating existing report %s", report.id)

            report.period_type = period.period_type
            report.total_clicks = comparison.total_clicks
            report.total_impressions = comparison.total_impressions
            report.average_ctr = comparison.average_ctr
            report.average_position = comparison.average_position
            report.clicks_change = comparison.clicks_change
            report.impressions_change = comparison.impressions_change
            report.ctr_change = comparison.ctr_change
            report.position_change = comparison.position_change
            report.top_pages = json.dumps([p.to_dict() for p in top_pages])
            report.top_queries = json.dumps([q.to_dict() for q in top_queries])
            report.insights = insights
            report.recommendations = recommendations
            session.flush()
        return report

    async def _fan_out_tasks(
        self,
        site: SiteInfo,
        period: ReportPeriod,
        comparison: ComparisonMetrics,
        top_pages: list[TopPage],
        top_queries: list[TopQuery],
        recommendations: str,
        failures: list[StepFailure],
    ) -> int:
        """Generate tasks for every active client, one at a time.

        Sequential iteration keeps the per-(user, week) existence check and
        the inserts that follow it free of races.
        """
        clients = await asyncio.to_thread(self._sites.get_active_clients)
        total = 0
        for client in clients:
            try:
                primary = await asyncio.to_thread(self._sites.get_user_primary_site, client.id)
                if primary is None:
                    logger.info("Client %s has no site; skipping task generation", client.email)
                    continue

                if primary.id == site.id:
                    cmp, pages, queries, recs = comparison, top_pages, top_queries, recommendations
                else:
                    cmp = await asyncio.to_thread(self._compare, primary.id, period)
                    pages, queries = await asyncio.to_thread(self._top_lists, primary.id, period)
                    recs = insight_engine.format_recommendations(
                        insight_engine.generate_recommendations(cmp, pages, queries)
                    )

                issues = await self._technical_issues(primary, period)
                context = TaskGenerationContext(
                    comparison=cmp,
                    top_pages=pages,
                    top_queries=queries,
                    recommendations=recs,
                    website_domain=primary.domain,
                    user_name=client.name,
                    business_name=client.business_name,
                    week_start=period.start,
                    week_end=period.end,
                    technical_issues=issues,
                )
                total += await self._tasks.create_ai_tasks_for_client(
                    client.id, period.start, period.end, context
                )
            except Exception as exc:
                logger.error("Task generation failed for client %s: %s", client.email, exc)
                failures.append(StepFailure(f"tasks:{client.email}", ErrorKind.PER_ITEM, str(exc)))
        return total

    async def _technical_issues(self, site: SiteInfo, period: ReportPeriod) -> Optional[TechnicalIssues]:
        if self._scanner is None:
            return None
        try:
            return await asyncio.to_thread(
                self._scanner.get_all_technical_issues, site.google_site_url, period.start, period.end
            )
        except Exception as exc:
            logger.warning("Technical issues unavailable for %s: %s", site.domain, exc)
            return None

    # ------------------------------------------------------------------
    # Stored reports
    # ------------------------------------------------------------------

    def get_report(self, report_id: int) -> Optional[WeeklyReport]:
        with self._db.session() as session:
            return session.get(WeeklyReport, report_id)

    def latest_report(self, site_id: int) -> Optional[WeeklyReport]:
        with self._db.session() as session:
            return session.scalar(
                select(WeeklyReport)
                .where(WeeklyReport.site_id == site_id)
                .order_by(WeeklyReport.week_end_date.desc(), WeeklyReport.id.desc())
                .limit(1)
            )

    def mark_sent(self, report_id: int) -> None:
        with self._db.session() as session:
            report = session.get(WeeklyReport, report_id)
            if report is not None:
                report.sent_at = datetime.now(timezone.utc)
