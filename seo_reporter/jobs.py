"""Scheduled job entry points.

The scheduler stores jobs by textual reference (``seo_reporter.jobs:...``)
in its SQLAlchemy job store, so each entry point builds its own
``ReportingApp`` from the config path it was registered with.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select

from seo_reporter.app import ReportingApp
from seo_reporter.models.api_usage import JobType, ScheduleConfig
from seo_reporter.modules.reporting.schemas import ReportResult

logger = logging.getLogger(__name__)

DEFAULT_CRONS = {
    JobType.DATA_COLLECTION: "0 3 * * *",
    JobType.REPORT_GENERATION: "0 8 * * 1",
}


@dataclass
class DeliveryOutcome:
    report_id: int
    site_domain: str
    sent_to: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return bool(self.sent_to)


# ----------------------------------------------------------------------
# Schedule bookkeeping
# ----------------------------------------------------------------------

def ensure_schedule_configs(app: ReportingApp) -> None:
    """Create the default ScheduleConfig rows that are missing."""
    sched_cfg = app.config.get("scheduler", {})
    crons = {
        JobType.DATA_COLLECTION: sched_cfg.get("data_collection_cron", DEFAULT_CRONS[JobType.DATA_COLLECTION]),
        JobType.REPORT_GENERATION: sched_cfg.get("weekly_report_cron", DEFAULT_CRONS[JobType.REPORT_GENERATION]),
    }
    with app.db.session() as session:
        existing = set(session.scalars(select(ScheduleConfig.job_type)))
        for job_type, cron in crons.items():
            if job_type not in existing:
                session.add(ScheduleConfig(job_type=job_type, cron_expression=cron, is_enabled=True))
                logger.info("Created schedule config %s [%s]", job_type.value, cron)


def is_job_enabled(app: ReportingApp, job_type: JobType) -> bool:
    """A job without a config row counts as enabled."""
    with app.db.session() as session:
        config = session.scalar(select(ScheduleConfig).where(ScheduleConfig.job_type == job_type))
        return config is None or config.is_enabled


def set_job_enabled(app: ReportingApp, job_type: JobType, enabled: bool) -> None:
    with app.db.session() as session:
        config = session.scalar(select(ScheduleConfig).where(ScheduleConfig.job_type == job_type))
        if config is None:
            config = ScheduleConfig(job_type=job_type, cron_expression=DEFAULT_CRONS[job_type])
            session.add(config)
        config.is_enabled = enabled
    logger.info("Job %s %s", job_type.value, "enabled" if enabled else "disabled")


def record_last_run(app: ReportingApp, job_type: JobType) -> None:
    with app.db.session() as session:
        config = session.scalar(select(ScheduleConfig).where(ScheduleConfig.job_type == job_type))
        if config is not None:
            config.last_run = datetime.now(timezone.utc)


# ----------------------------------------------------------------------
# Job bodies
# ----------------------------------------------------------------------

def collect_data(app: ReportingApp, day: Optional[date] = None) -> int:
    """Collect one day for every active site.  Returns the number of sites that succeeded."""
    if not is_job_enabled(app, JobType.DATA_COLLECTION):
        logger.info("Data collection job is disabled")
        return 0

    results = app.collector.collect_for_active_sites(day)
    if not results:
        logger.info("No active sites found, skipping data collection")
        return 0

    record_last_run(app, JobType.DATA_COLLECTION)
    ok = sum(1 for r in results if r.ok)
    logger.info("Scheduled data collection complete: %d/%d site(s) ok", ok, len(results))
    return ok


def deliver_report(app: ReportingApp, result: ReportResult) -> DeliveryOutcome:
    """Email the report to every member of the site, each with their open tasks.

    ``sent_at`` is set when at least one recipient got the email.
    """
    outcome = DeliveryOutcome(report_id=result.report.id, site_domain=result.website_domain)
    members = app.sites.get_site_members(result.site_id)
    if not members:
        logger.warning("No recipients for %s; report %s not emailed", result.website_domain, result.report.id)
        return outcome

    for member in members:
        try:
            tasks = app.task_generator.list_open_tasks(member.id, result.period.start)
            message = app.email.build_report_message(result, [member.email], tasks)
            sent = app.email.send(message, [member.email])
        except Exception as exc:
            logger.error("Could not deliver report to %s: %s", member.email, exc)
            sent = False
        (outcome.sent_to if sent else outcome.failed).append(member.email)

    if outcome.delivered:
        app.report_generator.mark_sent(result.report.id)
    logger.info(
        "Report %s for %s sent to %d recipient(s), %d failed",
        result.report.id, result.website_domain, len(outcome.sent_to), len(outcome.failed),
    )
    return outcome


async def generate_and_send_reports(
    app: ReportingApp,
    period_type: str = "week",
    send: bool = True,
) -> list[DeliveryOutcome]:
    """Generate the report for every active site, then email each one."""
    reporting_cfg = app.config.get("reporting", {})
    outcomes: list[DeliveryOutcome] = []
    for site in app.sites.get_all_sites():
        try:
            result = await app.report_generator.generate_report(
                period_type=period_type,
                site_id=site.id,
                include_monthly_comparison=reporting_cfg.get("include_monthly_comparison", True),
                generate_tasks=reporting_cfg.get("generate_tasks", True),
            )
        except Exception as exc:
            logger.error("Report generation failed for %s: %s", site.domain, exc)
            continue
        if send:
            outcomes.append(deliver_report(app, result))
    return outcomes


def send_weekly_reports(app: ReportingApp) -> list[DeliveryOutcome]:
    if not is_job_enabled(app, JobType.REPORT_GENERATION):
        logger.info("Report generation job is disabled")
        return []
    outcomes = asyncio.run(generate_and_send_reports(app))
    record_last_run(app, JobType.REPORT_GENERATION)
    logger.info("Scheduled weekly report run complete (%d report(s))", len(outcomes))
    return outcomes


# ----------------------------------------------------------------------
# Scheduler entry points
# ----------------------------------------------------------------------

def run_data_collection(config_path: Optional[str] = None) -> None:
    app = ReportingApp(config_path=config_path)
    try:
        app.initialize()
        collect_data(app)
    except Exception as exc:
        logger.error("Scheduled data collection failed: %s", exc)
    finally:
        app.shutdown()


def run_weekly_report(config_path: Optional[str] = None) -> None:
    app = ReportingApp(config_path=config_path)
    try:
        app.initialize()
        send_weekly_reports(app)
    except Exception as exc:
        logger.error("Scheduled weekly report failed: %s", exc)
    finally:
        app.shutdown()
