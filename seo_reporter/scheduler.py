"""Report scheduler built on APScheduler with a SQLite persistent job store."""

import logging
from pathlib import Path
from typing import Any, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

DATA_COLLECTION_JOB = "data_collection"
WEEKLY_REPORT_JOB = "weekly_report"

# Stored by reference so the persistent job store can reload them.
JOB_FUNCTIONS = {
    DATA_COLLECTION_JOB: "seo_reporter.jobs:run_data_collection",
    WEEKLY_REPORT_JOB: "seo_reporter.jobs:run_weekly_report",
}


def parse_cron(cron: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field cron expression (min hour day month weekday)."""
    parts = cron.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Cron expression must have 5 fields, got {len(parts)}: {cron!r}")
    return CronTrigger(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone=timezone,
    )


class ReportScheduler:
    """Daily Search Console collection and the weekly report run.

    Usage::

        sched = ReportScheduler()
        sched.register_default_jobs(config_path="config/settings.yaml")
        sched.start()
        sched.list_jobs()
        sched.stop()
    """

    def __init__(
        self,
        job_store_url: str = "sqlite:///data/scheduler_jobs.db",
        timezone: str = "UTC",
        max_workers: int = 2,
        data_collection_cron: str = "0 3 * * *",
        weekly_report_cron: str = "0 8 * * 1",
    ):
        if job_store_url.startswith("sqlite:///") and job_store_url != "sqlite:///:memory:":
            Path(job_store_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)

        self._scheduler = BackgroundScheduler(
            jobstores={"default": SQLAlchemyJobStore(url=job_store_url)},
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 3600,
            },
            timezone=timezone,
        )
        self._timezone = timezone
        self._crons = {
            DATA_COLLECTION_JOB: data_collection_cron,
            WEEKLY_REPORT_JOB: weekly_report_cron,
        }
        self._running = False
        logger.info(
            "ReportScheduler initialized (store=%s, tz=%s, workers=%d)",
            job_store_url, timezone, max_workers,
        )

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "ReportScheduler":
        sched_cfg = config.get("scheduler", {})
        return cls(
            job_store_url=sched_cfg.get("job_store", "sqlite:///data/scheduler_jobs.db"),
            timezone=sched_cfg.get("timezone", "UTC"),
            max_workers=sched_cfg.get("max_concurrent_jobs", 2),
            data_collection_cron=sched_cfg.get("data_collection_cron", "0 3 * * *"),
            weekly_report_cron=sched_cfg.get("weekly_report_cron", "0 8 * * 1"),
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            logger.warning("Scheduler is already running.")
            return
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started.")

    def stop(self, wait: bool = True) -> None:
        if not self._running:
            return
        self._scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Scheduler stopped.")

    def register_default_jobs(self, config_path: Optional[str] = None) -> None:
        """Add (or replace) the collection and weekly report jobs."""
        for job_id, func_ref in JOB_FUNCTIONS.items():
            self.add_job(job_id, func_ref, self._crons[job_id], kwargs={"config_path": config_path})

    def add_job(
        self,
        job_id: str,
        func: Any,
        cron: str,
        kwargs: Optional[dict[str, Any]] = None,
        replace_existing: bool = True,
    ) -> None:
        """Add or replace a cron-triggered job.

        Args:
            job_id: Unique identifier for the job.
            func: Callable, or ``"module:function"`` reference.
            cron: 5-field cron expression.
            kwargs: Keyword arguments for func.
            replace_existing: Overwrite if job_id already exists.
        """
        self._scheduler.add_job(
            func,
            trigger=parse_cron(cron, self._timezone),
            id=job_id,
            kwargs=kwargs or {},
            replace_existing=replace_existing,
        )
        logger.info("Job added: %s [%s]", job_id, cron)

    def remove_job(self, job_id: str) -> bool:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("Job not found: %s", job_id)
            return False
        logger.info("Job removed: %s", job_id)
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        result = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            result.append({
                "id": job.id,
                "trigger": str(job.trigger),
                "next_run_time": next_run.isoformat() if next_run else None,
            })
        return result
