"""Application object: loads settings and wires every service together."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from seo_reporter.config import load_config
from seo_reporter.database import Database

logger = logging.getLogger(__name__)


class ReportingApp:
    """Central object that owns the database handle and builds services lazily.

    Usage::

        app = ReportingApp()
        app.initialize()
        result = asyncio.run(app.report_generator.generate_report())
        app.shutdown()
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        env_path: Optional[str] = None,
        config: Optional[dict[str, Any]] = None,
        db: Optional[Database] = None,
    ):
        self._config_path = config_path
        self._env_path = env_path
        self.config: dict[str, Any] = config or {}
        self._db = db
        self._services: dict[str, Any] = {}
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load configuration, prepare data directories and create tables."""
        if self._initialized:
            return
        if not self.config:
            self.config = load_config(self._config_path, self._env_path)

        data_dir = self.config.get("app", {}).get("data_dir", "")
        if data_dir:
            Path(data_dir).mkdir(parents=True, exist_ok=True)

        self.db.init_db()
        self._initialized = True
        logger.info("ReportingApp initialised.")

    def shutdown(self) -> None:
        if self._db is not None:
            self._db.dispose()
        self._services.clear()
        self._initialized = False
        logger.info("ReportingApp shut down.")

    def _section(self, name: str) -> dict[str, Any]:
        return self.config.get(name, {}) or {}

    def _lazy(self, name: str, factory):
        if name not in self._services:
            self._services[name] = factory()
        return self._services[name]

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------

    @property
    def db(self) -> Database:
        if self._db is None:
            db_cfg = self._section("database")
            self._db = Database(db_cfg.get("url"), echo=bool(db_cfg.get("echo", False)))
        return self._db

    @property
    def tracker(self):
        from seo_reporter.integrations.api_tracking import ApiUsageTracker
        return self._lazy("tracker", lambda: ApiUsageTracker(self.db))

    @property
    def llm(self):
        def build():
            from seo_reporter.integrations.llm_client import LLMClient
            llm_cfg = self._section("llm")
            budget_cfg = llm_cfg.get("budget", {})
            rl_cfg = self._section("rate_limits")
            return LLMClient(
                openai_api_key=os.getenv("OPENAI_API_KEY"),
                gemini_api_key=os.getenv("GEMINI_API_KEY"),
                openai_model=llm_cfg.get("openai_model", "gpt-4o-mini"),
                gemini_model=llm_cfg.get("gemini_model", "gemini-2.0-flash"),
                timeout=llm_cfg.get("timeout", 60),
                openai_rpm=rl_cfg.get("openai", {}).get("requests_per_minute", 60),
                gemini_rpm=rl_cfg.get("gemini", {}).get("requests_per_minute", 15),
                max_monthly_budget=budget_cfg.get("max_monthly_usd", 25.0),
                budget_warning_pct=budget_cfg.get("warning_threshold_pct", 80.0),
            )
        return self._lazy("llm", build)

    @property
    def gsc(self):
        def build():
            from seo_reporter.integrations.google_search_console import GoogleSearchConsole
            rpm = self._section("rate_limits").get("google", {}).get("requests_per_minute", 600)
            return GoogleSearchConsole(
                credentials_path=self._section("google").get("credentials_path"),
                tracker=self.tracker,
                requests_per_minute=rpm,
            )
        return self._lazy("gsc", build)

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    @property
    def auth(self):
        from seo_reporter.modules.accounts.auth_service import AuthService
        return self._lazy("auth", lambda: AuthService(self.db))

    @property
    def sites(self):
        from seo_reporter.modules.accounts.site_service import SiteService
        return self._lazy("sites", lambda: SiteService(self.db))

    @property
    def collector(self):
        from seo_reporter.modules.data_collection.collector import DataCollector
        return self._lazy("collector", lambda: DataCollector(self.db, self.gsc))

    @property
    def issue_scanner(self):
        from seo_reporter.modules.data_collection.technical_issues import TechnicalIssueScanner
        return self._lazy("issue_scanner", lambda: TechnicalIssueScanner(self.gsc))

    @property
    def aggregator(self):
        from seo_reporter.modules.reporting.metrics_aggregator import MetricsAggregator
        return self._lazy("aggregator", lambda: MetricsAggregator(self.db))

    @property
    def ai_adapter(self):
        def build():
            from seo_reporter.modules.reporting.ai_insights import AIInsightAdapter
            llm_cfg = self._section("llm")
            return AIInsightAdapter(
                self.llm,
                self.tracker,
                temperature=llm_cfg.get("temperature", 0.5),
                max_tokens=llm_cfg.get("max_tokens", 2000),
                quick_max_tokens=llm_cfg.get("quick_max_tokens", 150),
            )
        return self._lazy("ai_adapter", build)

    @property
    def task_generator(self):
        def build():
            from seo_reporter.modules.tasks.task_generator import AITaskGenerator
            llm_cfg = self._section("llm")
            return AITaskGenerator(
                self.db,
                self.llm,
                self.tracker,
                temperature=llm_cfg.get("temperature", 0.5),
                max_tokens=llm_cfg.get("task_max_tokens", 1500),
            )
        return self._lazy("task_generator", build)

    @property
    def report_generator(self):
        def build():
            from seo_reporter.modules.reporting.report_generator import ReportGenerator
            scanner = self.issue_scanner if self._gsc_available() else None
            return ReportGenerator(
                self.db,
                self.aggregator,
                self.ai_adapter,
                self.task_generator,
                self.sites,
                issue_scanner=scanner,
                top_n=self._section("reporting").get("top_n", 10),
            )
        return self._lazy("report_generator", build)

    @property
    def email(self):
        def build():
            from seo_reporter.modules.delivery.email_service import EmailService, SMTPSettings
            email_cfg = self._section("email")
            settings = SMTPSettings(
                host=email_cfg.get("smtp_host", "smtp.gmail.com"),
                port=int(email_cfg.get("smtp_port", 587)),
                user=email_cfg.get("smtp_user"),
                password=email_cfg.get("smtp_password"),
                sender=email_cfg.get("sender"),
                sender_name=email_cfg.get("sender_name", "SEO Reporter"),
                timeout=int(email_cfg.get("timeout", 30)),
            )
            return EmailService(settings, company_name=self._section("app").get("name", "SEO Reporter"))
        return self._lazy("email", build)

    def _gsc_available(self) -> bool:
        path = self._section("google").get("credentials_path")
        return bool(path) and Path(path).exists()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Health of the main components, for the ``status`` command."""
        status: dict[str, dict[str, Any]] = {}

        try:
            from sqlalchemy import func, select
            from seo_reporter.models.site import Site
            with self.db.session() as session:
                site_count = session.scalar(select(func.count(Site.id))) or 0
            status["database"] = {"status": "ok", "details": f"{site_count} site(s)"}
        except Exception as exc:
            status["database"] = {"status": "error", "details": str(exc)}

        providers = []
        if os.getenv("OPENAI_API_KEY"):
            providers.append("OpenAI")
        if os.getenv("GEMINI_API_KEY"):
            providers.append("Gemini")
        status["llm"] = {
            "status": "ok" if providers else "warning",
            "details": f"providers: {', '.join(providers) or 'none configured'}",
        }

        status["search_console"] = {
            "status": "ok" if self._gsc_available() else "warning",
            "details": self._section("google").get("credentials_path") or "no credentials path",
        }

        status["email"] = {
            "status": "ok" if self.email.is_configured else "warning",
            "details": self._section("email").get("smtp_host", ""),
        }
        return status
