"""Integration tests for SEO Reporter.

Covers database setup, model and module imports, settings.yaml, CLI
smoke tests, syntax validation of every Python file in the project, and
that the third-party stack is importable.
"""

import ast
import importlib
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Project root (conftest.py already puts it on sys.path)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent


# ===========================================================================
# 1. Database setup
# ===========================================================================
class TestDatabaseSetup:
    """Verify that the database can be initialised with in-memory SQLite."""

    def test_init_db_creates_tables(self, db):
        from sqlalchemy import inspect

        table_names = inspect(db.engine).get_table_names()
        for table in (
            "users", "user_sessions", "login_logs", "password_reset_tokens",
            "sites", "client_sites", "daily_metrics", "page_metrics", "query_metrics",
            "weekly_reports", "tasks", "api_usage", "schedule_configs",
        ):
            assert table in table_names, "Missing table: " + table + ". Found: " + str(table_names)

    def test_session_rolls_back_on_error(self, db):
        from sqlalchemy import func, select
        from seo_reporter.models.account import User

        with pytest.raises(RuntimeError):
            with db.session() as session:
                session.add(User(email="x@example.com", password_hash="s:h", name="X"))
                session.flush()
                raise RuntimeError("abort")

        with db.session() as session:
            assert session.scalar(select(func.count(User.id))) == 0

    def test_reset_db(self, seeded, db):
        from sqlalchemy import func, select
        from seo_reporter.models.site import Site

        db.reset_db()
        with db.session() as session:
            assert session.scalar(select(func.count(Site.id))) == 0


# ===========================================================================
# 2. Model imports
# ===========================================================================
class TestModelImports:

    @pytest.mark.parametrize("module_path,class_name", [
        ("seo_reporter.models.account", "User"),
        ("seo_reporter.models.account", "UserSession"),
        ("seo_reporter.models.account", "LoginLog"),
        ("seo_reporter.models.account", "PasswordResetToken"),
        ("seo_reporter.models.site", "Site"),
        ("seo_reporter.models.site", "ClientSite"),
        ("seo_reporter.models.metrics", "DailyMetric"),
        ("seo_reporter.models.metrics", "PageMetric"),
        ("seo_reporter.models.metrics", "QueryMetric"),
        ("seo_reporter.models.report", "WeeklyReport"),
        ("seo_reporter.models.task", "Task"),
        ("seo_reporter.models.api_usage", "ApiUsage"),
        ("seo_reporter.models.api_usage", "ScheduleConfig"),
    ])
    def test_model_importable(self, module_path, class_name):
        module = importlib.import_module(module_path)
        assert hasattr(module, class_name), module_path + " has no " + class_name


# ===========================================================================
# 3. Module imports
# ===========================================================================
class TestModuleImports:

    @pytest.mark.parametrize("module_path,class_names", [
        ("seo_reporter.modules.accounts", ["AuthService", "SiteService"]),
        ("seo_reporter.modules.data_collection", ["DataCollector", "TechnicalIssueScanner"]),
        ("seo_reporter.modules.reporting", ["AIInsightAdapter", "MetricsAggregator"]),
        ("seo_reporter.modules.reporting.report_generator", ["ReportGenerator"]),
        ("seo_reporter.modules.tasks", ["AITaskGenerator"]),
        ("seo_reporter.modules.delivery", ["EmailService", "SMTPSettings"]),
        ("seo_reporter.integrations.llm_client", ["LLMClient"]),
        ("seo_reporter.integrations.google_search_console", ["GoogleSearchConsole"]),
        ("seo_reporter.scheduler", ["ReportScheduler"]),
        ("seo_reporter.app", ["ReportingApp"]),
    ])
    def test_module_importable(self, module_path, class_names):
        module = importlib.import_module(module_path)
        for name in class_names:
            assert hasattr(module, name), module_path + " has no " + name


# ===========================================================================
# 4. settings.yaml
# ===========================================================================
class TestSettingsYaml:

    SETTINGS_PATH = PROJECT_ROOT / "config" / "settings.yaml"

    def test_settings_file_exists(self):
        assert self.SETTINGS_PATH.exists(), "config/settings.yaml not found"

    def test_settings_has_every_section(self):
        from seo_reporter.config import DEFAULTS

        data = yaml.safe_load(self.SETTINGS_PATH.read_text(encoding="utf-8"))
        assert isinstance(data, dict)
        for section in DEFAULTS:
            assert section in data, "Missing section: " + section

    def test_settings_crons_parse(self):
        from seo_reporter.scheduler import parse_cron

        data = yaml.safe_load(self.SETTINGS_PATH.read_text(encoding="utf-8"))
        parse_cron(data["scheduler"]["data_collection_cron"])
        parse_cron(data["scheduler"]["weekly_report_cron"])


# ===========================================================================
# 5. CLI smoke tests
# ===========================================================================
class TestCLICommands:

    def _runner(self):
        from typer.testing import CliRunner
        return CliRunner()

    def test_main_help(self):
        from seo_reporter.cli import app

        result = self._runner().invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "SEO Reporter" in result.output

    @pytest.mark.parametrize("command", [
        "init-db", "collect", "backfill", "report", "quick-insight", "issues",
        "create-user", "create-site", "assign-site", "scheduler", "status",
    ])
    def test_command_help(self, command):
        from seo_reporter.cli import app

        result = self._runner().invoke(app, [command, "--help"])
        assert result.exit_code == 0, command + " --help failed: " + result.output


# ===========================================================================
# 6. All Python files syntax validation
# ===========================================================================
class TestAllPythonFilesSyntax:
    """Every .py file in seo_reporter/ and tests/ should pass ast.parse."""

    def _collect_python_files(self):
        files = []
        for directory in ("seo_reporter", "tests"):
            base = PROJECT_ROOT / directory
            if base.exists():
                for py_file in base.rglob("*.py"):
                    if "__pycache__" in py_file.parts:
                        continue
                    files.append(py_file)
        return sorted(files)

    def test_all_python_files_parse(self):
        py_files = self._collect_python_files()
        assert len(py_files) > 0, "No Python files found"
        errors = []
        for py_file in py_files:
            try:
                ast.parse(py_file.read_text(encoding="utf-8"))
            except SyntaxError as exc:
                errors.append(str(py_file.relative_to(PROJECT_ROOT)) + ": " + str(exc))
        if errors:
            pytest.fail("Python syntax errors found:\n" + "\n".join(errors[:20]))


# ===========================================================================
# 7. Key packages importable
# ===========================================================================
class TestRequirementsInstallable:

    @pytest.mark.parametrize("package", [
        "sqlalchemy",
        "openai",
        "google.generativeai",
        "googleapiclient.discovery",
        "google.oauth2.service_account",
        "apscheduler",
        "typer",
        "rich",
        "yaml",
        "dotenv",
    ])
    def test_package_importable(self, package):
        importlib.import_module(package)
