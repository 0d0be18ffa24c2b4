"""Tests for the Typer CLI."""

import pytest
from typer.testing import CliRunner


runner = CliRunner()


@pytest.fixture()
def cli_app(tmp_path, monkeypatch):
    """Point every CLI command at a throwaway SQLite file and stub the LLM keys."""
    from seo_reporter import cli
    from seo_reporter.app import ReportingApp
    from seo_reporter.config import DEFAULTS, _deep_merge

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    config = _deep_merge(DEFAULTS, {
        "app": {"data_dir": str(tmp_path / "data")},
        "database": {"url": f"sqlite:///{tmp_path / 'cli.db'}"},
        "google": {"credentials_path": str(tmp_path / "missing.json")},
        "scheduler": {"job_store": f"sqlite:///{tmp_path / 'jobs.db'}"},
    })

    def build():
        reporting_app = ReportingApp(config=config)
        reporting_app.initialize()
        return reporting_app

    monkeypatch.setattr(cli, "_build_app", build)
    return cli.app


def _invoke(app, *args, **kwargs):
    return runner.invoke(app, list(args), **kwargs)


def _seed(app):
    assert _invoke(app, "create-user", "admin@example.com", "--name", "Admin",
                   "--password", "pw", "--role", "admin").exit_code == 0
    assert _invoke(app, "create-user", "client@example.com", "--name", "Casey",
                   "--password", "pw", "--business-name", "Casey Rentals").exit_code == 0
    assert _invoke(app, "create-site", "sc-domain:example.com", "--owner-id", "1").exit_code == 0
    assert _invoke(app, "assign-site", "1", "2").exit_code == 0


class TestAccountsCommands:

    def test_init_db(self, cli_app):
        result = _invoke(cli_app, "init-db")
        assert result.exit_code == 0
        assert "Database tables created" in result.output

    def test_create_user_and_site(self, cli_app):
        result = _invoke(cli_app, "create-user", "a@example.com", "--name", "A", "--password", "pw")
        assert result.exit_code == 0
        assert "Created CLIENT user a@example.com" in result.output

        result = _invoke(cli_app, "create-site", "https://www.example.com/", "--owner-id", "1")
        assert result.exit_code == 0
        assert "Created site example.com" in result.output

    def test_unknown_role(self, cli_app):
        result = _invoke(cli_app, "create-user", "a@example.com", "--name", "A",
                         "--password", "pw", "--role", "owner")
        assert result.exit_code == 1
        assert "Unknown role" in result.output

    def test_duplicate_user(self, cli_app):
        _invoke(cli_app, "create-user", "a@example.com", "--name", "A", "--password", "pw")
        result = _invoke(cli_app, "create-user", "a@example.com", "--name", "A", "--password", "pw")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_password_prompt(self, cli_app):
        result = _invoke(cli_app, "create-user", "p@example.com", "--name", "P", input="pw\npw\n")
        assert result.exit_code == 0

    def test_onboarding_without_smtp_still_creates_user(self, cli_app):
        result = _invoke(cli_app, "create-user", "new@example.com", "--name", "New",
                         "--password", "pw", "--send-onboarding")
        assert result.exit_code == 0
        assert "Created CLIENT user new@example.com" in result.output
        assert "Onboarding email was not sent" in result.output

    def test_onboarding_email_sent_to_new_user(self, cli_app, monkeypatch):
        from seo_reporter.modules.delivery.email_service import EmailService

        sent = []

        def fake_send(self, message, recipients=None):
            sent.append((message, recipients))
            return True

        monkeypatch.setattr(EmailService, "send", fake_send)
        result = _invoke(cli_app, "create-user", "new@example.com", "--name", "New",
                         "--password", "pw", "--send-onboarding")
        assert result.exit_code == 0
        assert "Onboarding email sent to new@example.com" in result.output
        [(message, recipients)] = sent
        assert recipients == ["new@example.com"]
        assert "Password: pw" in message.get_body(preferencelist=("plain",)).get_content()

    def test_no_onboarding_by_default(self, cli_app):
        result = _invoke(cli_app, "create-user", "new@example.com", "--name", "New", "--password", "pw")
        assert "Onboarding" not in result.output

    def test_assign_twice(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "assign-site", "1", "2")
        assert result.exit_code == 0
        assert "already assigned" in result.output

    def test_assign_missing_site(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "assign-site", "9", "2")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestReportCommands:

    def test_report_for_custom_window(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "report", "--start", "2025-01-06", "--end", "2025-01-12", "--no-tasks")
        assert result.exit_code == 0, result.output
        assert "example.com" in result.output
        assert "Report #1" in result.output
        assert "AI source: baseline" in result.output
        assert "ai_insights (configuration): LLM not configured" in result.output

    def test_report_rerun_keeps_one_row(self, cli_app):
        _seed(cli_app)
        _invoke(cli_app, "report", "--start", "2025-01-06", "--end", "2025-01-12")
        result = _invoke(cli_app, "report", "--start", "2025-01-06", "--end", "2025-01-12")
        assert "Report #1" in result.output

    def test_report_without_sites(self, cli_app):
        result = _invoke(cli_app, "report")
        assert result.exit_code == 1
        assert "No active site configured" in result.output

    def test_invalid_date(self, cli_app):
        result = _invoke(cli_app, "report", "--start", "06/01/2025", "--end", "2025-01-12")
        assert result.exit_code == 1
        assert "expected YYYY-MM-DD" in result.output

    def test_half_window(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "report", "--start", "2025-01-06")
        assert result.exit_code == 1
        assert "start and end must be given together" in result.output

    def test_send_without_smtp(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "report", "--start", "2025-01-06", "--end", "2025-01-12", "--send")
        assert result.exit_code == 0
        assert "not emailed" in result.output

    def test_quick_insight_falls_back(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "quick-insight")
        assert result.exit_code == 0
        assert "Quick Insight" in result.output


class TestOperationalCommands:

    def test_status(self, cli_app):
        result = _invoke(cli_app, "status")
        assert result.exit_code == 0
        assert "Component Status" in result.output
        assert "Database" in result.output

    def test_collect_without_sites(self, cli_app):
        result = _invoke(cli_app, "collect", "--date", "2025-01-10")
        assert result.exit_code == 0
        assert "No active sites" in result.output

    def test_collect_failure_exits_nonzero(self, cli_app):
        _seed(cli_app)
        result = _invoke(cli_app, "collect", "--date", "2025-01-10")
        assert result.exit_code == 1
        assert "Collection Results" in result.output

    def test_scheduler_list(self, cli_app):
        result = _invoke(cli_app, "scheduler", "--list")
        assert result.exit_code == 0
        assert "data_collection" in result.output
        assert "weekly_report" in result.output

    def test_scheduler_toggle(self, cli_app):
        result = _invoke(cli_app, "scheduler", "--disable", "report_generation")
        assert result.exit_code == 0
        assert "REPORT_GENERATION disabled" in result.output

    def test_scheduler_unknown_job(self, cli_app):
        result = _invoke(cli_app, "scheduler", "--enable", "cleanup")
        assert result.exit_code == 1
        assert "Unknown job" in result.output
