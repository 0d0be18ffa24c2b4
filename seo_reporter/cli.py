"""Typer CLI for SEO Reporter.

Commands cover the database, Search Console collection, report generation,
accounts and sites, and the scheduler.
"""

import asyncio
import logging
import time
from datetime import date
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from seo_reporter.errors import SEOReporterError

console = Console()
app = typer.Typer(
    name="seo-report",
    help="SEO Reporter -- Search Console collection, weekly reports, AI insights & tasks.",
    add_completion=False,
    no_args_is_help=True,
)

_state: dict[str, Optional[str]] = {"config_path": None}


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level and format."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context."""
    return asyncio.run(coro)


def _build_app():
    """Create and initialise the application for one command."""
    from seo_reporter.app import ReportingApp
    reporting_app = ReportingApp(config_path=_state["config_path"])
    reporting_app.initialize()
    return reporting_app


def _fail(message: str) -> None:
    console.print("[red]✘[/red] " + message)
    raise typer.Exit(code=1)


def _parse_day(value: Optional[str], label: str) -> Optional[date]:
    if not value:
        return None
    from seo_reporter.utils.dates import parse_date
    try:
        return parse_date(value)
    except ValueError:
        _fail(f"Invalid {label} {value!r}; expected YYYY-MM-DD.")


def _change_markup(value: float, higher_is_better: bool = True, suffix: str = "%") -> str:
    text = f"{value:+.1f}{suffix}"
    if value == 0:
        return text
    good = value > 0 if higher_is_better else value < 0
    return ("[green]" if good else "[red]") + text + ("[/green]" if good else "[/red]")


@app.callback()
def _main(
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to settings.yaml (default: config/settings.yaml)."
    ),
) -> None:
    _state["config_path"] = config


# ------------------------------------------------------------------
# init-db
# ------------------------------------------------------------------
@app.command("init-db")
def init_db(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Create database tables and default schedule settings."""
    _setup_logging(verbose)
    from seo_reporter.jobs import ensure_schedule_configs

    reporting_app = _build_app()
    try:
        ensure_schedule_configs(reporting_app)
    finally:
        reporting_app.shutdown()
    console.print("[green]✔[/green] Database tables created.")


# ------------------------------------------------------------------
# collect / backfill
# ------------------------------------------------------------------
@app.command()
def collect(
    site_id: Optional[int] = typer.Option(None, "--site-id", "-s", help="Site to collect (default: all active)."),
    day: Optional[str] = typer.Option(None, "--date", "-d", help="Day to collect, YYYY-MM-DD (default: today - 3)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Collect one day of Search Console data."""
    _setup_logging(verbose)
    target_day = _parse_day(day, "date")
    reporting_app = _build_app()
    try:
        if site_id is not None:
            results = [reporting_app.collector.collect_all_metrics(site_id, target_day)]
        else:
            results = reporting_app.collector.collect_for_active_sites(target_day)
    except SEOReporterError as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()

    if not results:
        console.print("[yellow]⚠[/yellow] No active sites to collect.")
        return

    table = Table(title="Collection Results", show_header=True, header_style="bold magenta")
    table.add_column("Site", style="cyan")
    table.add_column("Day")
    table.add_column("Daily")
    table.add_column("Pages", justify="right")
    table.add_column("Queries", justify="right")
    table.add_column("Status")
    for r in results:
        status_display = "[green]✔ ok[/green]" if r.ok else "[red]✘ " + (r.error or "")[:50] + "[/red]"
        table.add_row(
            str(r.site_id), r.day.isoformat(), "yes" if r.daily_stored else "no",
            str(r.pages_stored), str(r.queries_stored), status_display,
        )
    console.print(table)
    if not any(r.ok for r in results):
        raise typer.Exit(code=1)


@app.command()
def backfill(
    site_id: int = typer.Argument(..., help="Site to backfill."),
    days: int = typer.Option(30, "--days", "-n", help="How many days back to start."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Collect every day from today - N up to today - 3."""
    _setup_logging(verbose)
    reporting_app = _build_app()
    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task(description=f"Backfilling {days} days...", total=None)
            summary = reporting_app.collector.backfill(site_id, days=days)
    except SEOReporterError as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()

    console.print(
        f"[green]✔[/green] Backfill complete: {summary.days_ok} day(s) ok, "
        f"{summary.days_failed} failed."
    )


# ------------------------------------------------------------------
# report
# ------------------------------------------------------------------
@app.command()
def report(
    period: str = typer.Option("week", "--period", "-p", help="week or month."),
    start: Optional[str] = typer.Option(None, "--start", help="Custom window start, YYYY-MM-DD."),
    end: Optional[str] = typer.Option(None, "--end", help="Custom window end, YYYY-MM-DD."),
    site_id: Optional[int] = typer.Option(None, "--site-id", "-s", help="Site (default: first active)."),
    monthly: bool = typer.Option(True, "--monthly/--no-monthly", help="Include the 30-day comparison."),
    tasks: bool = typer.Option(True, "--tasks/--no-tasks", help="Generate AI tasks for clients."),
    send: bool = typer.Option(False, "--send", help="Email the report to site members."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Generate (and optionally email) an SEO report."""
    _setup_logging(verbose)
    start_day = _parse_day(start, "start date")
    end_day = _parse_day(end, "end date")

    reporting_app = _build_app()
    try:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task(description="Generating report...", total=None)
            result = _run_async(
                reporting_app.report_generator.generate_report(
                    start=start_day,
                    end=end_day,
                    period_type=period,
                    site_id=site_id,
                    include_monthly_comparison=monthly,
                    generate_tasks=tasks,
                )
            )
        outcome = None
        if send:
            from seo_reporter.jobs import deliver_report
            outcome = deliver_report(reporting_app, result)
    except (SEOReporterError, ValueError) as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()

    _print_report(result)
    if outcome is not None:
        if outcome.delivered:
            console.print(f"[green]✔[/green] Emailed to {', '.join(outcome.sent_to)}")
        else:
            console.print("[yellow]⚠[/yellow] Report was not emailed (see log).")


def _print_report(result) -> None:
    period = result.period
    cmp = result.comparison
    console.print(Panel(
        f"[bold cyan]{result.website_domain}[/bold cyan]  "
        f"{period.start.isoformat()} .. {period.end.isoformat()} "
        f"(vs {period.previous_start.isoformat()} .. {period.previous_end.isoformat()})",
        title=f"Report #{result.report.id}",
    ))

    table = Table(title="Performance", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Current", justify="right")
    table.add_column("Previous", justify="right")
    table.add_column("Change", justify="right")
    table.add_row("Clicks", f"{cmp.total_clicks:,}", f"{cmp.previous.total_clicks:,}", _change_markup(cmp.clicks_change))
    table.add_row(
        "Impressions", f"{cmp.total_impressions:,}", f"{cmp.previous.total_impressions:,}",
        _change_markup(cmp.impressions_change),
    )
    table.add_row(
        "CTR", f"{cmp.average_ctr * 100:.2f}%", f"{cmp.previous.average_ctr * 100:.2f}%",
        _change_markup(cmp.ctr_change),
    )
    table.add_row(
        "Position", f"{cmp.average_position:.1f}", f"{cmp.previous.average_position:.1f}",
        _change_markup(cmp.position_change, higher_is_better=False, suffix=""),
    )
    console.print(table)

    if result.top_pages:
        pages = Table(title="Top Pages", show_header=True, header_style="bold magenta")
        pages.add_column("Page", style="cyan", max_width=60)
        pages.add_column("Clicks", justify="right")
        pages.add_column("Position", justify="right")
        for page in result.top_pages:
            pages.add_row(page.page, str(page.clicks), f"{page.position:.1f}")
        console.print(pages)

    console.print(Panel(result.insights, title="Insights"))
    console.print(Panel(result.recommendations, title="Recommendations"))
    source = result.ai.source.value if result.ai else "none"
    console.print(f"AI source: {source} | tasks created: {result.tasks_created}")
    for failure in result.failures:
        console.print(f"[yellow]⚠[/yellow] {failure.step} ({failure.kind.value}): {failure.message}")


@app.command("quick-insight")
def quick_insight(
    period: str = typer.Option("week", "--period", "-p", help="week or month."),
    site_id: Optional[int] = typer.Option(None, "--site-id", "-s", help="Site (default: first active)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Print a one-paragraph AI summary of the latest window."""
    _setup_logging(verbose)
    reporting_app = _build_app()
    try:
        text = _run_async(
            reporting_app.report_generator.generate_quick_insight(site_id=site_id, period_type=period)
        )
    except (SEOReporterError, ValueError) as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()
    console.print(Panel(text, title="Quick Insight"))


# ------------------------------------------------------------------
# issues
# ------------------------------------------------------------------
@app.command()
def issues(
    site_id: int = typer.Argument(..., help="Site to scan."),
    period: str = typer.Option("week", "--period", "-p", help="week or month."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List sitemap and performance-based technical issues."""
    _setup_logging(verbose)
    from seo_reporter.utils.dates import resolve_period

    reporting_app = _build_app()
    try:
        site = reporting_app.sites.get_site(site_id)
        window = resolve_period(period)
        found = reporting_app.issue_scanner.get_all_technical_issues(
            site.google_site_url, window.start, window.end
        )
    except (SEOReporterError, ValueError) as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()

    if not found.all_issues:
        console.print("[green]✔[/green] No technical issues found.")
        return

    colors = {"error": "red", "warning": "yellow", "info": "blue"}
    table = Table(
        title=f"Technical Issues: {found.total_errors} errors, {found.total_warnings} warnings",
        show_header=True, header_style="bold magenta",
    )
    table.add_column("Severity")
    table.add_column("Page", style="cyan", max_width=50)
    table.add_column("Issue", max_width=60)
    for issue in found.all_issues:
        color = colors.get(issue.severity, "white")
        table.add_row(f"[{color}]{issue.severity}[/{color}]", issue.page, issue.issue)
    console.print(table)


# ------------------------------------------------------------------
# accounts and sites
# ------------------------------------------------------------------
@app.command("create-user")
def create_user(
    email: str = typer.Argument(..., help="Login email."),
    name: str = typer.Option(..., "--name", "-n", help="Display name."),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    role: str = typer.Option("CLIENT", "--role", "-r", help="ADMIN, EMPLOYEE or CLIENT."),
    business_name: Optional[str] = typer.Option(None, "--business-name", "-b"),
    send_onboarding: bool = typer.Option(
        False, "--send-onboarding", help="Email the new user a welcome message with their login details."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Create a user account."""
    _setup_logging(verbose)
    from seo_reporter.models.account import Role

    try:
        user_role = Role(role.upper())
    except ValueError:
        _fail(f"Unknown role {role!r}; use ADMIN, EMPLOYEE or CLIENT.")

    reporting_app = _build_app()
    try:
        user = reporting_app.auth.create_user(email, password, name, user_role, business_name=business_name)
    except ValueError as exc:
        reporting_app.shutdown()
        _fail(str(exc))
    try:
        console.print(f"[green]✔[/green] Created {user.role.value} user {user.email} (id {user.id})")
        if send_onboarding:
            _send_onboarding(reporting_app, name, user.email, password)
    finally:
        reporting_app.shutdown()


def _send_onboarding(reporting_app, name: str, email: str, password: str) -> None:
    base_url = reporting_app.config.get("app", {}).get("url")
    login_url = f"{base_url.rstrip('/')}/login" if base_url else None
    message = reporting_app.email.build_onboarding_message(name, email, password, login_url)
    if reporting_app.email.send(message, [email]):
        console.print(f"[green]✔[/green] Onboarding email sent to {email}")
    else:
        console.print("[yellow]⚠[/yellow] Onboarding email was not sent (see log).")


@app.command("create-site")
def create_site(
    google_site_url: str = typer.Argument(..., help="Search Console property, e.g. sc-domain:example.com."),
    owner_id: int = typer.Option(..., "--owner-id", "-o", help="Owning user id."),
    domain: str = typer.Option("", "--domain", "-d", help="Domain (default: taken from the URL)."),
    display_name: str = typer.Option("", "--display-name", help="Human-readable name."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Register a Search Console property."""
    _setup_logging(verbose)
    reporting_app = _build_app()
    try:
        site = reporting_app.sites.create_site(domain, display_name, google_site_url, owner_id)
    except ValueError as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()
    console.print(f"[green]✔[/green] Created site {site.domain} (id {site.id})")


@app.command("assign-site")
def assign_site(
    site_id: int = typer.Argument(..., help="Site id."),
    user_id: int = typer.Argument(..., help="CLIENT user id."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Give a client user access to a site."""
    _setup_logging(verbose)
    reporting_app = _build_app()
    try:
        created = reporting_app.sites.assign_site_to_client(site_id, user_id)
    except (SEOReporterError, ValueError) as exc:
        _fail(str(exc))
    finally:
        reporting_app.shutdown()
    if created:
        console.print(f"[green]✔[/green] Assigned site {site_id} to user {user_id}")
    else:
        console.print(f"[yellow]⚠[/yellow] Site {site_id} is already assigned to user {user_id}")


# ------------------------------------------------------------------
# scheduler
# ------------------------------------------------------------------
@app.command()
def scheduler(
    list_only: bool = typer.Option(False, "--list", help="Show registered jobs and exit."),
    enable: Optional[str] = typer.Option(None, "--enable", help="Enable a job: DATA_COLLECTION or REPORT_GENERATION."),
    disable: Optional[str] = typer.Option(None, "--disable", help="Disable a job."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Run the collection and weekly report jobs on their cron schedules."""
    _setup_logging(verbose)
    from seo_reporter.jobs import ensure_schedule_configs, set_job_enabled
    from seo_reporter.models.api_usage import JobType
    from seo_reporter.scheduler import ReportScheduler

    reporting_app = _build_app()
    try:
        ensure_schedule_configs(reporting_app)
        for value, flag in ((enable, True), (disable, False)):
            if value:
                try:
                    set_job_enabled(reporting_app, JobType(value.upper()), flag)
                except ValueError:
                    _fail(f"Unknown job {value!r}; use DATA_COLLECTION or REPORT_GENERATION.")
                console.print(f"[green]✔[/green] {value.upper()} {'enabled' if flag else 'disabled'}")
        if enable or disable:
            return
        sched = ReportScheduler.from_config(reporting_app.config)
    finally:
        reporting_app.shutdown()

    sched.register_default_jobs(config_path=_state["config_path"])
    if list_only:
        _print_jobs(sched.list_jobs())
        return

    sched.start()
    _print_jobs(sched.list_jobs())
    console.print("Scheduler running. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler...")
    finally:
        sched.stop()


def _print_jobs(jobs: list[dict]) -> None:
    table = Table(title="Scheduled Jobs", show_header=True, header_style="bold magenta")
    table.add_column("Job", style="cyan")
    table.add_column("Trigger")
    table.add_column("Next Run")
    for job in jobs:
        table.add_row(job["id"], job["trigger"], job["next_run_time"] or "-")
    console.print(table)


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------
@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show database, LLM, Search Console and email status."""
    _setup_logging(verbose)
    console.print(Panel("[bold cyan]System Status[/bold cyan]"))

    reporting_app = _build_app()
    try:
        components = reporting_app.get_status()
    finally:
        reporting_app.shutdown()

    table = Table(title="Component Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", min_width=20)
    table.add_column("Status", min_width=10)
    table.add_column("Details", max_width=50)
    labels = {
        "ok": "[green]✔ OK[/green]",
        "warning": "[yellow]⚠ Warning[/yellow]",
        "error": "[red]✘ Error[/red]",
    }
    for name, info in components.items():
        table.add_row(
            name.replace("_", " ").title(),
            labels.get(info["status"], info["status"]),
            str(info.get("details", ""))[:50],
        )
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
