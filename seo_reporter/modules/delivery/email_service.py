"""Report email rendering and SMTP delivery."""

import html
import logging
import smtplib
from dataclasses import dataclass
from datetime import date, datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional, Sequence

from seo_reporter.models.task import Task
from seo_reporter.modules.reporting.schemas import AIInsights, ReportResult
from seo_reporter.utils.formatting import (
    format_change,
    format_ctr,
    format_number,
    page_label,
)

logger = logging.getLogger(__name__)

PERIOD_LABELS = {"week": "Weekly", "month": "Monthly"}

_POSITIVE = "#16a34a"
_NEGATIVE = "#dc2626"
_MUTED = "#64748b"


@dataclass(frozen=True)
class SMTPSettings:
    host: str = "smtp.gmail.com"
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    sender_name: str = "SEO Reporter"
    timeout: int = 30

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password and (self.sender or self.user))


def _short_date(d: date) -> str:
    return f"{d:%b} {d.day}"


def build_subject(result: ReportResult) -> str:
    """e.g. ``Weekly SEO Report: Jan 6 - Jan 12, 2025 | +5.0% clicks``."""
    period = result.period
    label = PERIOD_LABELS.get(period.period_type, "Custom")
    return (
        f"{label} SEO Report: {_short_date(period.start)} - "
        f"{_short_date(period.end)}, {period.end.year} | "
        f"{format_change(result.comparison.clicks_change)} clicks"
    )


def _metric_rows(result: ReportResult) -> list[tuple[str, str, str, float, bool]]:
    """(label, value, delta text, delta, higher_is_better) per headline metric."""
    cmp = result.comparison
    return [
        ("Clicks", format_number(cmp.total_clicks), format_change(cmp.clicks_change), cmp.clicks_change, True),
        ("Impressions", format_number(cmp.total_impressions), format_change(cmp.impressions_change),
         cmp.impressions_change, True),
        ("Average CTR", format_ctr(cmp.average_ctr), format_change(cmp.ctr_change), cmp.ctr_change, True),
        ("Average Position", f"{cmp.average_position:.1f}", f"{cmp.position_change:+.1f}",
         cmp.position_change, False),
    ]


def _ai_sections(ai: Optional[AIInsights]) -> list[tuple[str, Sequence[str]]]:
    if ai is None:
        return []
    sections = [("Wins", ai.wins), ("Awareness", ai.awareness), ("Next Steps", ai.next_steps)]
    return [(title, items) for title, items in sections if items]


class EmailService:
    """Render a ``ReportResult`` as a multipart email and send it over SMTP.

    Usage::

        email = EmailService(SMTPSettings(user="me@example.com", password="..."))
        message = email.build_report_message(result, ["client@example.com"], tasks)
        email.send(message)
    """

    def __init__(self, settings: SMTPSettings, company_name: str = "SEO Reporter"):
        self._settings = settings
        self._company_name = company_name

    @property
    def is_configured(self) -> bool:
        return self._settings.is_configured

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def build_report_message(
        self,
        result: ReportResult,
        recipients: Sequence[str],
        tasks: Optional[Sequence[Task]] = None,
    ) -> EmailMessage:
        tasks = list(tasks or [])
        ai = result.ai.insights if result.ai is not None else None
        sender = self._settings.sender or self._settings.user or "noreply@localhost"

        message = EmailMessage()
        message["Subject"] = build_subject(result)
        message["From"] = formataddr((self._settings.sender_name, sender))
        message["To"] = ", ".join(recipients)
        message["Message-ID"] = make_msgid()
        message.set_content(self.render_text(result, ai, tasks))
        message.add_alternative(self.render_html(result, ai, tasks), subtype="html")
        return message

    def render_text(self, result: ReportResult, ai: Optional[AIInsights], tasks: Sequence[Task]) -> str:
        period = result.period
        lines = [
            f"SEO Performance Report: {result.website_domain}",
            f"{period.start.isoformat()} to {period.end.isoformat()} "
            f"(compared with {period.previous_start.isoformat()} to {period.previous_end.isoformat()})",
            "",
        ]
        for label, value, delta_text, _, _ in _metric_rows(result):
            lines.append(f"{label}: {value} ({delta_text})")

        lines += ["", "INSIGHTS", result.insights, "", "RECOMMENDATIONS", result.recommendations]

        for title, items in _ai_sections(ai):
            lines += ["", title.upper()]
            lines += [f"- {item}" for item in items]

        if result.top_pages:
            lines += ["", "TOP PAGES"]
            lines += [
                f"{i}. {page_label(p.page)}: {format_number(p.clicks)} clicks, "
                f"position {p.position:.1f}"
                for i, p in enumerate(result.top_pages[:5], start=1)
            ]

        if tasks:
            lines += ["", "OPEN TASKS"]
            for task in tasks:
                due = f" (due {task.due_date.isoformat()})" if task.due_date else ""
                lines.append(f"[{task.priority.value}] {task.title}{due}")
        return "\n".join(lines) + "\n"

    def render_html(self, result: ReportResult, ai: Optional[AIInsights], tasks: Sequence[Task]) -> str:
        esc = html.escape
        period = result.period

        body_parts = []
        body_parts.append('<!DOCTYPE html><html><body style="font-family:Arial,Helvetica,sans-serif;color:#1e293b;max-width:600px;margin:0 auto;padding:20px;">')

        # Header
        body_parts.append('<div style="text-align:center;padding:20px 0;border-bottom:2px solid #e2e8f0;">')
        body_parts.append('<h1 style="margin:0;font-size:22px;">SEO Performance Report</h1>')
        body_parts.append(
            '<p style="margin:5px 0 0;color:' + _MUTED + ';font-size:14px;">' + esc(result.website_domain)
            + ' | ' + period.start.strftime("%B ") + str(period.start.day)
            + ' - ' + period.end.strftime("%B ") + str(period.end.day) + ', ' + str(period.end.year) + '</p>'
        )
        body_parts.append('</div>')

        # Metrics
        body_parts.append('<table style="width:100%;border-collapse:collapse;margin:15px 0;">')
        body_parts.append('<tr style="background-color:#f1f5f9;"><th style="padding:8px;text-align:left;font-size:13px;">Metric</th>')
        body_parts.append('<th style="padding:8px;text-align:right;font-size:13px;">Value</th>')
        body_parts.append('<th style="padding:8px;text-align:right;font-size:13px;">Change</th></tr>')
        for label, value, delta_text, delta, higher_is_better in _metric_rows(result):
            good = delta > 0 if higher_is_better else delta < 0
            color = _MUTED if delta == 0 else (_POSITIVE if good else _NEGATIVE)
            body_parts.append('<tr style="border-bottom:1px solid #e2e8f0;">')
            body_parts.append('<td style="padding:8px;font-size:13px;">' + label + '</td>')
            body_parts.append('<td style="padding:8px;text-align:right;font-size:13px;font-weight:bold;">' + value + '</td>')
            body_parts.append('<td style="padding:8px;text-align:right;font-size:13px;color:' + color + ';">' + delta_text + '</td>')
            body_parts.append('</tr>')
        body_parts.append('</table>')

        # Insights and recommendations
        for title, text in (("Insights", result.insights), ("Recommendations", result.recommendations)):
            body_parts.append('<div style="margin:20px 0;">')
            body_parts.append('<h3 style="font-size:15px;margin-bottom:8px;">' + title + '</h3>')
            body_parts.append('<p style="margin:0;font-size:13px;white-space:pre-line;">' + esc(text) + '</p>')
            body_parts.append('</div>')

        # AI summary
        for title, items in _ai_sections(ai):
            body_parts.append('<div style="margin:20px 0;">')
            body_parts.append('<h3 style="font-size:15px;margin-bottom:8px;">' + title + '</h3>')
            for item in items:
                body_parts.append('<p style="margin:4px 0;font-size:13px;padding-left:15px;">&bull; ' + esc(item) + '</p>')
            body_parts.append('</div>')

        # Top pages
        if result.top_pages:
            body_parts.append('<div style="margin:20px 0;">')
            body_parts.append('<h3 style="font-size:15px;margin-bottom:8px;">Top Pages</h3>')
            for idx, page in enumerate(result.top_pages[:5], 1):
                body_parts.append(
                    '<p style="margin:4px 0;font-size:13px;">' + str(idx) + '. ' + esc(page_label(page.page))
                    + ': ' + format_number(page.clicks) + ' clicks, position ' + f"{page.position:.1f}" + '</p>'
                )
            body_parts.append('</div>')

        # Tasks
        if tasks:
            body_parts.append('<div style="margin:20px 0;padding:15px;background-color:#fffbeb;border:1px solid #fde68a;border-radius:6px;">')
            body_parts.append('<h3 style="color:#92400e;font-size:15px;margin:0 0 10px;">Your Tasks This Week</h3>')
            for task in tasks:
                due = ' (due ' + task.due_date.strftime("%b %d, %Y") + ')' if task.due_date else ''
                body_parts.append(
                    '<p style="margin:4px 0;font-size:13px;"><strong>[' + task.priority.value + ']</strong> '
                    + esc(task.title) + due + '</p>'
                )
            body_parts.append('</div>')

        # Footer
        generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        body_parts.append('<div style="margin-top:25px;padding-top:15px;border-top:1px solid #e2e8f0;text-align:center;color:#94a3b8;font-size:11px;">')
        body_parts.append('<p>Generated by ' + esc(self._company_name) + ' on ' + generated_at + '</p>')
        body_parts.append('</div>')
        body_parts.append('</body></html>')
        return "\n".join(body_parts)

    def build_onboarding_message(
        self,
        name: str,
        email: str,
        password: str,
        login_url: Optional[str] = None,
    ) -> EmailMessage:
        """Welcome email for a newly created account, with its login details."""
        sender = self._settings.sender or self._settings.user or "noreply@localhost"

        message = EmailMessage()
        message["Subject"] = f"Welcome to {self._company_name} - Your Account is Ready"
        message["From"] = formataddr((self._settings.sender_name, sender))
        message["To"] = email
        message["Message-ID"] = make_msgid()

        lines = [
            f"Hi {name},",
            "",
            f"Your {self._company_name} account has been created.",
            "",
            f"Email: {email}",
            f"Password: {password}",
        ]
        if login_url:
            lines.append(f"Log in: {login_url}")
        lines += ["", "Please change your password after your first login."]
        message.set_content("\n".join(lines))

        esc = html.escape
        body_parts = []
        body_parts.append('<!DOCTYPE html><html><body style="font-family:Arial,Helvetica,sans-serif;color:#1e293b;max-width:600px;margin:0 auto;padding:20px;">')
        body_parts.append('<h1 style="font-size:22px;">Welcome to ' + esc(self._company_name) + '</h1>')
        body_parts.append('<p>Hi ' + esc(name) + ', your account has been created.</p>')
        body_parts.append('<div style="background:#f8fafc;border:1px solid #e2e8f0;border-radius:6px;padding:15px;">')
        body_parts.append('<p style="margin:0 0 5px;"><strong>Email:</strong> ' + esc(email) + '</p>')
        body_parts.append('<p style="margin:0;"><strong>Password:</strong> ' + esc(password) + '</p>')
        body_parts.append('</div>')
        if login_url:
            body_parts.append(
                '<p style="text-align:center;margin:25px 0;"><a href="' + esc(login_url)
                + '" style="background:#2563eb;color:#ffffff;padding:10px 20px;border-radius:6px;text-decoration:none;">Log in</a></p>'
            )
        body_parts.append('<p style="color:' + _MUTED + ';font-size:13px;">Please change your password after your first login.</p>')
        body_parts.append('</body></html>')
        message.add_alternative("\n".join(body_parts), subtype="html")
        return message

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send(self, message: EmailMessage, recipients: Optional[Sequence[str]] = None) -> bool:
        """Send over SMTP with STARTTLS.  Returns False (and logs) on failure."""
        if not self.is_configured:
            logger.warning("SMTP not configured (SMTP_USER / SMTP_PASSWORD); email not sent")
            return False

        to_addrs = list(recipients) if recipients else [
            addr.strip() for addr in str(message.get("To", "")).split(",") if addr.strip()
        ]
        if not to_addrs:
            logger.warning("No recipients for %r; email not sent", message["Subject"])
            return False

        settings = self._settings
        try:
            with smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout) as server:
                server.starttls()
                server.login(settings.user, settings.password)
                server.send_message(message, to_addrs=to_addrs)
        except smtplib.SMTPAuthenticationError as exc:
            logger.error("SMTP authentication failed for %s: %s", settings.user, exc)
            return False
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send %r via %s:%s: %s", message["Subject"], settings.host, settings.port, exc)
            return False

        logger.info("Sent %r to %d recipient(s)", message["Subject"], len(to_addrs))
        return True
