"""Rule-based findings and recommendations from period-over-period deltas.

Pure functions, no I/O.  The output is the report's baseline text and the
fallback whenever the AI adapter has nothing better.
"""

from typing import Sequence

from seo_reporter.modules.reporting.schemas import (
    ComparisonMetrics,
    Finding,
    Severity,
    TopPage,
    TopQuery,
)
from seo_reporter.utils.formatting import page_label

CRITICAL_DROP_PCT = -20.0
WARNING_DROP_PCT = -10.0
POSITIVE_GAIN_PCT = 10.0
POSITION_SHIFT = 2.0

LOW_CTR = 0.02
LOW_CTR_PAGE_MIN_IMPRESSIONS = 100
LOW_CTR_QUERY_MIN_IMPRESSIONS = 500
QUICK_WIN_MIN_IMPRESSIONS = 200
QUICK_WIN_POSITION_RANGE = (5.0, 15.0)

NO_CHANGES_LINE = "No significant changes this period; performance is holding steady."
CONTINUE_MONITORING_LINE = "Continue monitoring metrics and maintaining current SEO strategy."


def _is_critical_drop(change: float) -> bool:
    # Inclusive: an exact 20% drop is critical.
    return change <= CRITICAL_DROP_PCT


def generate_insights(comparison: ComparisonMetrics) -> list[Finding]:
    """Emit at most one finding per signal, then at most one diagnosis."""
    findings: list[Finding] = []
    clicks = comparison.clicks_change
    impressions = comparison.impressions_change
    ctr = comparison.ctr_change
    position = comparison.position_change

    if _is_critical_drop(clicks):
        findings.append(Finding(
            Severity.CRITICAL, "clicks",
            f"CRITICAL: Clicks dropped {abs(clicks):.1f}% - immediate attention needed",
        ))
    elif clicks < WARNING_DROP_PCT:
        findings.append(Finding(
            Severity.WARNING, "clicks", f"WARNING: Clicks decreased {abs(clicks):.1f}%",
        ))
    elif clicks > POSITIVE_GAIN_PCT:
        findings.append(Finding(
            Severity.POSITIVE, "clicks", f"POSITIVE: Clicks increased {clicks:.1f}%",
        ))

    if _is_critical_drop(impressions):
        findings.append(Finding(
            Severity.CRITICAL, "impressions",
            f"CRITICAL: Visibility dropped significantly, {abs(impressions):.1f}% fewer impressions",
        ))
    elif impressions < WARNING_DROP_PCT:
        findings.append(Finding(
            Severity.WARNING, "impressions", f"WARNING: Impressions decreased {abs(impressions):.1f}%",
        ))
    elif impressions > POSITIVE_GAIN_PCT:
        findings.append(Finding(
            Severity.POSITIVE, "impressions",
            f"POSITIVE: Visibility improved, {impressions:.1f}% more impressions",
        ))

    if ctr < WARNING_DROP_PCT:
        findings.append(Finding(
            Severity.WARNING, "ctr",
            f"WARNING: CTR declined {abs(ctr):.1f}% - titles and descriptions may need work",
        ))
    elif ctr > POSITIVE_GAIN_PCT:
        findings.append(Finding(
            Severity.POSITIVE, "ctr", f"POSITIVE: CTR improved {ctr:.1f}% - better engagement",
        ))

    if position > POSITION_SHIFT:
        findings.append(Finding(
            Severity.NEGATIVE, "position", f"Average ranking dropped {position:.1f} positions",
        ))
    elif position < -POSITION_SHIFT:
        findings.append(Finding(
            Severity.POSITIVE, "position", f"POSITIVE: Average ranking improved {abs(position):.1f} positions",
        ))

    if clicks < WARNING_DROP_PCT and impressions < WARNING_DROP_PCT:
        findings.append(Finding(
            Severity.DIAGNOSIS, "diagnosis",
            "DIAGNOSIS: Both visibility and engagement are down - likely a ranking/algorithm issue",
        ))
    elif clicks < WARNING_DROP_PCT and impressions >= 0:
        findings.append(Finding(
            Severity.DIAGNOSIS, "diagnosis",
            "DIAGNOSIS: Visibility is stable but clicks are down - CTR optimization needed",
        ))

    return findings


def generate_recommendations(
    comparison: ComparisonMetrics,
    top_pages: Sequence[TopPage],
    top_queries: Sequence[TopQuery],
) -> list[str]:
    """Ordered, numbered recommendation lines.

    Returns the single "continue monitoring" line when nothing triggers.
    """
    items: list[str] = []

    if _is_critical_drop(comparison.clicks_change):
        items += [
            "URGENT: Audit top pages for technical issues (404s, slow load times, mobile issues)",
            "Check Google Search Console for manual penalties or Core Web Vitals issues",
            "Review recent website changes that may have impacted SEO",
        ]

    if comparison.position_change > POSITION_SHIFT:
        items += [
            "Analyze top-ranking competitors for content gaps",
            "Update content on declining pages with fresh information",
            "Build quality backlinks to key landing pages",
        ]

    if comparison.ctr_change < WARNING_DROP_PCT:
        items += [
            "Rewrite meta titles and descriptions for low-CTR pages",
            "Add schema markup to enhance search result appearance",
        ]

    low_ctr_pages = [
        p for p in top_pages if p.ctr < LOW_CTR and p.impressions > LOW_CTR_PAGE_MIN_IMPRESSIONS
    ]
    if low_ctr_pages:
        names = ", ".join(page_label(p.page) for p in low_ctr_pages[:3])
        items.append(f"Optimize CTR for pages with high impressions but low CTR: {names}")

    high_impression_low_ctr = [
        q for q in top_queries if q.impressions > LOW_CTR_QUERY_MIN_IMPRESSIONS and q.ctr < LOW_CTR
    ]
    if high_impression_low_ctr:
        names = '", "'.join(q.query for q in high_impression_low_ctr[:2])
        items.append(f'Target high-impression, low-CTR queries: "{names}"')

    low, high = QUICK_WIN_POSITION_RANGE
    quick_wins = [
        q for q in top_queries
        if low < q.position < high and q.impressions > QUICK_WIN_MIN_IMPRESSIONS
    ]
    if quick_wins:
        names = '", "'.join(q.query for q in quick_wins[:3])
        items.append(f'Quick win opportunities (position 5-15): "{names}"')

    if not items:
        return [CONTINUE_MONITORING_LINE]
    return [f"{n}. {text}" for n, text in enumerate(items, start=1)]


def format_insights(findings: Sequence[Finding]) -> str:
    if not findings:
        return NO_CHANGES_LINE
    return "\n".join(f.message for f in findings)


def format_recommendations(recommendations: Sequence[str]) -> str:
    return "\n".join(recommendations) or CONTINUE_MONITORING_LINE


def has_alerts(findings: Sequence[Finding]) -> bool:
    """True if any finding is critical, a warning, or a ranking regression."""
    return any(
        f.severity in (Severity.CRITICAL, Severity.WARNING, Severity.NEGATIVE) for f in findings
    )
