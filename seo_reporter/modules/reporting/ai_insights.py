"""LLM-written report insights with a rule-based fallback.

:class:`AIInsightAdapter` never raises.  Every outcome is an
:class:`AIInsightResult` whose ``source`` says how it was produced:

* ``AI``: the model returned a JSON object;
* ``AI_TEXT``: the model answered but not with JSON, so its lines were
  bucketed by keyword;
* ``BASELINE``: no usable model output, so the insights were derived from
  the rule-based engine.
"""

import json
import logging
import re
from typing import Any, Optional

from seo_reporter.errors import ErrorKind, error_kind
from seo_reporter.integrations.api_tracking import ApiUsageTracker
from seo_reporter.integrations.llm_client import Completion, LLMClient
from seo_reporter.modules.reporting import insight_engine
from seo_reporter.modules.reporting.schemas import (
    AIInsightResult,
    AIInsights,
    InsightContext,
    InsightSource,
    Severity,
)
from seo_reporter.utils.formatting import format_change, format_ctr, format_number

logger = logging.getLogger(__name__)

INSIGHTS_ENDPOINT = "chat.completions/insights"
QUICK_INSIGHT_ENDPOINT = "chat.completions/quick-insight"

SYSTEM_PROMPT = """You are an expert SEO analyst specializing in property management and real estate SEO with an optimistic, growth-focused perspective.

ACCURACY RULES:
1. Use ONLY data explicitly provided in the user's message. Never invent, estimate, or assume numbers, metrics, or facts.
2. Do not reference pages, queries, or content unless they appear in the provided lists.
3. Only quote percentage changes that exactly match the provided numbers.
4. If data for something is missing, say "Data not available" instead of guessing.

TONE:
- Lead with wins and progress.
- Present declines as optimization opportunities with concrete next steps.
- Use encouraging language ("opportunity to improve", "potential for growth").

General SEO knowledge (algorithm updates, property management industry trends, technical SEO, content strategy) may inform context, but every specific metric, page, or query must come from the provided data."""

QUICK_SYSTEM_PROMPT = (
    "You are a concise SEO analyst. Give brief, actionable insights based ONLY on the "
    "data provided. Never invent, estimate, or assume metrics that are not stated. General "
    "SEO and property management knowledge is fine, but specific numbers must come from the data."
)

JSON_SCHEMA_HINT = """{
  "executiveSummary": "2-3 sentence overview using ONLY the metrics provided",
  "marketContext": "How current SEO and property management dynamics relate to this data",
  "keyInsights": ["Insight based on actual data", "..."],
  "urgentActions": ["Action", "..."],
  "strategicRecommendations": ["Recommendation", "..."],
  "industryTrends": "Relevant trends affecting property management SEO",
  "wins": ["Positive achievement based on the changes provided", "..."],
  "awareness": ["Trend we are monitoring, based on actual data", "..."],
  "nextSteps": ["Specific action item based on actual data", "..."]
}"""

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_FENCED_ANY = re.compile(r"```[a-zA-Z]*\s*([\s\S]*?)\s*```")

_KEY_INSIGHT_WORDS = ("insight", "finding", "observation")
_URGENT_WORDS = ("urgent", "immediate", "critical")
_RECOMMEND_WORDS = ("recommend", "should", "consider")


# ----------------------------------------------------------------------
# Prompt construction
# ----------------------------------------------------------------------

def _signed(value: float) -> str:
    return f"{value:+.1f}"


def build_analysis_prompt(context: InsightContext) -> str:
    cmp = context.comparison
    cur = cmp.current
    dates = context.period.as_strings()

    pages = "\n".join(
        f"{i}. {p.page}: {p.clicks} clicks, {p.impressions} impressions, "
        f"{format_ctr(p.ctr)} CTR, Position {p.position:.1f}"
        for i, p in enumerate(context.top_pages[:5], start=1)
    ) or "No page data available."
    queries = "\n".join(
        f'{i}. "{q.query}": {q.clicks} clicks, {q.impressions} impressions, '
        f"{format_ctr(q.ctr)} CTR, Position {q.position:.1f}"
        for i, q in enumerate(context.top_queries[:5], start=1)
    ) or "No query data available."

    return f"""Analyze SEO performance for {context.website_domain} and provide insights.

**Current Period:** {dates['startDate']} to {dates['endDate']}
**Previous Period:** {dates['previousStartDate']} to {dates['previousEndDate']}

**Current Metrics:**
- Total Clicks: {format_number(cur.total_clicks)}
- Total Impressions: {format_number(cur.total_impressions)}
- Average CTR: {format_ctr(cur.average_ctr)}
- Average Position: {cur.average_position:.1f}

**Period-over-Period Changes:**
- Clicks: {format_change(cmp.clicks_change)}
- Impressions: {format_change(cmp.impressions_change)}
- CTR: {format_change(cmp.ctr_change)}
- Position: {_signed(cmp.position_change)} (lower is better)

**Top 5 Performing Pages:**
{pages}

**Top 5 Search Queries:**
{queries}

Use ONLY the data above. Any percentage you mention must match the changes listed, and any page or query you mention must come from the two lists.

Respond with a single JSON object in exactly this shape:
{JSON_SCHEMA_HINT}"""


def build_quick_prompt(context: InsightContext) -> str:
    cmp = context.comparison
    cur = cmp.current
    return f"""Briefly analyze SEO performance for {context.website_domain} based ONLY on this data:

- Current Clicks: {cur.total_clicks}
- Current Impressions: {cur.total_impressions}
- Change in Clicks: {format_change(cmp.clicks_change)}
- Change in Impressions: {format_change(cmp.impressions_change)}
- Average Position: {cur.average_position:.1f}
- Average CTR: {format_ctr(cur.average_ctr)}

Reference only these numbers. Provide a 2-3 sentence insight that is specific and actionable."""


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------

def extract_json_text(text: str) -> str:
    """Return the ```json fenced block, else any fenced block, else ``text``."""
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    return (match.group(1) if match else text).strip()


def decode_json_response(text: str) -> Any:
    """``json.loads`` on the extracted block.  Raises ``ValueError`` on failure."""
    return json.loads(extract_json_text(text))


def extract_insights_from_text(text: str) -> AIInsights:
    """Bucket free-text lines into insight fields by keyword."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]

    def matching(words: tuple[str, ...], limit: int) -> tuple[str, ...]:
        return tuple(l for l in lines if any(w in l.lower() for w in words))[:limit]

    return AIInsights(
        executive_summary=" ".join(lines[:3]) or "SEO performance analysis completed.",
        market_context="Current market conditions and SEO trends are being analyzed.",
        key_insights=matching(_KEY_INSIGHT_WORDS, 5),
        urgent_actions=matching(_URGENT_WORDS, 3),
        strategic_recommendations=matching(_RECOMMEND_WORDS, 5),
        industry_trends="Property management SEO trends are being evaluated.",
    )


def parse_ai_response(text: str) -> AIInsightResult:
    try:
        payload = decode_json_response(text)
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    except ValueError as exc:
        logger.warning("AI response was not a JSON object (%s); classifying lines instead", exc)
        return AIInsightResult(
            extract_insights_from_text(text), InsightSource.AI_TEXT,
            error=str(exc), error_kind=ErrorKind.PARSE,
        )
    return AIInsightResult(AIInsights.from_payload(payload), InsightSource.AI)


# ----------------------------------------------------------------------
# Baseline fallback
# ----------------------------------------------------------------------

def _baseline_summary(context: InsightContext) -> str:
    cmp = context.comparison
    cur = cmp.current
    dates = context.period.as_strings()
    if cur.is_empty and cmp.previous.is_empty:
        return (
            f"No Search Console data is available yet for {context.website_domain} between "
            f"{dates['startDate']} and {dates['endDate']}. A stable baseline will be "
            f"established as data arrives."
        )
    return (
        f"{context.website_domain} earned {format_number(cur.total_clicks)} clicks from "
        f"{format_number(cur.total_impressions)} impressions between {dates['startDate']} and "
        f"{dates['endDate']} ({format_change(cmp.clicks_change)} clicks, "
        f"{format_change(cmp.impressions_change)} impressions versus the previous period). "
        f"Average position was {cur.average_position:.1f} with a {format_ctr(cur.average_ctr)} CTR."
    )


def fallback_insights(context: InsightContext) -> AIInsights:
    """Opportunity-framed insights built only from the rule-based engine."""
    cmp = context.comparison
    cur = cmp.current
    findings = insight_engine.generate_insights(cmp)
    baseline_recs = insight_engine.generate_recommendations(cmp, context.top_pages, context.top_queries)

    wins: list[str] = []
    if cmp.clicks_change > 0:
        wins.append(f"Traffic increased {cmp.clicks_change:.1f}% - strong momentum")
    if cmp.impressions_change > 0:
        wins.append(f"Visibility improved {cmp.impressions_change:.1f}% - reaching more searchers")
    if cmp.ctr_change > 0:
        wins.append(f"Click-through rate improved {cmp.ctr_change:.1f}% - better engagement")
    if cmp.position_change < 0:
        wins.append(f"Average ranking improved {abs(cmp.position_change):.1f} positions")
    if not wins:
        wins.append("Stable baseline established - ready for optimization and growth")

    urgent: list[str] = []
    key_insights = [f.message for f in findings]
    if cmp.clicks_change <= insight_engine.CRITICAL_DROP_PCT:
        urgent.append("Opportunity to boost traffic: review recent changes and optimize top pages")
    if cmp.impressions_change <= insight_engine.CRITICAL_DROP_PCT:
        urgent.append("Visibility opportunity: review Google Search Console for optimization areas")

    strategic: list[str] = []
    if insight_engine.WARNING_DROP_PCT > cmp.clicks_change > insight_engine.CRITICAL_DROP_PCT:
        strategic.append("Opportunity to improve traffic: focus on content optimization and meta descriptions")
    if cur.average_position > 10:
        strategic.append("Ranking growth opportunity: significant potential to move up in search results")
    if cur.total_impressions > 0 and cur.average_ctr < insight_engine.LOW_CTR:
        strategic.append("CTR optimization opportunity: enhance meta descriptions to attract more clicks")
    strategic += [
        re.sub(r"^\d+\.\s*", "", line)
        for line in baseline_recs
        if line != insight_engine.CONTINUE_MONITORING_LINE
    ]
    if not strategic:
        strategic.append("Continue optimizing based on data trends to maintain growth trajectory.")

    awareness = [
        f.message for f in findings
        if f.severity in (Severity.CRITICAL, Severity.WARNING, Severity.NEGATIVE)
    ]

    return AIInsights(
        executive_summary=_baseline_summary(context),
        market_context=(
            "Property management SEO rewards local search optimization, quality content, "
            "and technical excellence."
        ),
        key_insights=tuple(key_insights) or ("Monitoring performance trends and identifying growth opportunities.",),
        urgent_actions=tuple(urgent),
        strategic_recommendations=tuple(strategic),
        industry_trends=(
            "Property management search favors local results, helpful content, "
            "and fast mobile experiences."
        ),
        wins=tuple(wins),
        awareness=tuple(awareness),
        next_steps=tuple(strategic[:3]),
    )


# ----------------------------------------------------------------------
# Adapter
# ----------------------------------------------------------------------

class AIInsightAdapter:
    """Generate report insights with the LLM, degrading to the baseline.

    Usage::

        adapter = AIInsightAdapter(llm_client, tracker)
        result = await adapter.generate_ai_insights(context)
        if result.source is InsightSource.BASELINE:
            ...
    """

    def __init__(
        self,
        llm: Optional[LLMClient],
        tracker: Optional[ApiUsageTracker] = None,
        temperature: float = 0.5,
        max_tokens: int = 2000,
        quick_max_tokens: int = 150,
    ):
        self._llm = llm
        self._tracker = tracker
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._quick_max_tokens = quick_max_tokens

    @property
    def enabled(self) -> bool:
        return self._llm is not None and self._llm.is_configured

    async def _complete(self, endpoint: str, system_prompt: str, user_prompt: str, max_tokens: int) -> Completion:
        if self._tracker is not None:
            return await self._tracker.track_completion(
                self._llm, endpoint, system_prompt, user_prompt, self._temperature, max_tokens
            )
        return await self._llm.complete(
            system_prompt, user_prompt, temperature=self._temperature, max_tokens=max_tokens
        )

    async def generate_ai_insights(self, context: InsightContext) -> AIInsightResult:
        """Full structured analysis.  Never raises."""
        if not self.enabled:
            logger.warning("No LLM API key configured; using baseline insights")
            return AIInsightResult(
                fallback_insights(context), InsightSource.BASELINE,
                error="LLM not configured", error_kind=ErrorKind.CONFIGURATION,
            )

        try:
            completion = await self._complete(
                INSIGHTS_ENDPOINT, SYSTEM_PROMPT, build_analysis_prompt(context), self._max_tokens
            )
        except Exception as exc:
            logger.error("AI insight generation failed, using baseline: %s", exc)
            return AIInsightResult(
                fallback_insights(context), InsightSource.BASELINE,
                error=str(exc), error_kind=error_kind(exc),
            )

        if not completion.text.strip():
            return AIInsightResult(
                fallback_insights(context), InsightSource.BASELINE,
                error="empty response", error_kind=ErrorKind.EXTERNAL_SERVICE,
            )

        result = parse_ai_response(completion.text)
        logger.info(
            "AI insights generated for %s (%s, %d tokens)",
            context.website_domain, result.source.value, completion.tokens_used,
        )
        return result

    async def generate_quick_insight(self, context: InsightContext) -> str:
        """Two or three sentence summary for dashboards.  Never raises."""
        if self.enabled:
            try:
                completion = await self._complete(
                    QUICK_INSIGHT_ENDPOINT, QUICK_SYSTEM_PROMPT, build_quick_prompt(context),
                    self._quick_max_tokens,
                )
                if completion.text.strip():
                    return completion.text.strip()
            except Exception as exc:
                logger.error("Quick insight failed, using baseline summary: %s", exc)
        return fallback_insights(context).executive_summary
