"""AI-generated weekly to-do tasks for client users."""

import asyncio
import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select

from seo_reporter.database import Database
from seo_reporter.integrations.api_tracking import ApiUsageTracker
from seo_reporter.integrations.llm_client import LLMClient
from seo_reporter.models.task import Task, TaskPriority, TaskStatus
from seo_reporter.modules.reporting.ai_insights import decode_json_response
from seo_reporter.modules.reporting.schemas import GeneratedTask, TaskGenerationContext
from seo_reporter.utils.formatting import format_change, format_ctr, format_number

logger = logging.getLogger(__name__)

MAX_TASKS = 5
AI_ASSIGNEE = "AI Analysis System"
TASKS_ENDPOINT = "chat.completions/tasks"
_PRIORITY_ORDER = [TaskPriority.URGENT, TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW]

SYSTEM_PROMPT = """You are an expert SEO strategist. From SEO performance data, generate specific, actionable tasks that improve rankings, click-through rate, and visibility.

RULES:
1. Base every task on the data provided. Do not invent metrics or make assumptions.
2. Each task must be specific, actionable, and measurable.
3. Priority reflects impact: URGENT for critical issues, HIGH for high-impact opportunities, MEDIUM for standard improvements, LOW for nice-to-haves.
4. Target metrics trending down, or capitalize on metrics trending up.
5. Each task must be achievable within one week.
6. Generate 3-5 tasks at most.

Return JSON only."""


def build_task_prompt(context: TaskGenerationContext) -> str:
    cmp = context.comparison
    cur = cmp.current
    domain = context.website_domain

    pages = "\n".join(
        f"{i}. {p.page.replace(domain, '') or '/'}: {p.clicks} clicks, {p.impressions} impressions, "
        f"{format_ctr(p.ctr)} CTR, Position {p.position:.1f}"
        for i, p in enumerate(context.top_pages[:5], start=1)
    ) or "No page data available."
    queries = "\n".join(
        f'{i}. "{q.query}": {q.clicks} clicks, Position {q.position:.1f}, CTR {format_ctr(q.ctr)}'
        for i, q in enumerate(context.top_queries[:5], start=1)
    ) or "No query data available."

    client = context.user_name
    if context.business_name:
        client = f"{context.business_name} (contact: {context.user_name})"

    issues = ""
    if context.technical_issues and context.technical_issues.all_issues:
        listed = "\n".join(
            f"- [{i.severity}] {i.page}: {i.issue}" for i in context.technical_issues.all_issues[:10]
        )
        issues = (
            f"\n**Technical Issues ({context.technical_issues.total_errors} errors, "
            f"{context.technical_issues.total_warnings} warnings):**\n{listed}\n"
        )

    return f"""Analyze SEO performance for {domain} and generate specific, actionable tasks.

**Client:** {client}
**Period:** {context.week_start:%b %d} - {context.week_end:%b %d, %Y}

**Current Metrics:**
- Total Clicks: {format_number(cur.total_clicks)}
- Total Impressions: {format_number(cur.total_impressions)}
- Average CTR: {format_ctr(cur.average_ctr)}
- Average Position: {cur.average_position:.1f}

**Changes from Previous Period:**
- Clicks: {format_change(cmp.clicks_change)}
- Impressions: {format_change(cmp.impressions_change)}
- CTR: {format_change(cmp.ctr_change)}
- Position: {cmp.position_change:+.1f} (lower is better)

**Top 5 Performing Pages:**
{pages}

**Top 5 Search Queries:**
{queries}
{issues}
**Current Recommendations:**
{context.recommendations}

Generate 3-5 tasks based ONLY on this data. Each task should address an issue or opportunity
in the data, be achievable within a week, and name the pages or queries it targets.

Return JSON:
{{
  "tasks": [
    {{
      "title": "Specific task title",
      "description": "What to do, why it matters, and how. Reference metrics or pages from the data.",
      "priority": "URGENT|HIGH|MEDIUM|LOW"
    }}
  ]
}}"""


def _coerce_task(raw: Any) -> Optional[GeneratedTask]:
    """Validate one candidate.  Returns ``None`` if it must be dropped."""
    if not isinstance(raw, dict):
        return None
    title = raw.get("title")
    description = raw.get("description")
    if not isinstance(title, str) or not title.strip():
        return None
    if not isinstance(description, str) or not description.strip():
        return None
    try:
        priority = TaskPriority(str(raw.get("priority") or "MEDIUM").strip().upper())
    except ValueError:
        return None
    return GeneratedTask(title=title.strip()[:500], description=description.strip(), priority=priority)


def parse_task_response(text: str) -> list[GeneratedTask]:
    """Decode ``{"tasks": [...]}`` (or a bare list) into at most five tasks.

    Invalid candidates are dropped one by one; an undecodable response
    yields an empty list.
    """
    try:
        payload = decode_json_response(text)
    except ValueError as exc:
        logger.warning("Task response was not valid JSON: %s", exc)
        return []

    candidates = payload.get("tasks") if isinstance(payload, dict) else payload
    if not isinstance(candidates, list):
        return []

    tasks = []
    for raw in candidates:
        task = _coerce_task(raw)
        if task is None:
            logger.info("Dropping invalid task candidate: %r", raw)
            continue
        tasks.append(task)
    return tasks[:MAX_TASKS]


class AITaskGenerator:
    """Turns report context into persisted, AI-generated tasks.

    At most one batch of AI tasks exists per (user, week start): a rerun
    for the same week returns the existing count without calling the LLM.

    Usage::

        generator = AITaskGenerator(db, llm_client, tracker)
        created = await generator.create_ai_tasks_for_client(
            user_id, week_start, week_end, context,
        )
    """

    def __init__(
        self,
        db: Database,
        llm: Optional[LLMClient],
        tracker: Optional[ApiUsageTracker] = None,
        temperature: float = 0.5,
        max_tokens: int = 1500,
    ):
        self._db = db
        self._llm = llm
        self._tracker = tracker
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def generate_tasks(self, context: TaskGenerationContext) -> list[GeneratedTask]:
        """Ask the LLM for 0..5 tasks.  Returns ``[]`` on any failure."""
        if self._llm is None or not self._llm.is_configured:
            logger.warning("No LLM API key configured; skipping AI task generation")
            return []

        try:
            prompt = build_task_prompt(context)
            if self._tracker is not None:
                completion = await self._tracker.track_completion(
                    self._llm, TASKS_ENDPOINT, SYSTEM_PROMPT, prompt,
                    self._temperature, self._max_tokens,
                )
            else:
                completion = await self._llm.complete(
                    SYSTEM_PROMPT, prompt, temperature=self._temperature, max_tokens=self._max_tokens
                )
        except Exception as exc:
            logger.error("AI task generation failed for %s: %s", context.website_domain, exc)
            return []

        return parse_task_response(completion.text)

    def count_existing_ai_tasks(self, user_id: int, week_start: date) -> int:
        stmt = select(func.count(Task.id)).where(
            Task.user_id == user_id,
            Task.week_start_date == week_start,
            Task.is_ai_generated.is_(True),
        )
        with self._db.session() as session:
            return int(session.scalar(stmt) or 0)

    def list_open_tasks(self, user_id: int, week_start: Optional[date] = None) -> list[Task]:
        """Pending and in-progress tasks for a user, most urgent first."""
        stmt = select(Task).where(
            Task.user_id == user_id,
            Task.status.in_((TaskStatus.PENDING, TaskStatus.IN_PROGRESS)),
        )
        if week_start is not None:
            stmt = stmt.where(Task.week_start_date == week_start)
        with self._db.session() as session:
            tasks = list(session.scalars(stmt.order_by(Task.id)))
        return sorted(tasks, key=lambda t: _PRIORITY_ORDER.index(t.priority))

    def _insert_task(self, user_id: int, week_start: date, week_end: date, task: GeneratedTask) -> None:
        with self._db.session() as session:
            session.add(
                Task(
                    user_id=user_id,
                    title=task.title,
                    description=task.description,
                    priority=task.priority,
                    status=TaskStatus.PENDING,
                    due_date=week_end,
                    week_start_date=week_start,
                    week_end_date=week_end,
                    is_ai_generated=True,
                    assigned_to=AI_ASSIGNEE,
                )
            )

    async def create_ai_tasks_for_client(
        self,
        user_id: int,
        week_start: date,
        week_end: date,
        context: TaskGenerationContext,
    ) -> int:
        """Generate and store this week's AI tasks for one user.

        Returns:
            The number of tasks created, or the number already present when
            the week was generated before.
        """
        existing = await asyncio.to_thread(self.count_existing_ai_tasks, user_id, week_start)
        if existing:
            logger.info(
                "AI tasks already exist for user %s week %s (%d); skipping",
                user_id, week_start.isoformat(), existing,
            )
            return existing

        tasks = await self.generate_tasks(context)
        if not tasks:
            logger.info("No AI tasks generated for user %s", user_id)
            return 0

        created = 0
        for task in tasks:
            try:
                await asyncio.to_thread(self._insert_task, user_id, week_start, week_end, task)
                created += 1
            except Exception as exc:
                logger.error("Failed to create task %r for user %s: %s", task.title, user_id, exc)

        logger.info("Created %d AI-generated tasks for user %s", created, user_id)
        return created
