"""Typed records passed between the aggregator, insight engine, AI adapter,
task generator and report orchestrator."""

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from seo_reporter.errors import ErrorKind, StepFailure
from seo_reporter.models.task import TaskPriority
from seo_reporter.utils.dates import ReportPeriod

if TYPE_CHECKING:
    from seo_reporter.models.report import WeeklyReport


# ----------------------------------------------------------------------
# Metrics
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class PeriodMetrics:
    """Totals for one window.  All zeros means "no data", not a true zero."""

    total_clicks: int = 0
    total_impressions: int = 0
    average_ctr: float = 0.0
    average_position: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not (self.total_clicks or self.total_impressions or self.average_position)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ComparisonMetrics:
    """Current window versus the previous one.

    ``*_change`` fields are signed percentages; ``position_change`` is the
    absolute difference (negative means rankings improved).
    """

    current: PeriodMetrics
    previous: PeriodMetrics
    clicks_change: float = 0.0
    impressions_change: float = 0.0
    ctr_change: float = 0.0
    position_change: float = 0.0

    @property
    def total_clicks(self) -> int:
        return self.current.total_clicks

    @property
    def total_impressions(self) -> int:
        return self.current.total_impressions

    @property
    def average_ctr(self) -> float:
        return self.current.average_ctr

    @property
    def average_position(self) -> float:
        return self.current.average_position


@dataclass(frozen=True)
class TopPage:
    page: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TopQuery:
    query: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyPoint:
    date: date
    clicks: int
    impressions: int
    ctr: float
    position: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "clicks": self.clicks,
            "impressions": self.impressions,
            "ctr": self.ctr,
            "position": self.position,
        }


@dataclass(frozen=True)
class Trends:
    """Daily series for both windows, plus the optional 30-day comparison."""

    current: list[DailyPoint] = field(default_factory=list)
    previous: list[DailyPoint] = field(default_factory=list)
    monthly: Optional[ComparisonMetrics] = None


# ----------------------------------------------------------------------
# Rule-based insights
# ----------------------------------------------------------------------

class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    POSITIVE = "positive"
    NEGATIVE = "negative"
    DIAGNOSIS = "diagnosis"


@dataclass(frozen=True)
class Finding:
    severity: Severity
    signal: str
    message: str


# ----------------------------------------------------------------------
# AI insights
# ----------------------------------------------------------------------

DEFAULT_SUMMARY = "Analysis completed."
DEFAULT_MARKET_CONTEXT = "Market context analysis."
DEFAULT_INDUSTRY_TRENDS = "Industry trends analysis."


def _str_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def _optional_list(value: Any) -> Optional[tuple[str, ...]]:
    return _str_list(value) if isinstance(value, list) else None


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


@dataclass(frozen=True)
class AIInsights:
    executive_summary: str = DEFAULT_SUMMARY
    market_context: str = DEFAULT_MARKET_CONTEXT
    key_insights: tuple[str, ...] = ()
    urgent_actions: tuple[str, ...] = ()
    strategic_recommendations: tuple[str, ...] = ()
    industry_trends: str = DEFAULT_INDUSTRY_TRENDS
    wins: Optional[tuple[str, ...]] = None
    awareness: Optional[tuple[str, ...]] = None
    next_steps: Optional[tuple[str, ...]] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AIInsights":
        """Build from the model's camelCase JSON object, filling defaults."""
        return cls(
            executive_summary=_text(payload.get("executiveSummary"), DEFAULT_SUMMARY),
            market_context=_text(payload.get("marketContext"), DEFAULT_MARKET_CONTEXT),
            key_insights=_str_list(payload.get("keyInsights")),
            urgent_actions=_str_list(payload.get("urgentActions")),
            strategic_recommendations=_str_list(payload.get("strategicRecommendations")),
            industry_trends=_text(payload.get("industryTrends"), DEFAULT_INDUSTRY_TRENDS),
            wins=_optional_list(payload.get("wins")),
            awareness=_optional_list(payload.get("awareness")),
            next_steps=_optional_list(payload.get("nextSteps")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "executiveSummary": self.executive_summary,
            "marketContext": self.market_context,
            "keyInsights": list(self.key_insights),
            "urgentActions": list(self.urgent_actions),
            "strategicRecommendations": list(self.strategic_recommendations),
            "industryTrends": self.industry_trends,
        }
        for key, value in (("wins", self.wins), ("awareness", self.awareness), ("nextSteps", self.next_steps)):
            if value is not None:
                data[key] = list(value)
        return data


class InsightSource(str, Enum):
    AI = "ai"                # model returned a decodable JSON object
    AI_TEXT = "ai_text"      # model answered, JSON failed, lines classified heuristically
    BASELINE = "baseline"    # no model output; derived from the rule-based engine


@dataclass(frozen=True)
class AIInsightResult:
    insights: AIInsights
    source: InsightSource
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def from_model(self) -> bool:
        return self.source is not InsightSource.BASELINE


@dataclass(frozen=True)
class InsightContext:
    """Everything the AI adapter is allowed to talk about."""

    comparison: ComparisonMetrics
    top_pages: list[TopPage]
    top_queries: list[TopQuery]
    website_domain: str
    period: ReportPeriod


# ----------------------------------------------------------------------
# Technical issues and tasks
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class TechnicalIssue:
    page: str
    issue: str
    severity: str  # "error" | "warning" | "info"


@dataclass(frozen=True)
class TechnicalIssues:
    sitemap_issues: list[TechnicalIssue] = field(default_factory=list)
    potential_issues: list[TechnicalIssue] = field(default_factory=list)

    @property
    def all_issues(self) -> list[TechnicalIssue]:
        return [*self.sitemap_issues, *self.potential_issues]

    @property
    def total_errors(self) -> int:
        return sum(1 for i in self.all_issues if i.severity == "error")

    @property
    def total_warnings(self) -> int:
        return sum(1 for i in self.all_issues if i.severity == "warning")


@dataclass(frozen=True)
class GeneratedTask:
    title: str
    description: str
    priority: TaskPriority


@dataclass(frozen=True)
class TaskGenerationContext:
    comparison: ComparisonMetrics
    top_pages: list[TopPage]
    top_queries: list[TopQuery]
    recommendations: str
    website_domain: str
    user_name: str
    week_start: date
    week_end: date
    business_name: Optional[str] = None
    technical_issues: Optional[TechnicalIssues] = None


# ----------------------------------------------------------------------
# Orchestrator output
# ----------------------------------------------------------------------

@dataclass
class ReportResult:
    report: "WeeklyReport"
    site_id: int
    website_domain: str
    period: ReportPeriod
    comparison: ComparisonMetrics
    top_pages: list[TopPage]
    top_queries: list[TopQuery]
    findings: list[Finding]
    baseline_insights: str
    baseline_recommendations: str
    insights: str
    recommendations: str
    trends: Trends
    ai: Optional[AIInsightResult] = None
    tasks_created: int = 0
    failures: list[StepFailure] = field(default_factory=list)
