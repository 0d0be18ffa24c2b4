"""SQLAlchemy ORM models. Importing this package populates Base.metadata."""

from seo_reporter.models.account import (
    Role,
    User,
    UserSession,
    PasswordResetToken,
    LoginLog,
)
from seo_reporter.models.site import (
    Site,
    ClientSite,
)
from seo_reporter.models.metrics import (
    DailyMetric,
    PageMetric,
    QueryMetric,
)
from seo_reporter.models.report import WeeklyReport
from seo_reporter.models.task import (
    Task,
    TaskPriority,
    TaskStatus,
)
from seo_reporter.models.api_usage import (
    ApiType,
    ApiUsage,
    JobType,
    ScheduleConfig,
)

__all__ = [
    "Role",
    "User",
    "UserSession",
    "PasswordResetToken",
    "LoginLog",
    "Site",
    "ClientSite",
    "DailyMetric",
    "PageMetric",
    "QueryMetric",
    "WeeklyReport",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "ApiType",
    "ApiUsage",
    "JobType",
    "ScheduleConfig",
]
