"""Shared utilities: date windows, display formatting, rate limiting."""

from seo_reporter.utils.dates import ReportPeriod, resolve_period
from seo_reporter.utils.rate_limiter import RateLimiter

__all__ = ["RateLimiter", "ReportPeriod", "resolve_period"]
