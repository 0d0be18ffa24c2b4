"""Report window arithmetic.

All windows are closed ``[start, end]`` ranges of calendar dates.  Search
Console finalises data with a lag of about three days, so "today" based
defaults step back by :data:`GSC_LAG_DAYS`.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

GSC_LAG_DAYS = 3
MONTH_WINDOW_DAYS = 30
PERIOD_TYPES = ("week", "month", "custom")


@dataclass(frozen=True)
class ReportPeriod:
    """Current window plus the equal-length window immediately before it."""

    start: date
    end: date
    previous_start: date
    previous_end: date
    period_type: str = "week"

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def as_strings(self) -> dict[str, str]:
        return {
            "startDate": self.start.isoformat(),
            "endDate": self.end.isoformat(),
            "previousStartDate": self.previous_start.isoformat(),
            "previousEndDate": self.previous_end.isoformat(),
        }


def parse_date(value: str) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string."""
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def collection_day(today: Optional[date] = None) -> date:
    """Most recent day Search Console is expected to have final data for."""
    today = today or date.today()
    return today - timedelta(days=GSC_LAG_DAYS)


def week_bounds(day: date) -> tuple[date, date]:
    """Monday..Sunday ISO week containing ``day``."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def last_full_week(today: Optional[date] = None) -> tuple[date, date]:
    """The most recent Monday..Sunday week that ended before ``today``."""
    today = today or date.today()
    this_monday, _ = week_bounds(today)
    return week_bounds(this_monday - timedelta(days=7))


def trailing_window(end: date, days: int) -> tuple[date, date]:
    return end - timedelta(days=days - 1), end


def previous_window(start: date, end: date) -> tuple[date, date]:
    """Window of the same length ending the day before ``start``."""
    if start > end:
        raise ValueError(f"start {start} is after end {end}")
    length = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    return prev_end - timedelta(days=length - 1), prev_end


def resolve_period(
    period_type: str = "week",
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> ReportPeriod:
    """Resolve the report window and its comparison window.

    Explicit ``start``/``end`` take precedence over ``period_type``.

    Args:
        period_type: ``"week"`` (last full ISO week) or ``"month"``
            (trailing 30 days ending at the Search Console lag boundary).
        start: Explicit window start; requires ``end``.
        end: Explicit window end; requires ``start``.
        today: Reference day, for tests.

    Returns:
        A :class:`ReportPeriod`.

    Raises:
        ValueError: For a half-specified or inverted window, or an unknown
            period type.
    """
    if (start is None) != (end is None):
        raise ValueError("start and end must be given together")

    if start is not None and end is not None:
        if start > end:
            raise ValueError(f"start {start} is after end {end}")
        kind = period_type if period_type in PERIOD_TYPES else "custom"
    elif period_type == "week":
        start, end = last_full_week(today)
        kind = "week"
    elif period_type == "month":
        start, end = trailing_window(collection_day(today), MONTH_WINDOW_DAYS)
        kind = "month"
    else:
        raise ValueError(f"Unknown period type: {period_type!r}")

    prev_start, prev_end = previous_window(start, end)
    return ReportPeriod(
        start=start,
        end=end,
        previous_start=prev_start,
        previous_end=prev_end,
        period_type=kind,
    )


def monthly_comparison(end: date) -> ReportPeriod:
    """Trailing 30 days ending at ``end`` versus the 30 days before that."""
    start, end = trailing_window(end, MONTH_WINDOW_DAYS)
    prev_start, prev_end = previous_window(start, end)
    return ReportPeriod(start, end, prev_start, prev_end, period_type="month")


def iter_days(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)
