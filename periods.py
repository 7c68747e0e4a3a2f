from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional


class DashboardPeriod(str, Enum):
    this_month = "thisMonth"
    last_month = "lastMonth"
    last_3_months = "last3Months"
    this_year = "thisYear"
    all_time = "allTime"


@dataclass(frozen=True)
class Period:
    """Half-open ``[start, end)`` interval; ``None`` bounds are open."""

    slug: str
    start: Optional[datetime]
    end: Optional[datetime]

    @property
    def is_bounded(self) -> bool:
        return self.start is not None and self.end is not None


def month_start(d: date) -> datetime:
    return datetime(d.year, d.month, 1)


def add_months(d: date, count: int) -> datetime:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return datetime(year, month, 1)


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1)
    return start, add_months(start, 1)


def year_bounds(year: int) -> tuple[datetime, datetime]:
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)


def day_range(start: Optional[date], end: Optional[date]) -> Period:
    """Inclusive calendar days turned into a half-open instant interval."""
    start_at = datetime(start.year, start.month, start.day) if start else None
    end_at = (
        datetime(end.year, end.month, end.day) + timedelta(days=1) if end else None
    )
    if start_at and end_at and start_at >= end_at:
        raise ValueError("Start date must be before end date")
    return Period("custom", start_at, end_at)


def resolve_dashboard_period(
    period: Optional[str], *, now: Optional[datetime] = None
) -> Period:
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    slug = DashboardPeriod(period) if period else DashboardPeriod.this_month
    first = month_start(now)

    if slug == DashboardPeriod.all_time:
        return Period(slug.value, None, None)
    if slug == DashboardPeriod.last_month:
        return Period(slug.value, add_months(first, -1), first)
    if slug == DashboardPeriod.last_3_months:
        return Period(slug.value, add_months(first, -3), add_months(first, 1))
    if slug == DashboardPeriod.this_year:
        start, end = year_bounds(now.year)
        return Period(slug.value, start, end)
    return Period(slug.value, first, add_months(first, 1))
