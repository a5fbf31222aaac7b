"""
Calendar aggregation.

All grouping happens in memory over rows already filtered to one month.
Days are local calendar days, formatted ``YYYY-MM-DD``.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .errors import ValidationFailed

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """Parse ``YYYY-MM`` into a half-open ``[first day, next month)`` range."""
    match = _MONTH_RE.match(month or "")
    if not match:
        raise ValidationFailed("Month must be formatted as YYYY-MM.")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise ValidationFailed("Month must be formatted as YYYY-MM.")
    start = datetime(year, mon, 1)
    end = datetime(year + 1, 1, 1) if mon == 12 else datetime(year, mon + 1, 1)
    return start, end


def day_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def count_by_day(moments: Iterable[datetime]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for moment in moments:
        counts[day_key(moment)] += 1
    return dict(counts)


@dataclass
class DaySummary:
    count: int = 0
    statuses: set[str] = field(default_factory=set)

    def as_dict(self) -> dict:
        return {"count": self.count, "statuses": sorted(self.statuses)}


def summarize_by_day(rows: Iterable[tuple[datetime, str]]) -> dict[str, dict]:
    """Group ``(moment, status)`` pairs into per-day count + distinct statuses."""
    days: dict[str, DaySummary] = defaultdict(DaySummary)
    for moment, status in rows:
        summary = days[day_key(moment)]
        summary.count += 1
        summary.statuses.add(status)
    return {day: s.as_dict() for day, s in sorted(days.items())}
