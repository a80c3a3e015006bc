"""
lifevault/activity/analytics.py
Derived analytics over a user's activity log.

Input: the log rows fetched wholesale from the backend (newest first, capped).
Output: totals, this-month count, 4-week trend, per-category tally, and the
filtered timeline shown under the charts.

NOTE ON WEEKLY TREND:
  Window i (0..3) covers [now - (i+1)*7d, now - i*7d) and is stored at index
  3 - i, so the list reads oldest → newest. The four windows are contiguous,
  never overlap, and together span exactly the trailing 28 days. A record
  stamped exactly `now` falls in no window.

NOTE ON THIS MONTH:
  Calendar month boundaries are taken in UTC.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

from lifevault.errors import ValidationError
from lifevault.models.record import ACTIVITY_CATEGORIES, ActivityLog
from lifevault.timeutil import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

TREND_WEEKS       = 4
WEEK              = timedelta(days=7)
TIME_RANGES       = (7, 30, 90, 365)   # choices offered by the timeline filter
DEFAULT_RANGE     = 30
MIN_BAR_HEIGHT    = 10.0               # percent

LogLike = Union[ActivityLog, Dict]


# ── DATA MODEL ───────────────────────────────────────────────

@dataclass
class ActivityAnalytics:
    total_updates:      int             = 0
    this_month:         int             = 0
    weekly_trend:       List[int]       = field(default_factory=lambda: [0] * TREND_WEEKS)
    category_breakdown: Dict[str, int]  = field(
        default_factory=lambda: {c: 0 for c in ACTIVITY_CATEGORIES}
    )


# ── HELPERS ──────────────────────────────────────────────────

def log_field(log: LogLike, name: str):
    if isinstance(log, dict):
        return log.get(name)
    return getattr(log, name, None)


def _now(now: Optional[datetime]) -> datetime:
    return parse_timestamp(now) if now is not None else utc_now()


def _created(log: LogLike) -> Optional[datetime]:
    return parse_timestamp(log_field(log, 'created_at'))


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def week_windows(now: datetime) -> List[Tuple[datetime, datetime]]:
    """The 4 trailing [start, end) windows, oldest first."""
    windows = []
    for i in range(TREND_WEEKS):
        start = now - (i + 1) * WEEK
        end   = now - i * WEEK
        windows.append((start, end))
    windows.reverse()
    return windows


# ── ANALYTICS ────────────────────────────────────────────────

def category_breakdown(logs: Iterable[LogLike]) -> Dict[str, int]:
    """Tally per known category. Unknown categories are not counted."""
    counts: Dict[str, int] = defaultdict(int)
    for log in logs:
        cat = log_field(log, 'category')
        if cat in ACTIVITY_CATEGORIES:
            counts[cat] += 1
    return {c: counts.get(c, 0) for c in ACTIVITY_CATEGORIES}


def weekly_trend(logs: Iterable[LogLike], now: Optional[datetime] = None) -> List[int]:
    now = _now(now)
    trend = [0] * TREND_WEEKS
    windows = week_windows(now)
    for log in logs:
        ts = _created(log)
        if ts is None:
            continue
        for idx, (start, end) in enumerate(windows):
            if start <= ts < end:
                trend[idx] += 1
                break
    return trend


def compute_analytics(logs: List[LogLike], now: Optional[datetime] = None) -> ActivityAnalytics:
    """
    Totals over the full fetched list. Category and time-range filters
    do not apply here, only to the timeline.
    """
    now = _now(now)
    start = month_start(now)
    this_month = 0
    for log in logs:
        ts = _created(log)
        if ts is not None and ts >= start:
            this_month += 1

    return ActivityAnalytics(
        total_updates      = len(logs),
        this_month         = this_month,
        weekly_trend       = weekly_trend(logs, now),
        category_breakdown = category_breakdown(logs),
    )


def filter_activities(
    logs:     List[LogLike],
    category: str                = 'all',
    days:     int                = DEFAULT_RANGE,
    now:      Optional[datetime] = None,
) -> List[LogLike]:
    """
    Timeline filter: category equality (unless 'all') AND created within the
    last `days` days. Records with unparseable timestamps are dropped.
    """
    now = _now(now)
    days = int(days)
    if days <= 0:
        raise ValidationError(f"days must be a positive number, got {days}")
    cutoff = now - timedelta(days=days)

    result = []
    for log in logs:
        if category and category != 'all' and log_field(log, 'category') != category:
            continue
        ts = _created(log)
        if ts is None or ts < cutoff:
            continue
        result.append(log)
    return result


def weekly_trend_heights(trend: List[int]) -> List[float]:
    """Bar heights in percent of the busiest week, floored at MIN_BAR_HEIGHT."""
    peak = max(trend) if trend else 0
    if peak <= 0:
        return [MIN_BAR_HEIGHT for _ in trend]
    return [max(round(count / peak * 100.0, 2), MIN_BAR_HEIGHT) for count in trend]


def format_time_ago(created_at, now: Optional[datetime] = None) -> str:
    """'5m ago' / '3h ago' / '2d ago', else the calendar date."""
    ts = parse_timestamp(created_at)
    if ts is None:
        return ''
    now = _now(now)
    minutes = int((now - ts).total_seconds() // 60)
    if minutes < 60:
        return f"{max(minutes, 0)}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    if minutes < 10080:
        return f"{minutes // 1440}d ago"
    return ts.date().isoformat()
