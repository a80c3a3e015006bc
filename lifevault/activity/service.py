"""
lifevault/activity/service.py
Activity tab: fetch the user's log, derive analytics, filter the timeline,
bulk delete.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from lifevault.activity.analytics import (
    DEFAULT_RANGE,
    compute_analytics,
    filter_activities,
    format_time_ago,
    weekly_trend_heights,
)
from lifevault.activity.logger import ACTIVITY_TABLE
from lifevault.backend.base import BackendAdapter
from lifevault.errors import ValidationError
from lifevault.models.record import ACTIVITY_CATEGORIES, ActivityLog

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


class ActivityService:

    def __init__(self, backend: BackendAdapter, limit: int = DEFAULT_LIMIT):
        self.backend = backend
        self.limit   = limit

    def list_activities(self, user_id: str, limit: Optional[int] = None) -> List[ActivityLog]:
        """Newest first, capped at `limit` (default 100)."""
        rows = self.backend.select(
            ACTIVITY_TABLE,
            filters    = {'user_id': user_id},
            order_by   = 'created_at',
            descending = True,
            limit      = limit or self.limit,
        )
        return [ActivityLog.from_row(r) for r in rows]

    def delete_all(self, user_id: str) -> int:
        count = self.backend.delete(ACTIVITY_TABLE, {'user_id': user_id})
        logger.info(f"Deleted {count} activity log(s)")
        return count

    def timeline(
        self,
        user_id:  str,
        category: str                = 'all',
        days:     int                = DEFAULT_RANGE,
        now:      Optional[datetime] = None,
    ) -> List[ActivityLog]:
        _check_category(category)
        return filter_activities(self.list_activities(user_id), category, days, now)

    def overview(
        self,
        user_id:  str,
        category: str                = 'all',
        days:     int                = DEFAULT_RANGE,
        now:      Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Analytics over everything fetched, plus the filtered timeline.
        Mirrors what the Activity tab renders in one round trip.
        """
        _check_category(category)
        if int(days) <= 0:
            raise ValidationError("days must be a positive number")

        logs      = self.list_activities(user_id)
        analytics = compute_analytics(logs, now)
        filtered  = filter_activities(logs, category, days, now)

        return {
            'analytics':     asdict(analytics),
            'trend_heights': weekly_trend_heights(analytics.weekly_trend),
            'filters':       {'category': category, 'days': int(days)},
            'activities': [
                {**log.to_row(), 'time_ago': format_time_ago(log.created_at, now)}
                for log in filtered
            ],
        }


def _check_category(category: str) -> None:
    if category != 'all' and category not in ACTIVITY_CATEGORIES:
        raise ValidationError(
            f"Unknown category '{category}'. Use 'all' or one of: {', '.join(ACTIVITY_CATEGORIES)}"
        )
