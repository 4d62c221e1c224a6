"""Admin dashboard figures.

``compute_dashboard_stats`` is a pure function over rows that were already
fetched; ``load_dashboard`` does the fetching and times each query so the
health figure reflects the current run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from sqlalchemy.orm import Session

from ..core.gear_status import CHECKED_OUT, RETIRED, UNDER_REPAIR
from ..crud import activity as crud_activity
from ..crud import gears as crud_gears
from ..crud import notifications as crud_notifications
from ..crud import profiles as crud_profiles
from ..crud import requests as crud_requests
from ..models.profile import ROLE_ADMIN, ROLE_USER, STATUS_ACTIVE
from ..models.request import APPROVED, OVERDUE, PENDING, REJECTED
from .timecalc import utc_now_iso

logger = logging.getLogger(__name__)

EXCELLENT = "excellent"
GOOD = "good"
WARNING = "warning"
CRITICAL = "critical"

SLOW_QUERY_MS = 2000


@dataclass
class QueryPerformance:
    total_queries: int = 0
    failed_queries: int = 0
    average_query_ms: float = 0.0


def _get(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def system_health(errors: dict[str, str] | Sequence[str], performance: QueryPerformance) -> str:
    if len(errors) > 2:
        return CRITICAL
    if errors:
        return WARNING
    if performance.failed_queries > performance.total_queries * 0.1:
        return WARNING
    if performance.average_query_ms > SLOW_QUERY_MS:
        return GOOD
    return EXCELLENT


def compute_dashboard_stats(
    gears: Iterable[Any],
    users: Iterable[Any],
    requests: Iterable[Any],
    notifications: Iterable[Any],
    activities: Iterable[Any],
    *,
    errors: dict[str, str] | None = None,
    performance: QueryPerformance | None = None,
) -> dict[str, Any]:
    gears, users, requests = list(gears), list(users), list(requests)
    notifications, activities = list(notifications), list(activities)
    errors = errors or {}
    performance = performance or QueryPerformance()

    total_equipment = sum(
        _get(gear, "quantity") if _get(gear, "quantity") is not None else 1 for gear in gears
    )
    available_equipment = sum(_get(gear, "available_quantity") or 0 for gear in gears)
    checked_out = sum(1 for gear in gears if _get(gear, "status") == CHECKED_OUT)
    under_repair = sum(1 for gear in gears if _get(gear, "status") == UNDER_REPAIR)
    retired = sum(1 for gear in gears if _get(gear, "status") == RETIRED)

    request_statuses = [_get(request, "status") for request in requests]
    approved = request_statuses.count(APPROVED)

    total_users = len(users)
    active_users = sum(1 for user in users if _get(user, "status") == STATUS_ACTIVE)

    return {
        "equipment": {
            "total": total_equipment,
            "available": available_equipment,
            "checked_out": checked_out,
            "under_repair": under_repair,
            "retired": retired,
            "utilization_rate": crud_gears.rate_percent(checked_out, total_equipment),
        },
        "requests": {
            "total": len(requests),
            "pending": request_statuses.count(PENDING),
            "approved": approved,
            "rejected": request_statuses.count(REJECTED),
            "overdue": request_statuses.count(OVERDUE),
            "approval_rate": crud_gears.rate_percent(approved, len(requests)),
        },
        "users": {
            "total": total_users,
            "active": active_users,
            "admins": sum(1 for user in users if _get(user, "role") == ROLE_ADMIN),
            "regular": sum(1 for user in users if _get(user, "role") == ROLE_USER),
            "engagement_rate": crud_gears.rate_percent(active_users, total_users),
        },
        "system": {
            "unread_notifications": sum(1 for item in notifications if not _get(item, "is_read")),
            "total_activities": len(activities),
            "health": system_health(errors, performance),
            "query_ms": round(performance.average_query_ms, 2),
            "errors": dict(errors),
        },
    }


@dataclass
class _Timer:
    timings: list[float] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def run(self, db: Session, name: str, fetch: Callable[[], list[Any]]) -> list[Any]:
        start = time.perf_counter()
        try:
            return fetch()
        except Exception as exc:
            db.rollback()
            self.errors[name] = str(exc)
            logger.warning("dashboard.fetch_failed", extra={"extra_data": {"source": name, "error": str(exc)}})
            return []
        finally:
            self.timings.append((time.perf_counter() - start) * 1000)


def load_dashboard(db: Session, *, activity_limit: int = 100) -> dict[str, Any]:
    timer = _Timer()
    gears = timer.run(db, "gears", lambda: crud_gears.all_gears(db))
    users = timer.run(db, "profiles", lambda: crud_profiles.list_profiles(db))
    requests = timer.run(db, "gear_requests", lambda: crud_requests.all_requests(db))
    notifications = timer.run(db, "notifications", lambda: crud_notifications.all_notifications(db))
    activities = timer.run(db, "activities", lambda: crud_activity.list_activities(db, limit=activity_limit))
    performance = QueryPerformance(
        total_queries=len(timer.timings),
        failed_queries=len(timer.errors),
        average_query_ms=sum(timer.timings) / len(timer.timings) if timer.timings else 0.0,
    )
    stats = compute_dashboard_stats(
        gears, users, requests, notifications, activities, errors=timer.errors, performance=performance
    )
    stats["last_updated"] = utc_now_iso()
    return stats
