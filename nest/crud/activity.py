"""Append-only activity log helpers."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..models.activity import ActivityLog
from ..services.timecalc import utc_now_iso


def record_activity(
    db: Session,
    *,
    activity_type: str,
    user_id: int | None = None,
    gear_id: int | None = None,
    request_id: int | None = None,
    status: str | None = None,
    notes: str | None = None,
    details: dict[str, Any] | None = None,
    commit: bool = True,
) -> ActivityLog:
    """Append one audit row. Pass ``commit=False`` to join a larger unit of work."""

    entry = ActivityLog(
        activity_type=activity_type,
        user_id=user_id,
        gear_id=gear_id,
        request_id=request_id,
        status=status,
        notes=(notes or "").strip() or None,
        details_blob=json.dumps(details) if details else None,
        created_at=utc_now_iso(),
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    else:
        db.flush()
    return entry


def list_activities(
    db: Session, *, limit: int = 50, offset: int = 0, user_id: int | None = None
) -> list[ActivityLog]:
    stmt = select(ActivityLog)
    if user_id is not None:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    stmt = stmt.order_by(desc(ActivityLog.created_at), desc(ActivityLog.id)).limit(limit).offset(offset)
    return list(db.execute(stmt).unique().scalars().all())


def count_by_type(db: Session, *, since: str | None = None, until: str | None = None) -> dict[str, int]:
    stmt = select(ActivityLog.activity_type, func.count(ActivityLog.id)).group_by(ActivityLog.activity_type)
    if since:
        stmt = stmt.where(ActivityLog.created_at >= since)
    if until:
        stmt = stmt.where(ActivityLog.created_at < until)
    return {activity_type: int(count) for activity_type, count in db.execute(stmt).all()}
