from __future__ import annotations

import json
from typing import Any, Iterable

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..models.notification import PUSH_PENDING, Notification, PushNotificationQueue
from ..services.timecalc import utc_now_iso


def create_notification(
    db: Session,
    *,
    user_id: int,
    title: str,
    message: str,
    type: str = "system",
    link: str | None = None,
    meta: dict[str, Any] | None = None,
    commit: bool = True,
) -> Notification:
    now = utc_now_iso()
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        is_read=0,
        link=link,
        created_at=now,
        updated_at=now,
    )
    notification.meta = meta
    db.add(notification)
    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()
    return notification


def notify_many(
    db: Session,
    user_ids: Iterable[int],
    *,
    title: str,
    message: str,
    type: str = "system",
    link: str | None = None,
    meta: dict[str, Any] | None = None,
) -> list[Notification]:
    """One notification per distinct user id, committed together."""

    seen: set[int] = set()
    rows = []
    for user_id in user_ids:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        rows.append(
            create_notification(
                db, user_id=user_id, title=title, message=message, type=type, link=link, meta=meta, commit=False
            )
        )
    db.commit()
    return rows


def list_notifications(
    db: Session, user_id: int, *, unread_only: bool = False, limit: int = 50, offset: int = 0
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == 0)
    stmt = stmt.order_by(Notification.is_read, desc(Notification.created_at), desc(Notification.id))
    return list(db.execute(stmt.limit(limit).offset(offset)).scalars().all())


def all_notifications(db: Session) -> list[Notification]:
    return list(db.execute(select(Notification)).scalars().all())


def get_notification(db: Session, notification_id: int) -> Notification | None:
    return db.get(Notification, notification_id)


def unread_count(db: Session, user_id: int) -> int:
    stmt = select(func.count(Notification.id)).where(Notification.user_id == user_id, Notification.is_read == 0)
    return int(db.execute(stmt).scalar_one())


def mark_read(db: Session, notification: Notification) -> Notification:
    notification.is_read = 1
    notification.updated_at = utc_now_iso()
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    rows = list_notifications(db, user_id, unread_only=True, limit=10_000)
    now = utc_now_iso()
    for row in rows:
        row.is_read = 1
        row.updated_at = now
    db.commit()
    return len(rows)


def delete_notification(db: Session, notification: Notification) -> None:
    db.delete(notification)
    db.commit()


def enqueue_push(db: Session, *, user_id: int, title: str, body: str, data: dict[str, Any] | None = None) -> PushNotificationQueue:
    row = PushNotificationQueue(
        user_id=user_id,
        title=title,
        body=body,
        data_blob=json.dumps(data) if data else None,
        status=PUSH_PENDING,
        attempts=0,
        created_at=utc_now_iso(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def pending_pushes(db: Session, *, limit: int = 100) -> list[PushNotificationQueue]:
    stmt = (
        select(PushNotificationQueue)
        .where(PushNotificationQueue.status == PUSH_PENDING)
        .order_by(PushNotificationQueue.created_at, PushNotificationQueue.id)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())
