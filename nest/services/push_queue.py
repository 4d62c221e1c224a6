"""Queued push notifications.

Producers insert a ``pending`` row and poke the worker endpoint. The worker
drains pending rows in small batches, turning each into an in-app
notification for the target user.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import NestError
from ..crud import notifications as crud_notifications
from ..models.notification import PUSH_FAILED, PUSH_SENT, PushNotificationQueue
from .timecalc import utc_now_iso

logger = logging.getLogger(__name__)

WORKER_BATCH_SIZE = 10


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.PUSH_TRIGGER_TIMEOUT_SEC)


def trigger_worker(*, context: str = "push_queue") -> bool:
    """Ask the worker endpoint to drain the queue. Failures are only logged."""

    endpoint = settings.push_worker_endpoint
    if not endpoint:
        return False
    headers = {"Cache-Control": "no-store"}
    if settings.CRON_SECRET:
        headers["Authorization"] = f"Bearer {settings.CRON_SECRET}"
    try:
        with _http_client() as client:
            response = client.get(endpoint, headers=headers)
    except httpx.HTTPError as exc:
        logger.warning("push.trigger_failed", extra={"extra_data": {"context": context, "error": str(exc)}})
        return False
    if response.is_success:
        return True
    if response.status_code != 401:
        logger.warning(
            "push.trigger_failed",
            extra={"extra_data": {"context": context, "status": response.status_code}},
        )
    return False


def enqueue(
    db: Session,
    *,
    user_id: int | None,
    title: str | None,
    body: str | None,
    data: dict[str, Any] | None = None,
    trigger: bool = True,
    context: str = "push_queue",
) -> PushNotificationQueue:
    if not user_id or not (title or "").strip() or not (body or "").strip():
        raise NestError("Missing required push payload fields")
    row = crud_notifications.enqueue_push(db, user_id=user_id, title=title.strip(), body=body.strip(), data=data or {})
    if trigger:
        trigger_worker(context=context)
    return row


def enqueue_quietly(db: Session, **payload: Any) -> PushNotificationQueue | None:
    """``enqueue`` for background side effects: errors are logged, not raised."""

    try:
        return enqueue(db, **payload)
    except Exception:
        db.rollback()
        logger.warning("push.enqueue_failed", exc_info=True, extra={"extra_data": {"user_id": payload.get("user_id")}})
        return None


def _deliver(db: Session, row: PushNotificationQueue) -> None:
    data = row.data
    crud_notifications.create_notification(
        db,
        user_id=row.user_id,
        title=row.title,
        message=row.body,
        type=str(data.get("type") or "push"),
        link=data.get("link"),
        meta=data,
        commit=False,
    )


def process_pending(db: Session, *, limit: int = WORKER_BATCH_SIZE) -> dict[str, int]:
    rows = crud_notifications.pending_pushes(db, limit=limit)
    sent = failed = 0
    for row in rows:
        row.attempts = (row.attempts or 0) + 1
        try:
            with db.begin_nested():
                _deliver(db, row)
        except Exception as exc:
            row.status = PUSH_FAILED
            row.error = str(exc)
            failed += 1
            logger.warning("push.delivery_failed", extra={"extra_data": {"queue_id": row.id, "error": str(exc)}})
        else:
            row.status = PUSH_SENT
            row.error = None
            sent += 1
        row.processed_at = utc_now_iso()
    db.commit()
    if rows:
        logger.info("push.worker_run", extra={"extra_data": {"processed": len(rows), "sent": sent, "failed": failed}})
    return {"processed": len(rows), "sent": sent, "failed": failed}
