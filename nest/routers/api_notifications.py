from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud import notifications as crud_notifications
from ..crud import profiles as crud_profiles
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.profile import Profile
from ..schemas.notification import BroadcastCreate, NotificationOut, PushEnqueue, PushWorkerResult
from ..services import push_queue

router = APIRouter(prefix="/api/notifications", tags=["notifications"], dependencies=[Depends(require_user)])
push_router = APIRouter(prefix="/api/push", tags=["push"])
logger = logging.getLogger(__name__)


def _owned_or_404(db: Session, notification_id: int, profile: Profile):
    notification = crud_notifications.get_notification(db, notification_id)
    if not notification or notification.user_id != profile.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


@router.get("", response_model=list[NotificationOut])
def api_list_notifications(
    unread: bool = False,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    return crud_notifications.list_notifications(db, profile.id, unread_only=unread, limit=limit, offset=offset)


@router.get("/unread-count")
def api_unread_count(db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    return {"count": crud_notifications.unread_count(db, profile.id)}


@router.post("/read-all")
def api_mark_all_read(db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    return {"updated": crud_notifications.mark_all_read(db, profile.id)}


@router.post("/broadcast", response_model=list[NotificationOut], status_code=201)
def api_broadcast(payload: BroadcastCreate, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    user_ids = payload.user_ids
    if not user_ids:
        user_ids = [profile.id for profile in crud_profiles.list_profiles(db) if profile.is_active]
    rows = crud_notifications.notify_many(
        db,
        user_ids,
        title=payload.title,
        message=payload.message,
        type=payload.type,
        link=payload.link,
        meta={"sent_by": admin.id},
    )
    logger.info("notification.broadcast", extra={"extra_data": {"recipients": len(rows), "admin_id": admin.id}})
    return rows


@router.post("/{notification_id}/read", response_model=NotificationOut)
def api_mark_read(notification_id: int, db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    return crud_notifications.mark_read(db, _owned_or_404(db, notification_id, profile))


@router.delete("/{notification_id}")
def api_delete_notification(notification_id: int, db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    crud_notifications.delete_notification(db, _owned_or_404(db, notification_id, profile))
    return {"status": "deleted"}


@push_router.post("/enqueue", status_code=201, dependencies=[Depends(require_admin)])
def api_enqueue_push(payload: PushEnqueue, db: Session = Depends(get_db)):
    row = push_queue.enqueue(db, user_id=payload.user_id, title=payload.title, body=payload.body, data=payload.data)
    return {"id": row.id, "status": row.status}


def require_cron_secret(authorization: str | None = Header(default=None, alias="Authorization")) -> None:
    secret = settings.CRON_SECRET
    if not secret:
        logger.warning("push.worker_unprotected")
        return
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials or not hmac.compare_digest(credentials, secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


@push_router.get("/worker", response_model=PushWorkerResult, dependencies=[Depends(require_cron_secret)])
def api_push_worker(db: Session = Depends(get_db)):
    return push_queue.process_pending(db)
