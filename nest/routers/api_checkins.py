from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.profile import Profile
from ..schemas.checkin import CheckinCreate, CheckinGroupApprove, CheckinOut, CheckinReject
from ..services import checkins as checkin_service

router = APIRouter(prefix="/api/checkins", tags=["checkins"], dependencies=[Depends(require_user)])


@router.get("", response_model=list[CheckinOut])
def api_my_checkins(db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    return checkin_service.list_for_user(db, profile.id)


@router.post("", response_model=CheckinOut, status_code=201)
def api_submit_checkin(
    payload: CheckinCreate,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    checkin = checkin_service.submit_checkin(db, user_id=profile.id, **payload.model_dump())
    background.add_task(checkin_service.notify_checkin_submitted, checkin.id)
    return checkin


@router.get("/pending", response_model=list[CheckinOut], dependencies=[Depends(require_admin)])
def api_pending_checkins(db: Session = Depends(get_db)):
    return checkin_service.list_pending(db)


@router.post("/approve", response_model=list[CheckinOut])
def api_approve_checkins(
    payload: CheckinGroupApprove,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    approved = checkin_service.approve_checkins(db, payload.checkin_ids, admin_id=admin.id)
    background.add_task(checkin_service.notify_checkin_decision, [item.id for item in approved])
    return approved


@router.post("/{checkin_id}/approve", response_model=CheckinOut)
def api_approve_checkin(
    checkin_id: int,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    approved = checkin_service.approve_checkins(db, [checkin_id], admin_id=admin.id)
    background.add_task(checkin_service.notify_checkin_decision, [checkin_id])
    return approved[0]


@router.post("/{checkin_id}/reject", response_model=CheckinOut)
def api_reject_checkin(
    checkin_id: int,
    payload: CheckinReject,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    checkin = checkin_service.reject_checkin(db, checkin_id, payload.reason, admin_id=admin.id)
    background.add_task(checkin_service.notify_checkin_decision, [checkin.id])
    return checkin
