from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.errors import PermissionDeniedError
from ..crud import requests as crud_requests
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.profile import Profile
from ..schemas.request import (
    ApproveRequest,
    GearRequestCreate,
    GearRequestOut,
    GearRequestPage,
    GearRequestUpdate,
    OverdueSweepResult,
    RejectRequest,
    StatusHistoryOut,
)
from ..services import request_intake, request_workflow

router = APIRouter(prefix="/api/requests", tags=["requests"], dependencies=[Depends(require_user)])


@router.get("", response_model=GearRequestPage)
def api_list_requests(
    status: str | None = Query(default=None),
    user_id: int | None = Query(default=None, alias="userId"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=200, alias="pageSize"),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    rows, total = crud_requests.list_requests(db, status=status, user_id=user_id, page=page, page_size=page_size)
    return GearRequestPage(data=[GearRequestOut.model_validate(row) for row in rows], total=total)


@router.post("", response_model=GearRequestOut, status_code=201)
def api_create_request(
    payload: GearRequestCreate,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    user_id = payload.user_id if profile.is_admin and payload.user_id else profile.id
    try:
        request = request_intake.create_request(
            db,
            user_id=user_id,
            lines=[(line.gear_id, line.quantity) for line in payload.lines],
            reason=payload.reason,
            destination=payload.destination,
            expected_duration=payload.expected_duration,
            team_members=payload.team_members,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    background.add_task(request_intake.notify_request_created, request.id)
    return request


@router.get("/user", response_model=list[GearRequestOut])
def api_my_requests(
    status: str | None = None,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    rows, _ = crud_requests.list_requests(db, status=status, user_id=profile.id, page=1, page_size=500)
    return rows


@router.post("/approve", response_model=GearRequestOut)
def api_approve_request(
    payload: ApproveRequest,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    request = request_workflow.approve_request(db, payload.request_id, admin_id=admin.id)
    background.add_task(request_workflow.notify_request_decision, request.id)
    return request


@router.post("/mark-overdue", response_model=OverdueSweepResult)
def api_mark_overdue(
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    marked = request_workflow.mark_overdue(db, admin_id=admin.id)
    if marked:
        background.add_task(request_workflow.notify_overdue, marked)
    return OverdueSweepResult(marked=len(marked), request_ids=marked)


@router.get("/{request_id}", response_model=GearRequestOut)
def api_get_request(request_id: int, db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    request = crud_requests.get_request(db, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Request not found")
    if request.user_id != profile.id and not profile.is_admin:
        raise PermissionDeniedError("You can only view your own requests")
    return request


@router.get("/{request_id}/history", response_model=list[StatusHistoryOut])
def api_request_history(request_id: int, db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    request = api_get_request(request_id, db=db, profile=profile)
    return crud_requests.status_history(db, request.id)


@router.put("/{request_id}", response_model=GearRequestOut)
def api_update_request(
    request_id: int,
    payload: GearRequestUpdate,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    return request_workflow.update_request(db, request_id, payload.model_dump(exclude_unset=True), admin_id=admin.id)


@router.delete("/{request_id}", dependencies=[Depends(require_admin)])
def api_delete_request(request_id: int, db: Session = Depends(get_db)):
    request_workflow.delete_request(db, request_id)
    return {"status": "deleted"}


@router.post("/{request_id}/reject", response_model=GearRequestOut)
def api_reject_request(
    request_id: int,
    payload: RejectRequest,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    request = request_workflow.reject_request(db, request_id, payload.reason, admin_id=admin.id)
    background.add_task(request_workflow.notify_request_decision, request.id)
    return request


@router.post("/{request_id}/cancel", response_model=GearRequestOut)
def api_cancel_request(request_id: int, db: Session = Depends(get_db), profile: Profile = Depends(require_user)):
    return request_workflow.cancel_request(db, request_id, user_id=profile.id)
