from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..crud.activity import list_activities
from ..db.session import get_db
from ..deps.auth import require_user
from ..models.profile import Profile
from ..schemas.activity import ActivityOut

router = APIRouter(prefix="/api", tags=["activity"], dependencies=[Depends(require_user)])


@router.get("/activities", response_model=list[ActivityOut])
def api_activities(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user_id: int | None = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    if not profile.is_admin:
        user_id = profile.id
    return list_activities(db, limit=limit, offset=offset, user_id=user_id)


@router.get("/test-auth")
def api_test_auth(request: Request, profile: Profile = Depends(require_user)):
    return {
        "authenticated": True,
        "principal": getattr(request.state, "principal", None),
        "user": {"id": profile.id, "email": profile.email, "role": profile.role, "status": profile.status},
    }
