from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from ..crud import profiles as crud_profiles
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.profile import Profile
from ..schemas.profile import ProfileCreate, ProfileOut, ProfileSelfUpdate, UserActionRequest
from ..services import email, user_admin

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(require_user)])


@router.get("", response_model=list[ProfileOut], dependencies=[Depends(require_admin)])
def api_list_users(q: str | None = None, db: Session = Depends(get_db)):
    return user_admin.filter_profiles(crud_profiles.list_profiles(db), q)


@router.post("", response_model=ProfileOut, status_code=201)
def api_create_user(
    payload: ProfileCreate,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    try:
        profile = crud_profiles.create_profile(
            db,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            role=payload.role,
            department=payload.department,
            phone=payload.phone,
        )
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    background.add_task(email.send_welcome, profile.email, user_name=profile.display_name)
    return profile


@router.get("/profile", response_model=ProfileOut)
def api_get_own_profile(profile: Profile = Depends(require_user)):
    return profile


@router.put("/profile", response_model=ProfileOut)
def api_update_own_profile(
    payload: ProfileSelfUpdate,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    return crud_profiles.update_profile(db, profile, payload.model_dump(exclude_unset=True))


@router.post("/{user_id}/actions", response_model=ProfileOut)
def api_user_action(
    user_id: int,
    payload: UserActionRequest,
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    profiles = crud_profiles.list_profiles(db)
    return user_admin.apply_action(db, profiles, actor_id=admin.id, target_id=user_id, action=payload.action)


@router.delete("/{user_id}")
def api_delete_user(user_id: int, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    profiles = crud_profiles.list_profiles(db)
    user_admin.delete_user(db, profiles, actor_id=admin.id, target_id=user_id)
    return {"status": "deleted"}
