from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.rate_limit import limiter
from ..core.security import REFRESH, decode_token, issue_token_pair, verify_password
from ..crud.profiles import create_profile, get_profile, get_profile_by_email, set_password
from ..db.session import get_db
from ..deps.auth import require_user
from ..models.profile import Profile
from ..schemas.auth import LoginRequest, PasswordChangeRequest, RefreshRequest, SignupRequest, TokenResponse
from ..schemas.profile import ProfileOut
from ..services import email

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/login", response_model=TokenResponse, summary="Exchange email and password for JWTs")
@limiter.limit(settings.RATE_LIMIT)
def login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    profile = get_profile_by_email(db, payload.email)
    if profile is None or not verify_password(payload.password, profile.password_hash):
        logger.info("auth.login_failed", extra={"extra_data": {"email": payload.email.strip().lower()}})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not profile.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended")
    pair = issue_token_pair(subject=str(profile.id), role=profile.role)
    return TokenResponse(**pair.model_dump())


@router.post("/signup", response_model=TokenResponse, status_code=201, summary="Register a new user account")
@limiter.limit(settings.RATE_LIMIT)
def signup(request: Request, payload: SignupRequest, background: BackgroundTasks, db: Session = Depends(get_db)):
    try:
        profile = create_profile(
            db,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            department=payload.department,
            phone=payload.phone,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    logger.info("auth.signup", extra={"extra_data": {"user_id": profile.id}})
    background.add_task(email.send_welcome, profile.email, user_name=profile.display_name)
    pair = issue_token_pair(subject=str(profile.id), role=profile.role)
    return TokenResponse(**pair.model_dump())


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token, verify_type=REFRESH)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    # Role and status come from the stored profile, not the old token.
    profile = get_profile(db, int(claims.sub)) if claims.sub.isdigit() else None
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    if not profile.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended")
    pair = issue_token_pair(subject=str(profile.id), role=profile.role)
    return TokenResponse(**pair.model_dump())


@router.get("/me", response_model=ProfileOut)
async def me(profile: Profile = Depends(require_user)):
    return profile


@router.post("/password", status_code=204, summary="Change the signed-in user's password")
@limiter.limit(settings.RATE_LIMIT)
def change_password(
    request: Request,
    payload: PasswordChangeRequest,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_user),
):
    if not verify_password(payload.current_password, profile.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    set_password(db, profile, payload.new_password)
    logger.info("auth.password_changed", extra={"extra_data": {"user_id": profile.id}})
