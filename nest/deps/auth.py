from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.security import ACCESS, decode_token
from ..db.session import get_db
from ..middlewares import principal_ctx_var
from ..models.profile import Profile


def _unauthorized(detail: str = "Unauthorized") -> None:
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def profile_from_token(db: Session, token: str) -> Profile:
    """Resolve a bearer access token to an active profile or raise 401/403."""

    try:
        payload = decode_token(token, verify_type=ACCESS)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    try:
        profile_id = int(payload.sub)
    except ValueError:
        _unauthorized("Invalid token subject")
    profile = db.get(Profile, profile_id)
    if profile is None:
        _unauthorized("Unknown user")
    if not profile.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended")
    return profile


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> Profile:
    scheme, credentials = get_authorization_scheme_param(authorization)
    if not authorization or scheme.lower() != "bearer" or not credentials:
        _unauthorized("Authorization required")
    profile = profile_from_token(db, credentials)
    _set_principal(request, f"user:{profile.id}")
    request.state.profile = profile
    return profile


async def require_admin(profile: Profile = Depends(require_user)) -> Profile:
    if not profile.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return profile
