from __future__ import annotations

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.security import hash_password
from ..models.profile import ROLE_ADMIN, ROLE_USER, STATUS_ACTIVE, Profile
from ..services.timecalc import utc_now_iso


def list_profiles(db: Session) -> list[Profile]:
    """All profiles, most recently touched first."""

    stmt = select(Profile).order_by(
        desc(func.coalesce(Profile.updated_at, Profile.created_at)), desc(Profile.id)
    )
    return list(db.execute(stmt).scalars().all())


def get_profile(db: Session, profile_id: int) -> Profile | None:
    return db.get(Profile, profile_id)


def get_profile_by_email(db: Session, email: str) -> Profile | None:
    stmt = select(Profile).where(func.lower(Profile.email) == email.strip().lower())
    return db.execute(stmt).scalars().first()


def list_admins(db: Session, *, active_only: bool = True) -> list[Profile]:
    stmt = select(Profile).where(Profile.role == ROLE_ADMIN)
    if active_only:
        stmt = stmt.where(Profile.status == STATUS_ACTIVE)
    return list(db.execute(stmt.order_by(Profile.id)).scalars().all())


def create_profile(
    db: Session,
    *,
    email: str,
    password: str | None = None,
    full_name: str | None = None,
    role: str = ROLE_USER,
    status: str = STATUS_ACTIVE,
    department: str | None = None,
    phone: str | None = None,
) -> Profile:
    cleaned_email = (email or "").strip().lower()
    if not cleaned_email:
        raise ValueError("email is required")
    if get_profile_by_email(db, cleaned_email):
        raise ValueError(f"A profile for {cleaned_email} already exists")
    now = utc_now_iso()
    profile = Profile(
        email=cleaned_email,
        full_name=(full_name or "").strip() or None,
        role=role,
        status=status,
        department=(department or "").strip() or None,
        phone=(phone or "").strip() or None,
        password_hash=hash_password(password) if password else None,
        created_at=now,
        updated_at=now,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def update_profile(db: Session, profile: Profile, payload: dict) -> Profile:
    """Partial update of plain profile fields; unknown keys are ignored."""

    for key, value in payload.items():
        if key in ("id", "email", "password_hash", "created_at") or not hasattr(Profile, key):
            continue
        if isinstance(value, str):
            value = value.strip() or None
        setattr(profile, key, value)
    profile.updated_at = utc_now_iso()
    db.commit()
    db.refresh(profile)
    return profile


def set_password(db: Session, profile: Profile, password: str) -> Profile:
    profile.password_hash = hash_password(password)
    profile.updated_at = utc_now_iso()
    db.commit()
    db.refresh(profile)
    return profile


def delete_profile(db: Session, profile: Profile) -> None:
    db.delete(profile)
    db.commit()
