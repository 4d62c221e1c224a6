"""Admin user management.

Guards run against the profile list the caller already fetched, before any
write is attempted, so a refused action never touches the database.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy.orm import Session

from ..core.errors import ActionDeniedError, NotFoundError
from ..crud import profiles as crud_profiles
from ..models.profile import ROLE_ADMIN, ROLE_USER, STATUS_ACTIVE, STATUS_INACTIVE, Profile

logger = logging.getLogger(__name__)

SUSPEND = "suspend"
ACTIVATE = "activate"
MAKE_ADMIN = "makeAdmin"
MAKE_USER = "makeUser"
DELETE = "delete"

_CHANGES = {
    SUSPEND: {"status": STATUS_INACTIVE},
    ACTIVATE: {"status": STATUS_ACTIVE},
    MAKE_ADMIN: {"role": ROLE_ADMIN},
    MAKE_USER: {"role": ROLE_USER},
}
_SELF_BLOCKED = {DELETE: "delete", SUSPEND: "suspend", MAKE_USER: "demote"}


def filter_profiles(profiles: Iterable[Profile], query: str | None) -> list[Profile]:
    """Case-insensitive substring match on name, email and department."""

    needle = (query or "").strip().lower()
    if not needle:
        return list(profiles)
    return [
        profile
        for profile in profiles
        if any(needle in (value or "").lower() for value in (profile.full_name, profile.email, profile.department))
    ]


def guard_action(profiles: Sequence[Profile], *, actor_id: int, target_id: int, action: str) -> Profile:
    """Return the target profile or raise ``ActionDeniedError``."""

    if action not in _CHANGES and action != DELETE:
        raise ActionDeniedError(f"Unknown action: {action}")
    target = next((profile for profile in profiles if profile.id == target_id), None)
    if target is None:
        raise NotFoundError(f"User {target_id} not found")

    if target_id == actor_id and action in _SELF_BLOCKED:
        raise ActionDeniedError(f"You cannot {_SELF_BLOCKED[action]} your own account")

    if action in (DELETE, MAKE_USER) and target.role == ROLE_ADMIN:
        admins = [profile for profile in profiles if profile.role == ROLE_ADMIN]
        if len(admins) <= 1:
            verb = "delete" if action == DELETE else "demote"
            raise ActionDeniedError(f"Cannot {verb} the last admin")
    return target


def apply_action(db: Session, profiles: Sequence[Profile], *, actor_id: int, target_id: int, action: str) -> Profile:
    target = guard_action(profiles, actor_id=actor_id, target_id=target_id, action=action)
    if action == DELETE:
        raise ActionDeniedError("Use delete_user to remove accounts")
    updated = crud_profiles.update_profile(db, target, _CHANGES[action])
    logger.info(
        "user.action",
        extra={"extra_data": {"actor_id": actor_id, "target_id": target_id, "action": action}},
    )
    return updated


def delete_user(db: Session, profiles: Sequence[Profile], *, actor_id: int, target_id: int) -> None:
    target = guard_action(profiles, actor_id=actor_id, target_id=target_id, action=DELETE)
    crud_profiles.delete_profile(db, target)
    logger.info("user.deleted", extra={"extra_data": {"actor_id": actor_id, "target_id": target_id}})
