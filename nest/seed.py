"""Create or promote the first admin account.

    python -m nest.seed --email admin@example.com --password 'change-me-now'
"""

from __future__ import annotations

import argparse
import logging

from sqlalchemy.orm import Session

from .core.logging import setup_logging
from .core.security import hash_password
from .crud import profiles as crud_profiles
from .db.session import SessionLocal
from .models.profile import ROLE_ADMIN, STATUS_ACTIVE, Profile

logger = logging.getLogger(__name__)


def seed_admin(db: Session, *, email: str, password: str, full_name: str | None = None) -> Profile:
    """Insert an admin, or make an existing profile an active admin with this password."""

    profile = crud_profiles.get_profile_by_email(db, email)
    if profile is None:
        profile = crud_profiles.create_profile(
            db, email=email, password=password, full_name=full_name or "Admin User", role=ROLE_ADMIN
        )
        logger.info("seed.admin_created", extra={"extra_data": {"profile_id": profile.id}})
        return profile
    profile.password_hash = hash_password(password)
    crud_profiles.update_profile(db, profile, {"role": ROLE_ADMIN, "status": STATUS_ACTIVE})
    logger.info("seed.admin_updated", extra={"extra_data": {"profile_id": profile.id}})
    return profile


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Seed the first Nest admin account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default=None)
    args = parser.parse_args(argv)

    setup_logging()
    db = SessionLocal()
    try:
        seed_admin(db, email=args.email, password=args.password, full_name=args.name)
    finally:
        db.close()


if __name__ == "__main__":
    main()
