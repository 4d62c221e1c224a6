import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest.core.errors import ActionDeniedError, NotFoundError
from nest.crud.profiles import create_profile, get_profile, list_profiles
from nest.db.session import Base
from nest.models.profile import Profile
from nest.services import user_admin


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class ExplodingSession:
    """Fails on any use, proving a guard refused before touching storage."""

    def __getattr__(self, name):
        raise AssertionError(f"database touched: {name}")


def _profiles():
    return [
        Profile(id=1, email="ada@example.com", full_name="Ada Admin", role="Admin", status="Active"),
        Profile(id=2, email="bob@example.com", full_name="Bob", role="User", status="Active", department="Film"),
        Profile(id=3, email="cy@example.com", full_name=None, role="User", status="Inactive"),
    ]


def test_last_admin_cannot_be_deleted_without_a_write():
    with pytest.raises(ActionDeniedError, match="last admin"):
        user_admin.delete_user(ExplodingSession(), _profiles(), actor_id=2, target_id=1)


def test_last_admin_cannot_be_demoted():
    with pytest.raises(ActionDeniedError, match="last admin"):
        user_admin.apply_action(ExplodingSession(), _profiles(), actor_id=2, target_id=1, action="makeUser")


@pytest.mark.parametrize("action", ["delete", "suspend", "makeUser"])
def test_self_actions_are_blocked(action):
    with pytest.raises(ActionDeniedError, match="your own account"):
        user_admin.guard_action(_profiles(), actor_id=1, target_id=1, action=action)


def test_unknown_target_and_action():
    with pytest.raises(NotFoundError):
        user_admin.guard_action(_profiles(), actor_id=1, target_id=99, action="suspend")
    with pytest.raises(ActionDeniedError):
        user_admin.guard_action(_profiles(), actor_id=1, target_id=2, action="promote")


def test_filter_matches_name_email_and_department():
    profiles = _profiles()
    assert [p.id for p in user_admin.filter_profiles(profiles, "film")] == [2]
    assert [p.id for p in user_admin.filter_profiles(profiles, "CY@")] == [3]
    assert len(user_admin.filter_profiles(profiles, "  ")) == 3


def test_actions_update_the_target(db_session):
    admin = create_profile(db_session, email="admin@example.com", role="Admin")
    user = create_profile(db_session, email="user@example.com")

    user_admin.apply_action(db_session, list_profiles(db_session), actor_id=admin.id, target_id=user.id, action="makeAdmin")
    assert get_profile(db_session, user.id).role == "Admin"

    # With two admins the first may now be demoted by the second.
    user_admin.apply_action(db_session, list_profiles(db_session), actor_id=user.id, target_id=admin.id, action="makeUser")
    assert get_profile(db_session, admin.id).role == "User"

    user_admin.apply_action(db_session, list_profiles(db_session), actor_id=user.id, target_id=admin.id, action="suspend")
    assert get_profile(db_session, admin.id).status == "Inactive"

    user_admin.delete_user(db_session, list_profiles(db_session), actor_id=user.id, target_id=admin.id)
    assert get_profile(db_session, admin.id) is None


def test_seed_admin_creates_then_promotes(db_session):
    from nest.core.security import verify_password
    from nest.seed import seed_admin

    created = seed_admin(db_session, email="Boss@Example.com", password="first", full_name="Boss")
    assert created.role == "Admin"

    existing = create_profile(db_session, email="later@example.com", status="Inactive")
    promoted = seed_admin(db_session, email="later@example.com", password="second")
    assert promoted.id == existing.id
    assert promoted.role == "Admin"
    assert promoted.status == "Active"
    assert verify_password("second", promoted.password_hash)
