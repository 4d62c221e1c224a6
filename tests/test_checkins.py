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

from nest.core.errors import ConflictError, PermissionDeniedError
from nest.crud import requests as crud_requests
from nest.crud.gears import create_gear, get_gear
from nest.crud.maintenance import record_maintenance
from nest.crud.profiles import create_profile
from nest.db.session import Base
from nest.services import checkins, quantity_repair, request_intake, request_workflow


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


def _checked_out(db, quantity=2, requested=2):
    admin = create_profile(db, email="admin@example.com", role="Admin")
    user = create_profile(db, email="user@example.com")
    gear = create_gear(db, {"name": "Camera", "quantity": quantity})
    request = request_intake.create_request(db, user_id=user.id, lines=[(gear.id, requested)])
    request_workflow.approve_request(db, request.id, admin_id=admin.id)
    return admin, user, gear, request


def test_submit_parks_gear_in_pending_checkin(db_session):
    _, user, gear, request = _checked_out(db_session)

    checkin = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, quantity=1)

    assert checkin.request_id == request.id
    assert checkin.status == "Pending Admin Approval"
    assert get_gear(db_session, gear.id).status == "Pending Check-in"
    assert get_gear(db_session, gear.id).available_quantity == 0


def test_cannot_return_more_than_outstanding(db_session):
    _, user, gear, _ = _checked_out(db_session)
    checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, quantity=1)

    with pytest.raises(ConflictError):
        checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, quantity=2)


def test_other_users_cannot_check_in(db_session):
    _, _, gear, request = _checked_out(db_session)
    stranger = create_profile(db_session, email="stranger@example.com")

    with pytest.raises(PermissionDeniedError):
        checkins.submit_checkin(db_session, user_id=stranger.id, gear_id=gear.id)
    with pytest.raises(PermissionDeniedError):
        checkins.submit_checkin(db_session, user_id=stranger.id, gear_id=gear.id, request_id=request.id)


def test_approving_all_units_completes_request(db_session):
    admin, user, gear, request = _checked_out(db_session)
    first = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, quantity=1)
    second = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, quantity=1)

    checkins.approve_checkins(db_session, [first.id], admin_id=admin.id)
    assert crud_requests.get_request(db_session, request.id).status == "Approved"
    assert get_gear(db_session, gear.id).available_quantity == 1

    checkins.approve_checkins(db_session, [second.id], admin_id=admin.id)
    gear = get_gear(db_session, gear.id)
    assert gear.available_quantity == 2
    assert gear.status == "Available"
    assert gear.checked_out_to is None
    assert crud_requests.get_request(db_session, request.id).status == "Completed"

    with pytest.raises(ConflictError):
        checkins.approve_checkins(db_session, [first.id], admin_id=admin.id)


def test_damaged_return_needs_repair(db_session):
    admin, user, gear, _ = _checked_out(db_session, quantity=1, requested=1)
    checkin = checkins.submit_checkin(
        db_session, user_id=user.id, gear_id=gear.id, condition="Damaged", damage_notes="Cracked lens"
    )
    assert checkin.damage_notes == "Cracked lens"

    checkins.approve_checkins(db_session, [checkin.id], admin_id=admin.id)

    gear = get_gear(db_session, gear.id)
    assert gear.status == "Needs Repair"
    assert gear.condition == "Damaged"
    assert gear.available_quantity == 0
    assert gear.checked_out_to is None


def test_partial_damaged_return_keeps_shelf_until_maintenance(db_session):
    admin, user, gear, request = _checked_out(db_session, quantity=5, requested=2)
    assert get_gear(db_session, gear.id).available_quantity == 3

    damaged = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, condition="Damaged")
    checkins.approve_checkins(db_session, [damaged.id], admin_id=admin.id)
    gear = get_gear(db_session, gear.id)
    assert gear.status == "Needs Repair"
    assert gear.available_quantity == 3
    assert gear.checked_out_to == user.id

    good = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id)
    assert get_gear(db_session, gear.id).status == "Needs Repair"
    checkins.approve_checkins(db_session, [good.id], admin_id=admin.id)
    gear = get_gear(db_session, gear.id)
    assert gear.status == "Needs Repair"
    assert gear.available_quantity == 4
    assert gear.checked_out_to is None
    assert gear.current_request_id is None
    assert crud_requests.get_request(db_session, request.id).status == "Completed"
    assert quantity_repair.validate_quantities(db_session)["invalid"] == 0

    record_maintenance(db_session, gear, status="Available", description="Lens replaced")
    gear = get_gear(db_session, gear.id)
    assert gear.status == "Available"
    assert gear.available_quantity == 5


def test_maintenance_keeps_units_still_out(db_session):
    _, _, gear, _ = _checked_out(db_session, quantity=3, requested=1)

    record_maintenance(db_session, gear, status="Under Repair")
    assert get_gear(db_session, gear.id).available_quantity == 0

    record_maintenance(db_session, gear, status="Available")
    gear = get_gear(db_session, gear.id)
    assert gear.available_quantity == 2
    assert gear.status == "Partially Available"
    assert gear.checked_out_to is not None


def test_damage_notes_dropped_for_good_condition(db_session):
    _, user, gear, _ = _checked_out(db_session)
    checkin = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, damage_notes="ignored")
    assert checkin.damage_notes is None


def test_reject_records_reason_and_restores_status(db_session):
    admin, user, gear, _ = _checked_out(db_session)
    checkin = checkins.submit_checkin(db_session, user_id=user.id, gear_id=gear.id, quantity=1)

    rejected = checkins.reject_checkin(db_session, checkin.id, "Wrong item", admin_id=admin.id)

    assert rejected.status == "Rejected"
    assert rejected.notes == "Rejected: Wrong item"
    assert get_gear(db_session, gear.id).status == "Checked Out"
    assert checkins.list_pending(db_session) == []
