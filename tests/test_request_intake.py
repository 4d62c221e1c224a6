import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest.core.errors import InsufficientStockError, NotFoundError
from nest.crud import requests as crud_requests
from nest.crud.gears import create_gear
from nest.crud.profiles import create_profile
from nest.db.session import Base
from nest.models.request import PENDING, GearRequest, GearRequestGear
from nest.services import request_intake
from nest.services.timecalc import parse_iso, utc_now


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


def _count(db, model) -> int:
    return db.execute(select(func.count(model.id))).scalar_one()


def test_aggregate_lines_sums_duplicates_in_first_seen_order():
    assert request_intake.aggregate_lines([(3, 1), (1, 2), (3, 2), (1, 1)]) == [(3, 3), (1, 3)]


def test_create_request_aggregates_duplicate_gear_lines(db_session):
    user = create_profile(db_session, email="user@example.com")
    camera = create_gear(db_session, {"name": "Camera", "quantity": 5})

    request = request_intake.create_request(
        db_session,
        user_id=user.id,
        lines=[(camera.id, 1), (camera.id, 2)],
        reason="Shoot",
        expected_duration="48hours",
    )

    lines = crud_requests.request_lines(db_session, request.id)
    assert [(line.gear_id, line.quantity) for line in lines] == [(camera.id, 3)]
    assert request.status == PENDING
    due = parse_iso(request.due_date)
    assert due is not None
    assert 47 * 3600 < (due - utc_now()).total_seconds() <= 48 * 3600
    history = crud_requests.status_history(db_session, request.id)
    assert [entry.status for entry in history] == [PENDING]


def test_over_availability_rejects_request_without_creating_rows(db_session):
    user = create_profile(db_session, email="user@example.com")
    tripod = create_gear(db_session, {"name": "Tripod", "quantity": 2})

    with pytest.raises(InsufficientStockError) as excinfo:
        request_intake.create_request(db_session, user_id=user.id, lines=[(tripod.id, 2), (tripod.id, 1)])

    assert excinfo.value.requested == 3
    assert excinfo.value.available == 2
    assert _count(db_session, GearRequest) == 0
    assert _count(db_session, GearRequestGear) == 0


def test_unknown_gear_is_not_found(db_session):
    user = create_profile(db_session, email="user@example.com")

    with pytest.raises(NotFoundError):
        request_intake.create_request(db_session, user_id=user.id, lines=[(999, 1)])
    assert _count(db_session, GearRequest) == 0


def test_line_insert_failure_removes_request_row(db_session, monkeypatch):
    user = create_profile(db_session, email="user@example.com")
    light = create_gear(db_session, {"name": "Light", "quantity": 3})

    def boom(db, request_id, lines):
        raise RuntimeError("line insert failed")

    monkeypatch.setattr(crud_requests, "insert_request_lines", boom)

    with pytest.raises(RuntimeError, match="line insert failed"):
        request_intake.create_request(db_session, user_id=user.id, lines=[(light.id, 1)])

    assert _count(db_session, GearRequest) == 0


def test_failed_cleanup_still_raises_original_error(db_session, monkeypatch):
    user = create_profile(db_session, email="user@example.com")
    light = create_gear(db_session, {"name": "Light", "quantity": 3})

    def boom(db, request_id, lines):
        raise RuntimeError("line insert failed")

    def cleanup_fails(db, request):
        raise RuntimeError("delete failed")

    monkeypatch.setattr(crud_requests, "insert_request_lines", boom)
    monkeypatch.setattr(crud_requests, "delete_request", cleanup_fails)

    with pytest.raises(RuntimeError, match="line insert failed"):
        request_intake.create_request(db_session, user_id=user.id, lines=[(light.id, 1)])

    assert _count(db_session, GearRequest) == 1


def test_team_members_and_default_duration(db_session):
    user = create_profile(db_session, email="user@example.com")
    mic = create_gear(db_session, {"name": "Mic", "quantity": 1})

    request = request_intake.create_request(
        db_session,
        user_id=user.id,
        lines=[(mic.id, 1)],
        team_members=["Ada", " ", "Grace "],
    )

    assert request.team_members == "Ada, Grace"
    assert request.expected_duration == "1 week"
