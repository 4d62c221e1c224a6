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

from nest.crud.gears import create_gear, get_gear, update_gear
from nest.db.session import Base
from nest.models.gear import Gear
from nest.services.realtime import ChangeHub, LiveQuery, TableChange, subscribe


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


def test_committed_insert_is_published(db_session):
    seen = []
    unsubscribe = subscribe("gears", seen.append)
    try:
        gear = create_gear(db_session, {"name": "Camera"})
    finally:
        unsubscribe()

    assert seen == [TableChange("gears", "INSERT", gear.id)]


def test_live_query_refetches_once_per_change(db_session):
    calls = []

    def fetch():
        calls.append(1)
        return [len(calls)]

    with LiveQuery("gears", fetch) as live:
        assert live.rows == [1]
        gear = create_gear(db_session, {"name": "Camera"})
        assert len(calls) == 2
        update_gear(db_session, get_gear(db_session, gear.id), {"status": "Retired"})
        assert len(calls) == 3
        assert live.rows == [3]

    create_gear(db_session, {"name": "Tripod"})
    assert len(calls) == 3


def test_rollback_publishes_nothing(db_session):
    seen = []
    unsubscribe = subscribe("gears", seen.append)
    try:
        db_session.add(Gear(name="Ghost", quantity=1, available_quantity=1, status="Available", created_at="2024-01-01T00:00:00Z"))
        db_session.flush()
        db_session.rollback()
        create_gear(db_session, {"name": "Real"})
    finally:
        unsubscribe()

    assert [change.event for change in seen] == ["INSERT"]


def test_failing_subscriber_does_not_block_others():
    local = ChangeHub()
    received = []

    def broken(change):
        raise RuntimeError("boom")

    local.subscribe("checkins", broken)
    local.subscribe("checkins", received.append)
    local.publish(TableChange("checkins", "UPDATE", 7))

    assert received == [TableChange("checkins", "UPDATE", 7)]


def test_unsubscribe_stops_delivery():
    local = ChangeHub()
    received = []
    unsubscribe = local.subscribe("gears", received.append)
    assert local.subscriber_count("gears") == 1

    unsubscribe()
    unsubscribe()
    local.publish(TableChange("gears", "DELETE", 1))

    assert received == []
    assert local.subscriber_count("gears") == 0
