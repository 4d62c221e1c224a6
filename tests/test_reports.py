import os
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest.crud.gears import create_gear, get_gear
from nest.crud.profiles import create_profile
from nest.db.session import Base
from nest.services import checkins, quantity_repair, reports, request_intake, request_workflow
from nest.services.timecalc import utc_now


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


@pytest.fixture()
def busy_week(db_session):
    admin = create_profile(db_session, email="admin@example.com", role="Admin")
    user = create_profile(db_session, email="user@example.com")
    camera = create_gear(db_session, {"name": "Camera", "quantity": 3})
    tripod = create_gear(db_session, {"name": "Tripod", "quantity": 1})
    first = request_intake.create_request(db_session, user_id=user.id, lines=[(camera.id, 2), (tripod.id, 1)])
    request_intake.create_request(db_session, user_id=user.id, lines=[(camera.id, 1)])
    request_workflow.approve_request(db_session, first.id, admin_id=admin.id)
    checkin = checkins.submit_checkin(db_session, user_id=user.id, gear_id=tripod.id, condition="Damaged")
    checkins.approve_checkins(db_session, [checkin.id], admin_id=admin.id)
    return {"admin": admin, "user": user, "camera": camera, "tripod": tripod}


def test_weekly_report_counts(db_session, busy_week):
    start, end = reports.default_week()

    report = reports.weekly_report(db_session, start, end)

    assert report["requests"]["total"] == 2
    assert report["requests"]["by_status"] == {"Approved": 1, "Pending": 1}
    assert report["checkins"] == {"total": 1, "damaged": 1}
    top = report["most_requested"][0]
    assert top["gear_name"] == "Camera"
    assert top["requested_units"] == 3
    assert top["request_count"] == 2
    tripod = next(row for row in report["gear"] if row["gear_name"] == "Tripod")
    assert tripod["checkout_count"] == 1
    assert tripod["damage_count"] == 1
    assert report["activity_counts"]["Checkout"] == 2


def test_weekly_report_outside_range_is_empty(db_session, busy_week):
    today = utc_now().date()
    report = reports.weekly_report(db_session, today - timedelta(days=30), today - timedelta(days=23))
    assert report["requests"]["total"] == 0
    assert report["most_requested"] == []


def test_report_range_must_be_ordered(db_session):
    with pytest.raises(ValueError):
        reports.weekly_report(db_session, date(2024, 1, 8), date(2024, 1, 1))


def test_default_week_is_seven_days():
    start, end = reports.default_week(date(2024, 5, 10))
    assert (end - start).days == 7
    assert end.date() == date(2024, 5, 11)


def test_pdf_renders(db_session, busy_week):
    report = reports.weekly_report(db_session, *reports.default_week())
    report["gear"][0]["gear_name"] = "Kamera – été"
    pdf = reports.render_pdf(report)
    assert pdf.startswith(b"%PDF")


def test_quantity_repair_detects_and_fixes_drift(db_session, busy_week):
    camera = get_gear(db_session, busy_week["camera"].id)
    assert camera.available_quantity == 1
    assert quantity_repair.validate_quantities(db_session)["invalid"] == 0

    camera.available_quantity = 3
    db_session.commit()
    report = quantity_repair.validate_quantities(db_session)
    assert report["invalid"] == 1
    assert report["issues"][0]["expected"] == 1

    assert quantity_repair.fix_quantities(db_session) == {"success": True, "fixed": 1, "errors": []}
    assert get_gear(db_session, camera.id).available_quantity == 1


def test_fix_statuses_skips_out_of_service(db_session, busy_week):
    camera = get_gear(db_session, busy_week["camera"].id)
    camera.status = "Available"
    db_session.commit()

    result = quantity_repair.fix_statuses(db_session)

    assert result["fixed"] == 1
    assert result["changes"][0]["to"] == "Partially Available"
    assert get_gear(db_session, busy_week["tripod"].id).status == "Needs Repair"


def test_system_overview_counts_rows(db_session, busy_week):
    overview = quantity_repair.system_overview(db_session)
    assert overview["gears"] == 2
    assert overview["profiles"] == 2
    assert overview["gear_requests"] == 2
    assert overview["checkins"] == 1
