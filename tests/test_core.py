import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from nest.core.gear_status import normalize_gear_status, status_for_availability
from nest.core.qrcodes import extract_gear_id, gear_qr_payload
from nest.crud.gears import category_utilization, rate_percent
from nest.models.gear import Gear
from nest.services.dashboard import QueryPerformance, compute_dashboard_stats, system_health
from nest.services.timecalc import calculate_due_date, is_past, parse_iso, to_iso


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("checked-out", "Checked Out"),
        ("CheckedOut", "Checked Out"),
        ("pending_checkin", "Pending Check-in"),
        ("  under repair ", "Under Repair"),
        ("", "Available"),
        (None, "Available"),
        ("On loan to BBC", "On loan to BBC"),
    ],
)
def test_normalize_gear_status(raw, expected):
    assert normalize_gear_status(raw) == expected


def test_status_for_availability():
    assert status_for_availability(0, 3) == "Checked Out"
    assert status_for_availability(1, 3) == "Partially Available"
    assert status_for_availability(3, 3) == "Available"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("42", 42),
        (" gear:17 ", 17),
        ("NEST/8", 8),
        ("https://nest.example.com/gear/23", 23),
        ("https://nest.example.com/scan?gear_id=5", 5),
        ("not a gear", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_gear_id(raw, expected):
    assert extract_gear_id(raw) == expected


def test_printed_payload_scans_back():
    assert extract_gear_id(gear_qr_payload(99)) == 99


def test_due_date_uses_duration_and_falls_back_to_a_week():
    start = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert calculate_due_date("48hours", start) == "2024-03-03T12:00:00Z"
    assert calculate_due_date("2 weeks", start) == "2024-03-15T12:00:00Z"
    assert calculate_due_date("someday", start) == "2024-03-08T12:00:00Z"


def test_iso_helpers():
    assert to_iso(datetime(2024, 1, 1, 9, 30)) == "2024-01-01T09:30:00Z"
    assert parse_iso("2024-01-01T09:30:00Z") == datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)
    assert parse_iso("garbage") is None
    assert is_past("2000-01-01T00:00:00Z")
    assert not is_past(None)


def test_system_health_thresholds():
    fast = QueryPerformance(total_queries=5, average_query_ms=40)
    assert system_health({}, fast) == "excellent"
    assert system_health({}, QueryPerformance(total_queries=5, average_query_ms=2500)) == "good"
    assert system_health({"gears": "boom"}, fast) == "warning"
    assert system_health({}, QueryPerformance(total_queries=5, failed_queries=1)) == "warning"
    assert system_health({"a": "x", "b": "y", "c": "z"}, fast) == "critical"


def test_dashboard_stats_from_plain_rows():
    gears = [
        {"status": "Checked Out", "quantity": 2, "available_quantity": 0},
        {"status": "Available", "quantity": 1, "available_quantity": 1},
        {"status": "Under Repair", "quantity": 1, "available_quantity": 0},
        {"status": "Retired", "quantity": None, "available_quantity": 0},
    ]
    users = [
        {"role": "Admin", "status": "Active"},
        {"role": "User", "status": "Active"},
        {"role": "User", "status": "Inactive"},
        {"role": "User", "status": "Active"},
    ]
    requests = [{"status": s} for s in ("Pending", "Approved", "Approved", "Rejected", "Overdue")]
    notifications = [{"is_read": 0}, {"is_read": 1}, {"is_read": 0}]

    stats = compute_dashboard_stats(gears, users, requests, notifications, [{}, {}])

    assert stats["equipment"] == {
        "total": 5,
        "available": 1,
        "checked_out": 1,
        "under_repair": 1,
        "retired": 1,
        "utilization_rate": 20,
    }
    assert stats["requests"]["approval_rate"] == 40
    assert stats["requests"]["overdue"] == 1
    assert stats["users"] == {"total": 4, "active": 3, "admins": 1, "regular": 3, "engagement_rate": 75}
    assert stats["system"]["unread_notifications"] == 2
    assert stats["system"]["total_activities"] == 2
    assert stats["system"]["health"] == "excellent"


def test_empty_dashboard_has_zero_rates():
    stats = compute_dashboard_stats([], [], [], [], [])
    assert stats["equipment"]["utilization_rate"] == 0
    assert stats["requests"]["approval_rate"] == 0
    assert stats["users"]["engagement_rate"] == 0


def test_rates_round_halves_up():
    gears = [{"status": "Checked Out"}] + [{"status": "Available", "available_quantity": 1}] * 7
    requests = [{"status": "Approved"}] + [{"status": "Pending"}] * 7

    stats = compute_dashboard_stats(gears, [], requests, [], [])

    assert stats["equipment"]["utilization_rate"] == 13
    assert stats["requests"]["approval_rate"] == 13
    assert rate_percent(1, 40) == 3
    assert rate_percent(5, 200) == 3


def test_category_utilization_rounds_halves_up():
    gears = [Gear(name="Light", category="Lighting", quantity=8, available_quantity=7, status="Partially Available")]

    [row] = category_utilization(gears)

    assert row["checked_out_units"] == 1
    assert row["utilization_rate"] == 13
