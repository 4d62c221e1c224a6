"""Weekly activity report and its PDF rendering."""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud import activity as crud_activity
from ..models import activity
from ..models.activity import ActivityLog
from ..models.checkin import CONDITION_DAMAGED, Checkin
from ..models.gear import Gear
from ..models.request import GearRequest, GearRequestGear
from .timecalc import to_iso, utc_now, utc_now_iso


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def default_week(today: date | None = None) -> tuple[datetime, datetime]:
    """The seven days ending today (inclusive), as a half-open range."""

    end_day = (today or utc_now().date()) + timedelta(days=1)
    end = _as_datetime(end_day)
    return end - timedelta(days=7), end


def weekly_report(db: Session, start: date | datetime, end: date | datetime, *, top_n: int = 5) -> dict[str, Any]:
    """Request, checkout and check-in figures for ``[start, end)``."""

    since, until = to_iso(_as_datetime(start)), to_iso(_as_datetime(end))
    if since >= until:
        raise ValueError("start must be before end")

    requests = (
        db.execute(select(GearRequest).where(GearRequest.created_at >= since, GearRequest.created_at < until))
        .unique()
        .scalars()
        .all()
    )
    by_status = Counter(request.status for request in requests)

    per_gear: dict[int, dict[str, int]] = defaultdict(
        lambda: {"request_count": 0, "requested_units": 0, "checkout_count": 0, "checkin_count": 0, "damage_count": 0}
    )
    request_ids = [request.id for request in requests]
    if request_ids:
        lines = db.execute(select(GearRequestGear).where(GearRequestGear.gear_request_id.in_(request_ids))).scalars().all()
        for line in lines:
            per_gear[line.gear_id]["request_count"] += 1
            per_gear[line.gear_id]["requested_units"] += int(line.quantity or 0)

    checkins = (
        db.execute(select(Checkin).where(Checkin.checkin_date >= since, Checkin.checkin_date < until))
        .unique()
        .scalars()
        .all()
    )
    for checkin in checkins:
        per_gear[checkin.gear_id]["checkin_count"] += 1
        if checkin.condition == CONDITION_DAMAGED:
            per_gear[checkin.gear_id]["damage_count"] += 1

    checkouts = db.execute(
        select(ActivityLog.gear_id).where(
            ActivityLog.activity_type == activity.CHECKOUT,
            ActivityLog.created_at >= since,
            ActivityLog.created_at < until,
            ActivityLog.gear_id.is_not(None),
        )
    ).scalars()
    for gear_id in checkouts:
        per_gear[gear_id]["checkout_count"] += 1

    names = {}
    if per_gear:
        names = dict(db.execute(select(Gear.id, Gear.name).where(Gear.id.in_(list(per_gear)))).all())
    gear_rows = [
        {"gear_id": gear_id, "gear_name": names.get(gear_id) or "Unknown Gear", **counts}
        for gear_id, counts in per_gear.items()
    ]
    gear_rows.sort(key=lambda row: (-row["requested_units"], -row["request_count"], row["gear_name"]))

    return {
        "start": since,
        "end": until,
        "generated_at": utc_now_iso(),
        "requests": {"total": len(requests), "by_status": dict(sorted(by_status.items()))},
        "checkins": {
            "total": len(checkins),
            "damaged": sum(1 for checkin in checkins if checkin.condition == CONDITION_DAMAGED),
        },
        "most_requested": [row for row in gear_rows if row["request_count"]][:top_n],
        "gear": gear_rows,
        "activity_counts": crud_activity.count_by_type(db, since=since, until=until),
    }


def _latin1(text: Any) -> str:
    return str(text).encode("latin-1", "replace").decode("latin-1")


class _ReportPDF(FPDF):
    def header(self) -> None:
        self.set_font("Helvetica", "B", 14)
        self.cell(0, 10, _latin1(f"{settings.APP_NAME} - Weekly Activity Report"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(2)

    def footer(self) -> None:
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.cell(0, 10, f"Page {self.page_no()}", align="C")


def _section(pdf: FPDF, title: str) -> None:
    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, _latin1(title), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font("Helvetica", "", 10)


def _pairs(pdf: FPDF, pairs: list[tuple[str, Any]]) -> None:
    for label, value in pairs:
        pdf.cell(70, 6, _latin1(label))
        pdf.cell(0, 6, _latin1(value), new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def render_pdf(report: dict[str, Any]) -> bytes:
    pdf = _ReportPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(0, 6, _latin1(f"Period: {report['start']} to {report['end']}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.cell(0, 6, _latin1(f"Generated: {report['generated_at']}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    _section(pdf, "Requests")
    _pairs(pdf, [("Total", report["requests"]["total"])] + list(report["requests"]["by_status"].items()))

    _section(pdf, "Check-ins")
    _pairs(pdf, [("Total", report["checkins"]["total"]), ("Damaged", report["checkins"]["damaged"])])

    _section(pdf, "Most requested gear")
    if report["most_requested"]:
        for row in report["most_requested"]:
            pdf.cell(0, 6, _latin1(f"{row['gear_name']}: {row['requested_units']} unit(s) in {row['request_count']} request(s)"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    else:
        pdf.cell(0, 6, "No requests in this period", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    _section(pdf, "Gear activity")
    pdf.set_font("Helvetica", "B", 9)
    widths = (80, 25, 25, 25, 25)
    for width, title in zip(widths, ("Gear", "Requests", "Checkouts", "Check-ins", "Damaged")):
        pdf.cell(width, 7, title, border=1)
    pdf.ln()
    pdf.set_font("Helvetica", "", 9)
    for row in report["gear"]:
        values = (row["gear_name"], row["request_count"], row["checkout_count"], row["checkin_count"], row["damage_count"])
        for width, value in zip(widths, values):
            pdf.cell(width, 6, _latin1(value)[:45], border=1)
        pdf.ln()

    _section(pdf, "Activity by type")
    _pairs(pdf, list(report["activity_counts"].items()) or [("Activities", 0)])
    return bytes(pdf.output())
