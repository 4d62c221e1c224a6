from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import require_admin
from ..services import dashboard, quantity_repair, reports

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard")
def api_dashboard(db: Session = Depends(get_db)):
    return dashboard.load_dashboard(db)


@router.post("/fix-gear-quantities")
def api_fix_gear_quantities(db: Session = Depends(get_db)):
    return quantity_repair.fix_quantities(db)


@router.get("/fix-gear-quantities")
def api_validate_gear_quantities(db: Session = Depends(get_db)):
    return quantity_repair.validate_quantities(db)


@router.post("/fix-gear-status")
def api_fix_gear_status(db: Session = Depends(get_db)):
    return quantity_repair.fix_statuses(db)


@router.get("/system-overview")
def api_system_overview(db: Session = Depends(get_db)):
    return {"tables": quantity_repair.system_overview(db)}


def _report_range(start: date | None, end: date | None):
    if start is None and end is None:
        return reports.default_week()
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="Provide both start and end, or neither")
    return start, end


@router.get("/reports/weekly")
def api_weekly_report(start: date | None = None, end: date | None = None, db: Session = Depends(get_db)):
    since, until = _report_range(start, end)
    try:
        return reports.weekly_report(db, since, until)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/reports/weekly.pdf")
def api_weekly_report_pdf(start: date | None = None, end: date | None = None, db: Session = Depends(get_db)) -> Response:
    since, until = _report_range(start, end)
    try:
        report = reports.weekly_report(db, since, until)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    filename = f"weekly-report-{report['start'][:10]}.pdf"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=reports.render_pdf(report), media_type="application/pdf", headers=headers)
