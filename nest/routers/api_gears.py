from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..core.qrcodes import extract_gear_id, gear_qr_payload
from ..crud import gears as crud_gears
from ..crud.maintenance import list_maintenance, record_maintenance
from ..db.session import get_db
from ..deps.auth import require_admin, require_user
from ..models.profile import Profile
from ..schemas.gear import (
    CategoryUtilization,
    CsvImportResult,
    GearBatchIds,
    GearBatchStatus,
    GearCreate,
    GearOut,
    GearUpdate,
    MaintenanceCreate,
    MaintenanceOut,
    PopularGearItem,
    ScanLookup,
)
from ..services.gear_csv import CsvImportError, export_gears, import_gears
from ..services.timecalc import utc_now

router = APIRouter(prefix="/api/gears", tags=["gears"], dependencies=[Depends(require_user)])


def _get_or_404(db: Session, gear_id: int):
    gear = crud_gears.get_gear(db, gear_id)
    if not gear:
        raise HTTPException(status_code=404, detail="Gear not found")
    return gear


@router.get("", response_model=list[GearOut])
def api_list_gears(
    category: str | None = None,
    status: str | None = None,
    search: str | None = Query(default=None, alias="q"),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return crud_gears.list_gears(db, limit=limit, offset=offset, category=category, status=status, search=search)


@router.post("", response_model=GearOut, status_code=201)
def api_create_gear(payload: GearCreate, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    try:
        return crud_gears.create_gear(db, payload.model_dump(), actor_id=admin.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/popular", response_model=list[PopularGearItem])
def api_popular_gears(limit: int = Query(default=5, ge=1, le=50), db: Session = Depends(get_db)):
    return crud_gears.popular_gears(db, limit=limit)


@router.get("/utilization", response_model=list[CategoryUtilization])
def api_category_utilization(db: Session = Depends(get_db)):
    return crud_gears.category_utilization(crud_gears.all_gears(db))


@router.post("/scan", response_model=GearOut)
def api_scan_lookup(payload: ScanLookup, db: Session = Depends(get_db)):
    gear_id = extract_gear_id(payload.code)
    if gear_id is None:
        raise HTTPException(status_code=400, detail="QR code does not contain a gear id")
    return _get_or_404(db, gear_id)


@router.get("/{gear_id}/qr", summary="Text to encode in a printed gear label")
def api_gear_qr(gear_id: int, db: Session = Depends(get_db)):
    gear = _get_or_404(db, gear_id)
    return {"gear_id": gear.id, "name": gear.name, "payload": gear_qr_payload(gear.id)}


@router.get("/export", dependencies=[Depends(require_admin)])
def api_export_csv(db: Session = Depends(get_db)) -> Response:
    content = export_gears(crud_gears.all_gears(db))
    filename = f"gears-{utc_now().strftime('%Y%m%d-%H%M')}.csv"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=content, media_type="text/csv", headers=headers)


@router.post("/import", response_model=CsvImportResult)
async def api_import_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    try:
        raw = await file.read()
    finally:
        await file.close()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded") from exc
    try:
        return import_gears(db, text, actor_id=admin.id)
    except (CsvImportError, ValueError) as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/batch/delete")
def api_delete_gears(payload: GearBatchIds, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    return {"status": "deleted", "count": crud_gears.delete_gears(db, payload.ids, actor_id=admin.id)}


@router.post("/batch/status", response_model=list[GearOut])
def api_update_status_batch(
    payload: GearBatchStatus, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)
):
    return crud_gears.update_status_batch(db, payload.ids, payload.status, actor_id=admin.id)


@router.get("/{gear_id}", response_model=GearOut)
def api_get_gear(gear_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, gear_id)


@router.patch("/{gear_id}", response_model=GearOut)
def api_update_gear(
    gear_id: int, payload: GearUpdate, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)
):
    gear = _get_or_404(db, gear_id)
    try:
        return crud_gears.update_gear(db, gear, payload.model_dump(exclude_unset=True), actor_id=admin.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.delete("/{gear_id}")
def api_delete_gear(gear_id: int, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)):
    crud_gears.delete_gear(db, _get_or_404(db, gear_id), actor_id=admin.id)
    return {"status": "deleted"}


@router.get("/{gear_id}/maintenance", response_model=list[MaintenanceOut])
def api_list_maintenance(gear_id: int, db: Session = Depends(get_db)):
    _get_or_404(db, gear_id)
    return list_maintenance(db, gear_id)


@router.post("/{gear_id}/maintenance", response_model=MaintenanceOut, status_code=201)
def api_record_maintenance(
    gear_id: int, payload: MaintenanceCreate, db: Session = Depends(get_db), admin: Profile = Depends(require_admin)
):
    gear = _get_or_404(db, gear_id)
    return record_maintenance(
        db,
        gear,
        status=payload.status,
        maintenance_type=payload.maintenance_type,
        description=payload.description,
        performed_by=admin.id,
        performed_at=payload.performed_at,
    )
