from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.gear_status import (
    AVAILABLE,
    CHECKED_OUT,
    OUT_OF_SERVICE_STATUSES,
    PARTIALLY_AVAILABLE,
    PARTIALLY_CHECKED_OUT,
    normalize_gear_status,
    status_for_availability,
)
from ..models import activity
from ..models.gear import Gear
from ..models.maintenance import GearMaintenance
from ..services.quantity_repair import outstanding_units
from ..services.timecalc import utc_now_iso
from .activity import record_activity


def record_maintenance(
    db: Session,
    gear: Gear,
    *,
    status: str,
    maintenance_type: str = "Maintenance",
    description: str | None = None,
    performed_by: int | None = None,
    performed_at: str | None = None,
) -> GearMaintenance:
    """Log a maintenance event and move the gear into the resulting status.

    Repair and retirement statuses take every unit off the shelf. Any other
    status puts back every unit not still out on an open request.
    """

    canonical = normalize_gear_status(status)
    now = utc_now_iso()
    entry = GearMaintenance(
        gear_id=gear.id,
        status=canonical,
        maintenance_type=(maintenance_type or "Maintenance").strip() or "Maintenance",
        description=(description or "").strip() or None,
        performed_by=performed_by,
        performed_at=performed_at or now,
        created_at=now,
    )
    db.add(entry)

    if canonical in OUT_OF_SERVICE_STATUSES:
        gear.status = canonical
        gear.available_quantity = 0
    else:
        quantity = int(gear.quantity or 0)
        outstanding = outstanding_units(db, gear_id=gear.id).get(gear.id, 0)
        gear.available_quantity = max(0, quantity - outstanding)
        gear.status = status_for_availability(gear.available_quantity, quantity)
        if canonical not in (AVAILABLE, PARTIALLY_AVAILABLE, PARTIALLY_CHECKED_OUT, CHECKED_OUT):
            gear.status = canonical
        if outstanding == 0:
            gear.checked_out_to = None
            gear.current_request_id = None
            gear.due_date = None
    gear.updated_at = now

    record_activity(
        db,
        activity_type=activity.MAINTENANCE,
        user_id=performed_by,
        gear_id=gear.id,
        status=canonical,
        notes=entry.description,
        details={"maintenance_type": entry.maintenance_type},
        commit=False,
    )
    db.commit()
    db.refresh(entry)
    return entry


def list_maintenance(db: Session, gear_id: int) -> list[GearMaintenance]:
    stmt = (
        select(GearMaintenance)
        .where(GearMaintenance.gear_id == gear_id)
        .order_by(desc(GearMaintenance.performed_at), desc(GearMaintenance.id))
    )
    return list(db.execute(stmt).scalars().all())
