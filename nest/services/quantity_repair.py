"""Repairing drift between gear rows and the checkouts that explain them.

``available_quantity`` is kept up to date by approvals and check-ins, but rows
edited by hand can disagree with the request history. These helpers recompute
the expected figures from outstanding checkouts and either report or fix the
difference.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.gear_status import (
    CHECKED_OUT,
    LOST,
    OUT_OF_SERVICE_STATUSES,
    PENDING_CHECKIN,
    REPAIR_STATUSES,
    RETIRED,
    status_for_availability,
)
from ..crud import gears as crud_gears
from ..db.session import Base
from ..models.checkin import COMPLETED, Checkin
from ..models.gear import Gear
from ..models.request import APPROVED, OVERDUE, GearRequest, GearRequestGear
from .timecalc import utc_now_iso

logger = logging.getLogger(__name__)

_OPEN_REQUEST_STATUSES = (APPROVED, OVERDUE)


def outstanding_units(db: Session, *, gear_id: int | None = None) -> dict[int, int]:
    """Units per gear still out on approved or overdue requests."""

    requested: dict[int, int] = defaultdict(int)
    stmt = (
        select(GearRequestGear.gear_id, func.sum(GearRequestGear.quantity))
        .join(GearRequest, GearRequest.id == GearRequestGear.gear_request_id)
        .where(GearRequest.status.in_(_OPEN_REQUEST_STATUSES))
        .group_by(GearRequestGear.gear_id)
    )
    if gear_id is not None:
        stmt = stmt.where(GearRequestGear.gear_id == gear_id)
    for row_gear_id, total in db.execute(stmt).all():
        requested[row_gear_id] += int(total or 0)

    returned = select(Checkin.gear_id, func.sum(Checkin.quantity)).join(
        GearRequest, GearRequest.id == Checkin.request_id
    ).where(GearRequest.status.in_(_OPEN_REQUEST_STATUSES), Checkin.status == COMPLETED).group_by(Checkin.gear_id)
    if gear_id is not None:
        returned = returned.where(Checkin.gear_id == gear_id)
    for row_gear_id, total in db.execute(returned).all():
        requested[row_gear_id] -= int(total or 0)
    return {key: max(0, units) for key, units in requested.items()}


def expected_available(gear: Gear, outstanding: int) -> int:
    """Shelf count implied by the open checkouts.

    Retired, lost and fully checked-out gear has nothing on the shelf. Gear in
    repair may hold back damaged units, so anything up to the shelf count is
    accepted there.
    """

    quantity = gear.quantity if gear.quantity is not None else 1
    if gear.status in (RETIRED, LOST, CHECKED_OUT):
        return 0
    shelf = max(0, quantity - outstanding)
    if gear.status in REPAIR_STATUSES:
        return min(max(0, gear.available_quantity or 0), shelf)
    return shelf


def validate_quantities(db: Session) -> dict[str, Any]:
    outstanding = outstanding_units(db)
    issues: list[dict[str, Any]] = []
    gears = crud_gears.all_gears(db)
    for gear in gears:
        quantity = gear.quantity if gear.quantity is not None else 1
        available = gear.available_quantity or 0
        expected = expected_available(gear, outstanding.get(gear.id, 0))
        if available > quantity:
            issue = "available_quantity exceeds total quantity"
        elif available != expected:
            issue = f"available_quantity is {available}, expected {expected}"
        else:
            continue
        issues.append(
            {
                "gear_id": gear.id,
                "name": gear.name,
                "issue": issue,
                "status": gear.status,
                "quantity": quantity,
                "available_quantity": available,
                "expected": expected,
            }
        )
    return {"valid": len(gears) - len(issues), "invalid": len(issues), "issues": issues}


def fix_quantities(db: Session) -> dict[str, Any]:
    outstanding = outstanding_units(db)
    fixed = 0
    errors: list[str] = []
    now = utc_now_iso()
    for gear in crud_gears.all_gears(db):
        try:
            expected = expected_available(gear, outstanding.get(gear.id, 0))
            if gear.available_quantity != expected:
                gear.available_quantity = expected
                gear.updated_at = now
                fixed += 1
        except (TypeError, ValueError) as exc:
            errors.append(f"Error processing gear {gear.id}: {exc}")
    db.commit()
    logger.info("gear.quantities_fixed", extra={"extra_data": {"fixed": fixed, "errors": len(errors)}})
    return {"success": not errors, "fixed": fixed, "errors": errors}


def fix_statuses(db: Session) -> dict[str, Any]:
    """Align in-service statuses with availability."""

    fixed: list[dict[str, Any]] = []
    now = utc_now_iso()
    for gear in crud_gears.all_gears(db):
        if gear.status in OUT_OF_SERVICE_STATUSES or gear.status == PENDING_CHECKIN:
            continue
        quantity = gear.quantity if gear.quantity is not None else 1
        target = status_for_availability(gear.available_quantity or 0, quantity)
        if gear.status != target:
            fixed.append({"gear_id": gear.id, "name": gear.name, "from": gear.status, "to": target})
            gear.status = target
            gear.updated_at = now
    db.commit()
    return {"fixed": len(fixed), "changes": fixed}


def system_overview(db: Session) -> dict[str, int]:
    """Row counts for every mapped table."""

    counts: dict[str, int] = {}
    for mapper in sorted(Base.registry.mappers, key=lambda item: item.local_table.name):
        table = mapper.local_table
        counts[table.name] = int(db.execute(select(func.count()).select_from(table)).scalar_one())
    return counts
