from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from sqlalchemy import desc, func, or_, select
from sqlalchemy.orm import Session

from ..core.gear_status import (
    OUT_OF_SERVICE_STATUSES,
    is_checked_out,
    normalize_gear_status,
)
from ..models import activity
from ..models.gear import Gear
from ..models.request import GearRequestGear
from ..services.timecalc import utc_now_iso
from .activity import record_activity

_TEXT_FIELDS = ("name", "category", "description", "condition", "serial_number")


def _clean_text(value: object) -> object:
    if isinstance(value, str):
        return value.strip() or None
    return value


def list_gears(
    db: Session,
    *,
    limit: int = 100,
    offset: int = 0,
    category: str | None = None,
    status: str | None = None,
    search: str | None = None,
) -> list[Gear]:
    """Return gears ordered by name with optional category/status/text filters."""

    stmt = select(Gear)
    if category:
        stmt = stmt.where(func.lower(Gear.category) == category.strip().lower())
    if status:
        stmt = stmt.where(Gear.status == normalize_gear_status(status))
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Gear.name).like(pattern),
                func.lower(Gear.serial_number).like(pattern),
                func.lower(Gear.category).like(pattern),
            )
        )
    stmt = stmt.order_by(Gear.name, Gear.id).limit(limit).offset(offset)
    return list(db.execute(stmt).unique().scalars().all())


def all_gears(db: Session) -> list[Gear]:
    return list(db.execute(select(Gear).order_by(Gear.id)).unique().scalars().all())


def get_gear(db: Session, gear_id: int) -> Gear | None:
    return db.get(Gear, gear_id)


def get_gears_by_ids(db: Session, ids: Iterable[int]) -> dict[int, Gear]:
    wanted = tuple(set(ids))
    if not wanted:
        return {}
    rows = db.execute(select(Gear).where(Gear.id.in_(wanted))).unique().scalars().all()
    return {gear.id: gear for gear in rows}


def create_gear(db: Session, payload: dict, *, actor_id: int | None = None) -> Gear:
    """Create and persist a gear record from a payload dict.

    ``available_quantity`` defaults to ``quantity`` and never exceeds it.
    """

    data = {key: _clean_text(value) if key in _TEXT_FIELDS else value for key, value in payload.items()}
    if not data.get("name"):
        raise ValueError("name is required for gear items")
    quantity = int(data.get("quantity") if data.get("quantity") is not None else 1)
    available = data.get("available_quantity")
    available = quantity if available is None else max(0, min(int(available), quantity))
    now = utc_now_iso()
    gear = Gear(
        name=data["name"],
        category=data.get("category"),
        description=data.get("description"),
        status=normalize_gear_status(data.get("status")),
        condition=data.get("condition"),
        quantity=quantity,
        available_quantity=available,
        serial_number=data.get("serial_number"),
        created_at=data.get("created_at") or now,
        updated_at=now,
    )
    db.add(gear)
    db.flush()
    record_activity(
        db,
        activity_type=activity.STATUS_CHANGE,
        user_id=actor_id,
        gear_id=gear.id,
        status=gear.status,
        notes=f"Gear {gear.name} added",
        commit=False,
    )
    db.commit()
    db.refresh(gear)
    return gear


def update_gear(db: Session, gear: Gear, payload: dict, *, actor_id: int | None = None) -> Gear:
    """Apply a partial update. Unknown keys are ignored."""

    previous_status = gear.status
    for key, value in payload.items():
        if key in ("id", "created_at") or not hasattr(Gear, key):
            continue
        if key in _TEXT_FIELDS:
            value = _clean_text(value)
            if key == "name" and not value:
                raise ValueError("name is required for gear items")
        if key == "status":
            value = normalize_gear_status(value)
        setattr(gear, key, value)

    quantity = max(0, int(gear.quantity or 0))
    gear.quantity = quantity
    gear.available_quantity = max(0, min(int(gear.available_quantity or 0), quantity))
    gear.updated_at = utc_now_iso()

    if gear.status != previous_status:
        record_activity(
            db,
            activity_type=activity.STATUS_CHANGE,
            user_id=actor_id,
            gear_id=gear.id,
            status=gear.status,
            notes=f"Status changed from {previous_status} to {gear.status}",
            commit=False,
        )
    db.commit()
    db.refresh(gear)
    return gear


def delete_gear(db: Session, gear: Gear, *, actor_id: int | None = None) -> None:
    record_activity(
        db,
        activity_type=activity.STATUS_CHANGE,
        user_id=actor_id,
        status="Deleted",
        notes=f"Gear {gear.name} deleted",
        details={"gear_id": gear.id},
        commit=False,
    )
    db.delete(gear)
    db.commit()


def delete_gears(db: Session, ids: Iterable[int], *, actor_id: int | None = None) -> int:
    wanted = tuple(set(ids))
    if not wanted:
        return 0
    gears = get_gears_by_ids(db, wanted)
    for gear in gears.values():
        record_activity(
            db,
            activity_type=activity.STATUS_CHANGE,
            user_id=actor_id,
            status="Deleted",
            notes=f"Gear {gear.name} deleted",
            details={"gear_id": gear.id},
            commit=False,
        )
        db.delete(gear)
    db.commit()
    return len(gears)


def update_status_batch(db: Session, ids: Iterable[int], status: str, *, actor_id: int | None = None) -> list[Gear]:
    """Set the same status on many gears, one update per row."""

    canonical = normalize_gear_status(status)
    gears = get_gears_by_ids(db, ids)
    now = utc_now_iso()
    for gear in gears.values():
        if gear.status == canonical:
            continue
        previous = gear.status
        gear.status = canonical
        if canonical in OUT_OF_SERVICE_STATUSES:
            gear.available_quantity = 0
        gear.updated_at = now
        record_activity(
            db,
            activity_type=activity.STATUS_CHANGE,
            user_id=actor_id,
            gear_id=gear.id,
            status=canonical,
            notes=f"Status changed from {previous} to {canonical}",
            commit=False,
        )
    db.commit()
    return [gears[key] for key in sorted(gears)]


def popular_gears(db: Session, limit: int = 5) -> list[dict[str, object]]:
    """Gears ranked by total requested quantity across all requests."""

    stmt = (
        select(
            Gear.id,
            Gear.name,
            Gear.category,
            func.count(func.distinct(GearRequestGear.gear_request_id)).label("request_count"),
            func.coalesce(func.sum(GearRequestGear.quantity), 0).label("total_quantity"),
        )
        .join(GearRequestGear, GearRequestGear.gear_id == Gear.id)
        .group_by(Gear.id, Gear.name, Gear.category)
        .order_by(desc("total_quantity"), Gear.name)
        .limit(limit)
    )
    return [
        {
            "gear_id": row.id,
            "name": row.name,
            "category": row.category,
            "request_count": int(row.request_count or 0),
            "total_quantity": int(row.total_quantity or 0),
        }
        for row in db.execute(stmt).all()
    ]


def rate_percent(part: int, whole: int) -> int:
    """Whole percent of ``part`` in ``whole``, halves rounded up."""

    if not whole:
        return 0
    return (200 * part + whole) // (2 * whole)


def category_utilization(gears: Iterable[Gear]) -> list[dict[str, object]]:
    """Per-category unit counts from already-fetched gear rows."""

    buckets: dict[str, dict[str, int]] = defaultdict(lambda: {"total": 0, "available": 0, "out": 0})
    for gear in gears:
        bucket = buckets[(gear.category or "Uncategorized").strip() or "Uncategorized"]
        quantity = gear.quantity if gear.quantity is not None else 1
        available = gear.available_quantity or 0
        bucket["total"] += quantity
        bucket["available"] += available
        if is_checked_out(gear.status) or available < quantity:
            bucket["out"] += max(0, quantity - available)
    return [
        {
            "category": name,
            "total_units": bucket["total"],
            "available_units": bucket["available"],
            "checked_out_units": bucket["out"],
            "utilization_rate": rate_percent(bucket["out"], bucket["total"]),
        }
        for name, bucket in sorted(buckets.items())
    ]
