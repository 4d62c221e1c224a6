from __future__ import annotations

from typing import Iterable

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..models.checkin import COMPLETED, PENDING_APPROVAL, Checkin
from ..services.timecalc import utc_now_iso


def get_checkin(db: Session, checkin_id: int) -> Checkin | None:
    return db.get(Checkin, checkin_id)


def get_checkins(db: Session, ids: Iterable[int]) -> list[Checkin]:
    wanted = tuple(set(ids))
    if not wanted:
        return []
    stmt = select(Checkin).where(Checkin.id.in_(wanted)).order_by(Checkin.id)
    return list(db.execute(stmt).unique().scalars().all())


def list_checkins(
    db: Session,
    *,
    status: str | None = None,
    user_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Checkin]:
    stmt = select(Checkin)
    if status:
        stmt = stmt.where(Checkin.status == status)
    if user_id is not None:
        stmt = stmt.where(Checkin.user_id == user_id)
    stmt = stmt.order_by(desc(Checkin.checkin_date), desc(Checkin.id)).limit(limit).offset(offset)
    return list(db.execute(stmt).unique().scalars().all())


def pending_gear_ids(db: Session) -> set[int]:
    stmt = select(Checkin.gear_id).where(Checkin.status == PENDING_APPROVAL)
    return {gear_id for gear_id in db.execute(stmt).scalars().all()}


def returned_quantity(
    db: Session,
    *,
    request_id: int,
    gear_id: int | None = None,
    statuses: tuple[str, ...] = (COMPLETED,),
) -> int:
    """Units already handed back on a request (optionally for one gear)."""

    stmt = select(func.coalesce(func.sum(Checkin.quantity), 0)).where(
        Checkin.request_id == request_id, Checkin.status.in_(statuses)
    )
    if gear_id is not None:
        stmt = stmt.where(Checkin.gear_id == gear_id)
    return int(db.execute(stmt).scalar_one() or 0)


def insert_checkin(db: Session, **fields) -> Checkin:
    now = utc_now_iso()
    fields.setdefault("checkin_date", now)
    checkin = Checkin(created_at=now, updated_at=now, **fields)
    db.add(checkin)
    db.flush()
    return checkin
