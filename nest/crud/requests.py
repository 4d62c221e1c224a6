from __future__ import annotations

from typing import Iterable

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, selectinload

from ..models.request import APPROVED, GearRequest, GearRequestGear, RequestStatusHistory
from ..services.timecalc import is_past, utc_now_iso


def _with_lines(stmt):
    return stmt.options(selectinload(GearRequest.lines))


def list_requests(
    db: Session,
    *,
    status: str | None = None,
    user_id: int | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[GearRequest], int]:
    """One page of requests, newest first, plus the unpaged total."""

    filters = []
    if status and status.lower() != "all":
        filters.append(GearRequest.status == status)
    if user_id is not None:
        filters.append(GearRequest.user_id == user_id)

    total = db.execute(select(func.count(GearRequest.id)).where(*filters)).scalar_one()
    page = max(1, page)
    page_size = max(1, page_size)
    stmt = (
        _with_lines(select(GearRequest).where(*filters))
        .order_by(desc(GearRequest.created_at), desc(GearRequest.id))
        .limit(page_size)
        .offset((page - 1) * page_size)
    )
    return list(db.execute(stmt).unique().scalars().all()), int(total)


def all_requests(db: Session) -> list[GearRequest]:
    stmt = _with_lines(select(GearRequest)).order_by(desc(GearRequest.created_at))
    return list(db.execute(stmt).unique().scalars().all())


def get_request(db: Session, request_id: int) -> GearRequest | None:
    stmt = _with_lines(select(GearRequest).where(GearRequest.id == request_id))
    return db.execute(stmt).unique().scalars().first()


def count_requests(db: Session) -> int:
    return int(db.execute(select(func.count(GearRequest.id))).scalar_one())


def insert_request(db: Session, **fields) -> GearRequest:
    now = utc_now_iso()
    request = GearRequest(created_at=now, updated_at=now, **fields)
    db.add(request)
    db.commit()
    db.refresh(request)
    return request


def insert_request_lines(
    db: Session, request_id: int, lines: Iterable[tuple[int, int]]
) -> list[GearRequestGear]:
    """Insert ``(gear_id, quantity)`` rows for a request in one commit."""

    rows = [GearRequestGear(gear_request_id=request_id, gear_id=gear_id, quantity=quantity) for gear_id, quantity in lines]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return rows


def request_lines(db: Session, request_id: int) -> list[GearRequestGear]:
    stmt = select(GearRequestGear).where(GearRequestGear.gear_request_id == request_id).order_by(GearRequestGear.id)
    return list(db.execute(stmt).unique().scalars().all())


def update_request(db: Session, request: GearRequest, payload: dict) -> GearRequest:
    for key, value in payload.items():
        if key in ("id", "user_id", "created_at") or not hasattr(GearRequest, key):
            continue
        setattr(request, key, value)
    request.updated_at = utc_now_iso()
    db.commit()
    db.refresh(request)
    return request


def delete_request(db: Session, request: GearRequest) -> None:
    db.delete(request)
    db.commit()


def add_status_history(
    db: Session,
    request_id: int,
    status: str,
    *,
    changed_by: int | None = None,
    note: str | None = None,
    commit: bool = True,
) -> RequestStatusHistory:
    entry = RequestStatusHistory(
        request_id=request_id,
        status=status,
        changed_by=changed_by,
        note=note,
        changed_at=utc_now_iso(),
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    else:
        db.flush()
    return entry


def status_history(db: Session, request_id: int) -> list[RequestStatusHistory]:
    stmt = (
        select(RequestStatusHistory)
        .where(RequestStatusHistory.request_id == request_id)
        .order_by(RequestStatusHistory.changed_at, RequestStatusHistory.id)
    )
    return list(db.execute(stmt).scalars().all())


def overdue_candidates(db: Session) -> list[GearRequest]:
    """Approved requests whose due date has passed."""

    stmt = select(GearRequest).where(GearRequest.status == APPROVED, GearRequest.due_date.is_not(None))
    return [row for row in db.execute(stmt).unique().scalars().all() if is_past(row.due_date)]
