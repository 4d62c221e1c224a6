"""Returning checked-out gear.

Users submit a check-in, which parks the gear in ``Pending Check-in`` until an
admin approves it. Approval puts the units back on the shelf and completes the
request once every requested unit has come back.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from ..core.errors import ConflictError, NestError, NotFoundError, PermissionDeniedError
from ..core.gear_status import NEEDS_REPAIR, OUT_OF_SERVICE_STATUSES, PENDING_CHECKIN, status_for_availability
from ..crud import activity as crud_activity
from ..crud import checkins as crud_checkins
from ..crud import gears as crud_gears
from ..crud import notifications as crud_notifications
from ..crud import profiles as crud_profiles
from ..crud import requests as crud_requests
from ..db.session import SessionLocal
from ..models import activity
from ..models.checkin import COMPLETED, CONDITION_DAMAGED, PENDING_APPROVAL, REJECTED, Checkin
from ..models.gear import Gear
from ..models.request import COMPLETED as REQUEST_COMPLETED
from . import email, push_queue
from .timecalc import utc_now_iso

logger = logging.getLogger(__name__)


def _requested_quantity(db: Session, request_id: int, gear_id: int | None = None) -> int:
    return sum(
        line.quantity
        for line in crud_requests.request_lines(db, request_id)
        if gear_id is None or line.gear_id == gear_id
    )


def outstanding_quantity(db: Session, request_id: int, gear_id: int) -> int:
    """Units of a gear still out on a request, counting pending check-ins as back."""

    requested = _requested_quantity(db, request_id, gear_id)
    returned = crud_checkins.returned_quantity(
        db, request_id=request_id, gear_id=gear_id, statuses=(COMPLETED, PENDING_APPROVAL)
    )
    return max(0, requested - returned)


def submit_checkin(
    db: Session,
    *,
    user_id: int,
    gear_id: int,
    request_id: int | None = None,
    quantity: int = 1,
    condition: str = "Good",
    notes: str | None = None,
    damage_notes: str | None = None,
) -> Checkin:
    gear = crud_gears.get_gear(db, gear_id)
    if gear is None:
        raise NotFoundError(f"Gear {gear_id} not found")
    if quantity < 1:
        raise NestError("Quantity must be at least 1")

    if request_id is None and gear.checked_out_to == user_id:
        request_id = gear.current_request_id
    if request_id is None:
        raise PermissionDeniedError("This gear is not checked out to you")

    request = crud_requests.get_request(db, request_id)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    if request.user_id != user_id:
        raise PermissionDeniedError("This request belongs to another user")
    outstanding = outstanding_quantity(db, request_id, gear_id)
    if quantity > outstanding:
        raise ConflictError(
            f"Only {outstanding} unit(s) of {gear.name} are still out on this request",
            details={"outstanding": outstanding, "requested": quantity},
        )

    checkin = crud_checkins.insert_checkin(
        db,
        user_id=user_id,
        gear_id=gear_id,
        request_id=request_id,
        status=PENDING_APPROVAL,
        quantity=quantity,
        condition=condition,
        notes=(notes or "").strip() or None,
        damage_notes=((damage_notes or "").strip() or None) if condition == CONDITION_DAMAGED else None,
    )
    if gear.status not in OUT_OF_SERVICE_STATUSES:
        gear.status = PENDING_CHECKIN
    gear.updated_at = checkin.created_at
    crud_activity.record_activity(
        db,
        activity_type=activity.CHECKIN,
        user_id=user_id,
        gear_id=gear_id,
        request_id=request_id,
        status=PENDING_APPROVAL,
        notes=checkin.notes,
        details={"quantity": quantity, "condition": condition},
        commit=False,
    )
    db.commit()
    db.refresh(checkin)
    logger.info("checkin.submitted", extra={"extra_data": {"checkin_id": checkin.id, "gear_id": gear_id}})
    return checkin


def _return_units(gear: Gear, checkin: Checkin, now: str) -> None:
    quantity = int(gear.quantity or 0)
    if checkin.condition == CONDITION_DAMAGED:
        # Damaged units stay off the shelf until maintenance clears them.
        gear.status = NEEDS_REPAIR
        gear.condition = CONDITION_DAMAGED
    else:
        on_shelf = min(quantity, int(gear.available_quantity or 0) + int(checkin.quantity or 0))
        gear.available_quantity = on_shelf
        if gear.status not in OUT_OF_SERVICE_STATUSES:
            gear.status = status_for_availability(on_shelf, quantity)
    gear.updated_at = now


def _release_holder(db: Session, gear: Gear, request_id: int) -> None:
    if gear.current_request_id != request_id:
        return
    requested = _requested_quantity(db, request_id, gear.id)
    returned = crud_checkins.returned_quantity(db, request_id=request_id, gear_id=gear.id)
    if requested - returned <= 0:
        gear.checked_out_to = None
        gear.current_request_id = None
        gear.due_date = None


def approve_checkins(db: Session, checkin_ids: Iterable[int], *, admin_id: int | None = None) -> list[Checkin]:
    """Approve one check-in or a group submitted together."""

    ids = list(dict.fromkeys(checkin_ids))
    checkins = crud_checkins.get_checkins(db, ids)
    found = {checkin.id for checkin in checkins}
    missing = [checkin_id for checkin_id in ids if checkin_id not in found]
    if missing:
        raise NotFoundError(f"Check-in(s) not found: {missing}")
    not_pending = [checkin.id for checkin in checkins if checkin.status != PENDING_APPROVAL]
    if not_pending:
        raise ConflictError(f"Check-in(s) already processed: {not_pending}")

    now = utc_now_iso()
    touched_requests: set[int] = set()
    for checkin in checkins:
        checkin.status = COMPLETED
        checkin.approved_by = admin_id
        checkin.approved_at = now
        checkin.updated_at = now
        if checkin.gear is not None:
            _return_units(checkin.gear, checkin, now)
        if checkin.request_id is not None:
            touched_requests.add(checkin.request_id)
        crud_activity.record_activity(
            db,
            activity_type=activity.CHECKIN,
            user_id=checkin.user_id,
            gear_id=checkin.gear_id,
            request_id=checkin.request_id,
            status=COMPLETED,
            details={"quantity": checkin.quantity, "condition": checkin.condition, "approved_by": admin_id},
            commit=False,
        )
    db.flush()

    for checkin in checkins:
        if checkin.gear is not None and checkin.request_id is not None:
            _release_holder(db, checkin.gear, checkin.request_id)

    for request_id in sorted(touched_requests):
        requested = _requested_quantity(db, request_id)
        returned = crud_checkins.returned_quantity(db, request_id=request_id)
        request = crud_requests.get_request(db, request_id)
        if request is not None and requested and returned >= requested and request.status != REQUEST_COMPLETED:
            request.status = REQUEST_COMPLETED
            request.updated_at = now
            crud_requests.add_status_history(
                db, request_id, REQUEST_COMPLETED, changed_by=admin_id, note="All gear checked in", commit=False
            )

    by_user: dict[int, list[Checkin]] = defaultdict(list)
    for checkin in checkins:
        by_user[checkin.user_id].append(checkin)
    for user_id, items in by_user.items():
        names = ", ".join(item.gear_name or f"Gear {item.gear_id}" for item in items)
        crud_notifications.create_notification(
            db,
            user_id=user_id,
            title="Check-in Approved",
            message=f"Your check-in of {names} has been approved.",
            type="checkin",
            link="/user/history",
            meta={"checkin_ids": [item.id for item in items]},
            commit=False,
        )
    db.commit()
    logger.info("checkin.approved", extra={"extra_data": {"checkin_ids": ids, "admin_id": admin_id}})
    return checkins


def reject_checkin(db: Session, checkin_id: int, reason: str, *, admin_id: int | None = None) -> Checkin:
    reason = (reason or "").strip()
    if not reason:
        raise NestError("A rejection reason is required")
    checkin = crud_checkins.get_checkin(db, checkin_id)
    if checkin is None:
        raise NotFoundError(f"Check-in {checkin_id} not found")
    if checkin.status != PENDING_APPROVAL:
        raise ConflictError(f"Check-in already processed ({checkin.status})")

    now = utc_now_iso()
    checkin.status = REJECTED
    checkin.notes = f"Rejected: {reason}"
    checkin.approved_by = admin_id
    checkin.approved_at = now
    checkin.updated_at = now
    gear = checkin.gear
    if gear is not None and gear.status not in OUT_OF_SERVICE_STATUSES:
        gear.status = status_for_availability(int(gear.available_quantity or 0), int(gear.quantity or 0))
        gear.updated_at = now
    crud_activity.record_activity(
        db,
        activity_type=activity.REJECTION,
        user_id=admin_id,
        gear_id=checkin.gear_id,
        request_id=checkin.request_id,
        status=REJECTED,
        notes=reason,
        commit=False,
    )
    crud_notifications.create_notification(
        db,
        user_id=checkin.user_id,
        title="Check-in Rejected",
        message=f"Your check-in of {checkin.gear_name or 'gear'} was rejected: {reason}",
        type="checkin",
        link="/user/check-in",
        meta={"checkin_id": checkin.id},
        commit=False,
    )
    db.commit()
    db.refresh(checkin)
    return checkin


def list_pending(db: Session) -> list[Checkin]:
    return crud_checkins.list_checkins(db, status=PENDING_APPROVAL, limit=500)


def list_for_user(db: Session, user_id: int) -> list[Checkin]:
    return crud_checkins.list_checkins(db, user_id=user_id, limit=500)


def notify_checkin_submitted(checkin_id: int, session_factory: Callable[[], Session] = SessionLocal) -> None:
    db = session_factory()
    try:
        checkin = crud_checkins.get_checkin(db, checkin_id)
        if checkin is None:
            return
        admins = crud_profiles.list_admins(db)
        message = f"{checkin.user_name or 'A user'} returned {checkin.gear_name or 'gear'} ({checkin.condition})"
        try:
            crud_notifications.notify_many(
                db,
                [admin.id for admin in admins],
                title="New Check-in",
                message=message,
                type="checkin",
                link="/admin/manage-checkins",
                meta={"checkin_id": checkin.id},
            )
        except Exception:
            db.rollback()
            logger.warning("checkin.notify_failed", exc_info=True, extra={"extra_data": {"checkin_id": checkin_id}})
        for admin in admins:
            push_queue.enqueue_quietly(
                db,
                user_id=admin.id,
                title="New Check-in",
                body=message,
                data={"type": "checkin", "checkin_id": checkin.id},
                trigger=False,
            )
        if admins:
            push_queue.trigger_worker(context="checkin_submitted")
    finally:
        db.close()


def notify_checkin_decision(checkin_ids: Iterable[int], session_factory: Callable[[], Session] = SessionLocal) -> None:
    db = session_factory()
    try:
        for checkin in crud_checkins.get_checkins(db, checkin_ids):
            if checkin.user is None:
                continue
            if checkin.status == COMPLETED:
                email.send_checkin_approved(
                    checkin.user.email,
                    user_name=checkin.user.display_name,
                    gear_name=checkin.gear_name,
                    quantity=checkin.quantity,
                    condition=checkin.condition,
                )
                title, body = "Check-in Approved", f"Your check-in of {checkin.gear_name or 'gear'} was approved."
            elif checkin.status == REJECTED:
                email.send_checkin_rejected(
                    checkin.user.email,
                    user_name=checkin.user.display_name,
                    gear_name=checkin.gear_name,
                    reason=(checkin.notes or "").removeprefix("Rejected: "),
                )
                title, body = "Check-in Rejected", checkin.notes or "Your check-in was rejected."
            else:
                continue
            push_queue.enqueue_quietly(
                db,
                user_id=checkin.user_id,
                title=title,
                body=body,
                data={"type": "checkin", "checkin_id": checkin.id},
                trigger=False,
            )
        push_queue.trigger_worker(context="checkin_decision")
    finally:
        db.close()
