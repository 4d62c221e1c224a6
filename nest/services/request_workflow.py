"""Admin decisions on gear requests: approve, reject, cancel, overdue sweep."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from ..core.errors import ConflictError, InsufficientStockError, NestError, NotFoundError, PermissionDeniedError
from ..core.gear_status import status_for_availability
from ..crud import activity as crud_activity
from ..crud import gears as crud_gears
from ..crud import notifications as crud_notifications
from ..crud import requests as crud_requests
from ..db.session import SessionLocal
from ..models import activity
from ..models.request import APPROVED, CANCELLED, OVERDUE, PENDING, REJECTED, GearRequest
from . import email, push_queue
from .request_intake import aggregate_lines
from .timecalc import calculate_due_date, parse_iso, utc_now, utc_now_iso

logger = logging.getLogger(__name__)


def _load(db: Session, request_id: int) -> GearRequest:
    request = crud_requests.get_request(db, request_id)
    if request is None:
        raise NotFoundError(f"Request {request_id} not found")
    return request


def approve_request(db: Session, request_id: int, *, admin_id: int | None = None) -> GearRequest:
    """Check the requested gear out to the requester.

    Approving an already approved request is a no-op. Stock is validated for
    every line before any gear row changes.
    """

    request = _load(db, request_id)
    if request.status == APPROVED:
        return request
    if request.status != PENDING:
        raise ConflictError(f"Only pending requests can be approved (current status: {request.status})")

    lines = aggregate_lines((line.gear_id, line.quantity) for line in request.lines)
    if not lines:
        raise NestError("No gear found for this request")

    gears = crud_gears.get_gears_by_ids(db, [gear_id for gear_id, _ in lines])
    for gear_id, quantity in lines:
        gear = gears.get(gear_id)
        if gear is None:
            raise NotFoundError(f"Gear {gear_id} not found")
        available = int(gear.available_quantity or 0)
        if quantity > available:
            raise InsufficientStockError(gear.name, quantity, available)

    now = utc_now_iso()
    due_date = calculate_due_date(request.expected_duration)
    for gear_id, quantity in lines:
        gear = gears[gear_id]
        gear.available_quantity = int(gear.available_quantity or 0) - quantity
        gear.status = status_for_availability(gear.available_quantity, int(gear.quantity or 0))
        gear.checked_out_to = request.user_id
        gear.current_request_id = request.id
        gear.last_checkout_date = now
        gear.due_date = due_date
        gear.updated_at = now
        crud_activity.record_activity(
            db,
            activity_type=activity.CHECKOUT,
            user_id=request.user_id,
            gear_id=gear_id,
            request_id=request.id,
            status=gear.status,
            details={"quantity": quantity},
            commit=False,
        )

    request.status = APPROVED
    request.approved_at = now
    request.due_date = due_date
    request.updated_at = now
    crud_requests.add_status_history(db, request.id, APPROVED, changed_by=admin_id, commit=False)
    crud_activity.record_activity(
        db,
        activity_type=activity.APPROVAL,
        user_id=admin_id,
        request_id=request.id,
        status=APPROVED,
        commit=False,
    )
    crud_notifications.create_notification(
        db,
        user_id=request.user_id,
        title="Gear Request Approved",
        message=f"Your request for {', '.join(request.gear_names) or 'equipment'} has been approved.",
        type="approval",
        link="/user/my-requests",
        meta={"request_id": request.id, "due_date": due_date},
        commit=False,
    )
    db.commit()
    db.refresh(request)
    logger.info("request.approved", extra={"extra_data": {"request_id": request.id, "admin_id": admin_id}})
    return request


def reject_request(db: Session, request_id: int, reason: str, *, admin_id: int | None = None) -> GearRequest:
    reason = (reason or "").strip()
    if not reason:
        raise NestError("A rejection reason is required")
    request = _load(db, request_id)
    if request.status != PENDING:
        raise ConflictError(f"Only pending requests can be rejected (current status: {request.status})")

    request.status = REJECTED
    request.admin_notes = reason
    request.updated_at = utc_now_iso()
    crud_requests.add_status_history(db, request.id, REJECTED, changed_by=admin_id, note=reason, commit=False)
    crud_activity.record_activity(
        db,
        activity_type=activity.REJECTION,
        user_id=admin_id,
        request_id=request.id,
        status=REJECTED,
        notes=reason,
        commit=False,
    )
    crud_notifications.create_notification(
        db,
        user_id=request.user_id,
        title="Gear Request Rejected",
        message=f"Your request was rejected: {reason}",
        type="rejection",
        link="/user/my-requests",
        meta={"request_id": request.id},
        commit=False,
    )
    db.commit()
    db.refresh(request)
    logger.info("request.rejected", extra={"extra_data": {"request_id": request.id, "admin_id": admin_id}})
    return request


def cancel_request(db: Session, request_id: int, *, user_id: int) -> GearRequest:
    request = _load(db, request_id)
    if request.user_id != user_id:
        raise PermissionDeniedError("You can only cancel your own requests")
    if request.status != PENDING:
        raise ConflictError(f"Only pending requests can be cancelled (current status: {request.status})")
    request.status = CANCELLED
    request.updated_at = utc_now_iso()
    crud_requests.add_status_history(db, request.id, CANCELLED, changed_by=user_id, commit=False)
    db.commit()
    db.refresh(request)
    return request


def update_request(db: Session, request_id: int, payload: dict, *, admin_id: int | None = None) -> GearRequest:
    request = _load(db, request_id)
    previous = request.status
    request = crud_requests.update_request(db, request, payload)
    if request.status != previous:
        crud_requests.add_status_history(db, request.id, request.status, changed_by=admin_id, note="Updated by admin")
    return request


def delete_request(db: Session, request_id: int) -> None:
    crud_requests.delete_request(db, _load(db, request_id))


def mark_overdue(db: Session, *, admin_id: int | None = None) -> list[int]:
    """Flag approved requests whose due date has passed. Returns their ids."""

    marked: list[int] = []
    for request in crud_requests.overdue_candidates(db):
        request.status = OVERDUE
        request.updated_at = utc_now_iso()
        crud_requests.add_status_history(db, request.id, OVERDUE, changed_by=admin_id, note="Past due date", commit=False)
        crud_notifications.create_notification(
            db,
            user_id=request.user_id,
            title="Equipment Overdue",
            message=f"{', '.join(request.gear_names) or 'Your equipment'} was due back on {request.due_date}.",
            type="overdue",
            link="/user/check-in",
            meta={"request_id": request.id},
            commit=False,
        )
        marked.append(request.id)
    db.commit()
    if marked:
        logger.info("request.overdue_marked", extra={"extra_data": {"count": len(marked)}})
    return marked


def notify_request_decision(request_id: int, session_factory: Callable[[], Session] = SessionLocal) -> None:
    """Email and push the requester about an approval or rejection."""

    db = session_factory()
    try:
        request = crud_requests.get_request(db, request_id)
        if request is None or request.requester is None:
            return
        requester = request.requester
        if request.status == APPROVED:
            email.send_request_approved(
                requester.email, user_name=requester.display_name, gear_names=request.gear_names, due_date=request.due_date
            )
            title, body = "Gear Request Approved", "Your gear request has been approved. Ready for pickup."
        elif request.status == REJECTED:
            email.send_request_rejected(
                requester.email, user_name=requester.display_name, gear_names=request.gear_names, reason=request.admin_notes
            )
            title, body = "Gear Request Rejected", f"Your gear request was rejected: {request.admin_notes}"
        else:
            return
        push_queue.enqueue_quietly(
            db,
            user_id=requester.id,
            title=title,
            body=body,
            data={"type": "gear_request", "request_id": request.id, "link": "/user/my-requests"},
            context="request_decision",
        )
    finally:
        db.close()


def notify_overdue(request_ids: Iterable[int], session_factory: Callable[[], Session] = SessionLocal) -> None:
    db = session_factory()
    try:
        now = utc_now()
        for request_id in request_ids:
            request = crud_requests.get_request(db, request_id)
            if request is None or request.requester is None:
                continue
            due = parse_iso(request.due_date)
            overdue_days = max(1, (now - due).days) if due else 1
            email.send_overdue_reminder(
                request.requester.email,
                user_name=request.requester.display_name,
                gear_names=request.gear_names,
                due_date=request.due_date,
                overdue_days=overdue_days,
            )
            push_queue.enqueue_quietly(
                db,
                user_id=request.user_id,
                title="Equipment Overdue",
                body=f"Your equipment is {overdue_days} day(s) overdue. Please return it.",
                data={"type": "overdue", "request_id": request.id},
                trigger=False,
            )
        push_queue.trigger_worker(context="overdue")
    finally:
        db.close()
