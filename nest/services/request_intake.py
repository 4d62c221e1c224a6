"""Creating gear requests.

A request is a header row plus one line per distinct gear. Stock is checked
against each gear's ``available_quantity`` before anything is written. The
header and the lines are written in two steps; when the second step fails the
header is deleted again so no empty request is left behind.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import InsufficientStockError, NotFoundError
from ..crud import activity as crud_activity
from ..crud import gears as crud_gears
from ..crud import notifications as crud_notifications
from ..crud import profiles as crud_profiles
from ..crud import requests as crud_requests
from ..db.session import SessionLocal
from ..models import activity
from ..models.request import PENDING, GearRequest
from . import email, push_queue
from .timecalc import calculate_due_date

logger = logging.getLogger(__name__)


def aggregate_lines(lines: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge lines for the same gear by summing quantities.

    Order follows the first appearance of each gear id.
    """

    totals: dict[int, int] = {}
    for gear_id, quantity in lines:
        totals[gear_id] = totals.get(gear_id, 0) + int(quantity)
    return list(totals.items())


def validate_availability(db: Session, lines: list[tuple[int, int]]) -> None:
    gears = crud_gears.get_gears_by_ids(db, [gear_id for gear_id, _ in lines])
    for gear_id, quantity in lines:
        gear = gears.get(gear_id)
        if gear is None:
            raise NotFoundError(f"Gear {gear_id} not found")
        available = int(gear.available_quantity or 0)
        if quantity > available:
            raise InsufficientStockError(gear.name, quantity, available)


def create_request(
    db: Session,
    *,
    user_id: int,
    lines: Iterable[tuple[int, int]],
    reason: str | None = None,
    destination: str | None = None,
    expected_duration: str | None = None,
    team_members: Iterable[str] | None = None,
) -> GearRequest:
    aggregated = aggregate_lines(lines)
    if not aggregated:
        raise ValueError("A request needs at least one gear line")
    if any(quantity < 1 for _, quantity in aggregated):
        raise ValueError("Quantities must be at least 1")
    validate_availability(db, aggregated)

    duration = (expected_duration or "").strip() or settings.DEFAULT_REQUEST_DURATION
    members = ", ".join(member.strip() for member in (team_members or []) if member and member.strip())
    request = crud_requests.insert_request(
        db,
        user_id=user_id,
        reason=(reason or "").strip() or None,
        destination=(destination or "").strip() or None,
        expected_duration=duration,
        team_members=members or None,
        status=PENDING,
        due_date=calculate_due_date(duration),
    )

    try:
        crud_requests.insert_request_lines(db, request.id, aggregated)
    except Exception:
        db.rollback()
        request_id = request.id
        try:
            crud_requests.delete_request(db, request)
        except Exception:
            db.rollback()
            logger.exception("request.compensation_failed", extra={"extra_data": {"request_id": request_id}})
        raise

    crud_requests.add_status_history(db, request.id, PENDING, changed_by=user_id, note="Request submitted")
    db.refresh(request)
    logger.info(
        "request.created",
        extra={"extra_data": {"request_id": request.id, "user_id": user_id, "lines": len(aggregated)}},
    )
    return request


def notify_request_created(request_id: int, session_factory: Callable[[], Session] = SessionLocal) -> None:
    """Emails, notifications, push and activity for a new request.

    Runs after the response has been sent. Every step is best effort.
    """

    db = session_factory()
    try:
        request = crud_requests.get_request(db, request_id)
        if request is None:
            return
        requester = request.requester
        lines = [{"name": line.gear_name or f"Gear {line.gear_id}", "quantity": line.quantity} for line in request.lines]
        details = {
            "reason": request.reason,
            "destination": request.destination,
            "duration": request.expected_duration,
            "team_members": request.team_members,
        }
        admins = crud_profiles.list_admins(db)

        if requester is not None:
            email.send_request_received(requester.email, user_name=requester.display_name, lines=lines, **details)
        email.send_request_to_admins(
            [admin.email for admin in admins],
            user_name=request.requester_name,
            user_email=request.requester_email,
            lines=lines,
            **details,
        )

        summary = ", ".join(f"{line['name']} x{line['quantity']}" for line in lines)
        title = "New Gear Request"
        message = f"{request.requester_name or 'A user'} requested {summary}"
        try:
            crud_notifications.notify_many(
                db,
                [admin.id for admin in admins],
                title=title,
                message=message,
                type="gear_request",
                link="/admin/manage-requests",
                meta={"request_id": request.id},
            )
        except Exception:
            db.rollback()
            logger.warning("request.notify_failed", exc_info=True, extra={"extra_data": {"request_id": request_id}})

        for admin in admins:
            push_queue.enqueue_quietly(
                db,
                user_id=admin.id,
                title=title,
                body=message,
                data={"type": "gear_request", "request_id": request.id, "link": "/admin/manage-requests"},
                trigger=False,
            )
        if admins:
            push_queue.trigger_worker(context="request_created")

        try:
            crud_activity.record_activity(
                db,
                activity_type=activity.REQUEST,
                user_id=request.user_id,
                request_id=request.id,
                status=request.status,
                notes=request.reason,
                details={"lines": [[line.gear_id, line.quantity] for line in request.lines]},
            )
        except Exception:
            db.rollback()
            logger.warning("request.activity_failed", exc_info=True, extra={"extra_data": {"request_id": request_id}})
    finally:
        db.close()
