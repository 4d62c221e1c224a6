"""Transactional email through the Resend HTTP API.

Bodies are Jinja2 templates under ``templates/email``. Sending is best effort:
a missing API key skips the call, and any failure is logged and reported as
``False`` rather than raised.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Iterable

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..core.config import settings

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SEC = 10.0


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(settings.templates_dir)),
        autoescape=select_autoescape(["html"]),
    )


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=SEND_TIMEOUT_SEC)


def render(template: str, subject: str, **context: Any) -> str:
    context.setdefault("app_name", settings.APP_NAME)
    context.setdefault("site_url", settings.SITE_URL.rstrip("/"))
    return _environment().get_template(f"email/{template}").render(subject=subject, **context)


def send_email(to: str | Iterable[str], subject: str, template: str, **context: Any) -> bool:
    recipients = [to] if isinstance(to, str) else [address for address in to if address]
    if not recipients:
        logger.info("email.skipped", extra={"extra_data": {"reason": "no_recipient", "subject": subject}})
        return False
    if not settings.RESEND_API_KEY:
        logger.info(
            "email.skipped",
            extra={"extra_data": {"reason": "no_api_key", "subject": subject, "to": recipients}},
        )
        return False

    html = render(template, subject, **context)
    payload = {"from": settings.RESEND_FROM, "to": recipients, "subject": subject, "html": html}
    try:
        with _http_client() as client:
            response = client.post(
                settings.RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning(
            "email.failed",
            extra={"extra_data": {"subject": subject, "to": recipients, "error": str(exc)}},
        )
        return False
    logger.info("email.sent", extra={"extra_data": {"subject": subject, "to": recipients}})
    return True


def send_request_received(to: str, *, user_name: str | None, lines: list[dict[str, Any]], **details: Any) -> bool:
    return send_email(
        to,
        "Equipment Request Received - Under Review",
        "request_received.html",
        user_name=user_name,
        lines=lines,
        **details,
    )


def send_request_to_admins(to: list[str], *, user_name: str | None, user_email: str | None, lines: list[dict[str, Any]], **details: Any) -> bool:
    return send_email(
        to,
        f"New gear request from {user_name or user_email or 'a user'}",
        "request_admin.html",
        user_name=user_name,
        user_email=user_email,
        lines=lines,
        **details,
    )


def send_request_approved(to: str, *, user_name: str | None, gear_names: list[str], due_date: str | None) -> bool:
    return send_email(
        to,
        "Your Gear Request Has Been Approved - Ready for Pickup!",
        "request_approved.html",
        user_name=user_name,
        gear_names=gear_names,
        due_date=due_date,
    )


def send_request_rejected(to: str, *, user_name: str | None, gear_names: list[str], reason: str | None) -> bool:
    return send_email(
        to,
        "Gear Request Update - Status Changed",
        "request_rejected.html",
        user_name=user_name,
        gear_names=gear_names,
        reason=reason,
    )


def send_checkin_approved(to: str, *, user_name: str | None, gear_name: str | None, quantity: int, condition: str | None) -> bool:
    return send_email(
        to,
        "Equipment Check-in Approved - Thank You!",
        "checkin_approved.html",
        user_name=user_name,
        gear_name=gear_name,
        quantity=quantity,
        condition=condition,
    )


def send_checkin_rejected(to: str, *, user_name: str | None, gear_name: str | None, reason: str) -> bool:
    return send_email(
        to,
        "Equipment Check-in Update - Action Required",
        "checkin_rejected.html",
        user_name=user_name,
        gear_name=gear_name,
        reason=reason,
    )


def send_overdue_reminder(to: str, *, user_name: str | None, gear_names: list[str], due_date: str | None, overdue_days: int) -> bool:
    suffix = "s" if overdue_days != 1 else ""
    return send_email(
        to,
        f"Equipment Overdue - {overdue_days} Day{suffix} Late",
        "overdue_reminder.html",
        user_name=user_name,
        gear_names=gear_names,
        due_date=due_date,
        overdue_days=overdue_days,
    )


def send_welcome(to: str, *, user_name: str | None) -> bool:
    return send_email(to, "Welcome to Nest by Eden Oasis", "welcome.html", user_name=user_name)
