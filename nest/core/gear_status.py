"""Canonical gear status values and the helpers that normalise them.

Gear rows arrive from CSV imports, admin edits and older clients with many
spellings of the same status ("checked-out", "CheckedOut", ...). Every status
comparison in the service goes through ``normalize_gear_status`` first.
"""

from __future__ import annotations

import re

__all__ = [
    "AVAILABLE",
    "CHECKED_OUT",
    "PARTIALLY_CHECKED_OUT",
    "PARTIALLY_AVAILABLE",
    "UNDER_REPAIR",
    "NEEDS_REPAIR",
    "MAINTENANCE",
    "RETIRED",
    "LOST",
    "PENDING_CHECKIN",
    "NEW",
    "DAMAGED",
    "CANONICAL_STATUSES",
    "REPAIR_STATUSES",
    "OUT_OF_SERVICE_STATUSES",
    "normalize_gear_status",
    "is_checked_out",
    "is_available",
    "needs_maintenance",
    "status_for_availability",
]

AVAILABLE = "Available"
CHECKED_OUT = "Checked Out"
PARTIALLY_CHECKED_OUT = "Partially Checked Out"
PARTIALLY_AVAILABLE = "Partially Available"
UNDER_REPAIR = "Under Repair"
NEEDS_REPAIR = "Needs Repair"
MAINTENANCE = "Maintenance"
RETIRED = "Retired"
LOST = "Lost"
PENDING_CHECKIN = "Pending Check-in"
NEW = "New"
DAMAGED = "Damaged"

CANONICAL_STATUSES: tuple[str, ...] = (
    AVAILABLE,
    CHECKED_OUT,
    PARTIALLY_CHECKED_OUT,
    PARTIALLY_AVAILABLE,
    UNDER_REPAIR,
    NEEDS_REPAIR,
    MAINTENANCE,
    RETIRED,
    LOST,
    PENDING_CHECKIN,
    NEW,
    DAMAGED,
)

REPAIR_STATUSES = frozenset({UNDER_REPAIR, NEEDS_REPAIR, MAINTENANCE, DAMAGED})
OUT_OF_SERVICE_STATUSES = REPAIR_STATUSES | {RETIRED, LOST}

_SEPARATORS_RE = re.compile(r"[\s_\-]+")


def _squash(value: str) -> str:
    """Lower-case and drop spaces, hyphens and underscores."""

    return _SEPARATORS_RE.sub("", value).lower()


_BY_SQUASHED = {_squash(status): status for status in CANONICAL_STATUSES}
# "Pending Checkin" and friends squash to the same key as "Pending Check-in".


def normalize_gear_status(raw: str | None) -> str:
    """Return the canonical spelling of ``raw``.

    Empty values count as Available. Unknown statuses are returned trimmed so
    free-text values entered by admins are preserved.
    """

    if raw is None:
        return AVAILABLE
    trimmed = raw.strip()
    if not trimmed:
        return AVAILABLE
    return _BY_SQUASHED.get(_squash(trimmed), trimmed)


def is_checked_out(status: str | None) -> bool:
    return normalize_gear_status(status) in (CHECKED_OUT, PARTIALLY_CHECKED_OUT)


def is_available(status: str | None) -> bool:
    return normalize_gear_status(status) in (AVAILABLE, PARTIALLY_AVAILABLE)


def needs_maintenance(status: str | None) -> bool:
    return normalize_gear_status(status) in (UNDER_REPAIR, NEEDS_REPAIR, MAINTENANCE)


def status_for_availability(available: int, quantity: int) -> str:
    """Status implied by how many of ``quantity`` units are on the shelf."""

    if available <= 0:
        return CHECKED_OUT
    if available < quantity:
        return PARTIALLY_AVAILABLE
    return AVAILABLE
