from __future__ import annotations

from datetime import datetime, timedelta, timezone

# Durations offered by the request form.
DURATION_DELTAS: dict[str, timedelta] = {
    "24hours": timedelta(hours=24),
    "48hours": timedelta(hours=48),
    "72hours": timedelta(hours=72),
    "1 week": timedelta(days=7),
    "2 weeks": timedelta(days=14),
    "Month": timedelta(days=30),
    "1year": timedelta(days=365),
}
DEFAULT_DURATION = timedelta(days=7)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Serialise as ISO-8601 UTC with a trailing ``Z``, second precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_iso(ts: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp string.
    Naive values are taken as UTC. Returns None if ts is falsy or unparseable.
    """
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def calculate_due_date(duration: str | None, start: datetime | None = None) -> str:
    """Due date for a request of the given duration, counted from ``start``.

    Unknown or empty durations fall back to one week.
    """
    base = start or utc_now()
    delta = DURATION_DELTAS.get((duration or "").strip(), DEFAULT_DURATION)
    return to_iso(base + delta)


def is_past(ts: str | None, now: datetime | None = None) -> bool:
    dt = parse_iso(ts)
    if dt is None:
        return False
    return dt < (now or utc_now())
