"""Turning scanned QR payloads back into gear ids.

The camera decoding happens on the client. What reaches the server is the raw
text printed in the label, and labels have been printed in a few formats over
time: the bare id, ``gear:<id>``, or a link to the gear page.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

__all__ = ["extract_gear_id", "gear_qr_payload"]

_PREFIX_RE = re.compile(r"^(?:gear|nest)[:/#]\s*", re.IGNORECASE)
_DIGITS_RE = re.compile(r"^\d+$")
_QUERY_KEYS = ("gear", "gear_id", "id")


def _strip_and_collapse(value: str) -> str:
    value = value.strip()
    return re.sub(r"\s+", "", value)


def _from_url(value: str) -> str | None:
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return None
    query = parse_qs(parts.query)
    for key in _QUERY_KEYS:
        for candidate in query.get(key, []):
            if _DIGITS_RE.match(candidate.strip()):
                return candidate.strip()
    segments = [segment for segment in parts.path.split("/") if segment]
    for segment in reversed(segments):
        if _DIGITS_RE.match(segment):
            return segment
    return None


def extract_gear_id(raw: str | None) -> int | None:
    """Return the gear id encoded in a scanned payload, or ``None``."""

    if raw is None:
        return None
    cleaned = _strip_and_collapse(raw)
    if not cleaned:
        return None

    from_url = _from_url(cleaned)
    if from_url:
        return int(from_url)

    cleaned = _PREFIX_RE.sub("", cleaned)
    if _DIGITS_RE.match(cleaned):
        return int(cleaned)
    return None


def gear_qr_payload(gear_id: int) -> str:
    """The text encoded into freshly printed labels."""

    return f"gear:{gear_id}"
