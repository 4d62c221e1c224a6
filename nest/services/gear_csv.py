"""CSV export and upsert import of the gear inventory."""

from __future__ import annotations

import csv
import io
import logging
import re
from typing import Any, Iterable, Sequence

from sqlalchemy.orm import Session

from ..crud import gears as crud_gears
from ..models.gear import Gear

logger = logging.getLogger(__name__)

COLUMNS: Sequence[str] = (
    "id",
    "name",
    "category",
    "description",
    "status",
    "condition",
    "quantity",
    "available_quantity",
    "serial_number",
    "created_at",
)
INT_COLUMNS = frozenset({"id", "quantity", "available_quantity"})


class CsvImportError(ValueError):
    pass


_LINE_BREAK_RE = re.compile(r"\s*[\r\n]+\s*")


def _cell(value: Any) -> str:
    """Text for one cell, flattened to a single line."""

    if value is None:
        return ""
    return _LINE_BREAK_RE.sub(" ", str(value)).strip()


def export_gears(gears: Iterable[Gear]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(list(COLUMNS))
    for gear in gears:
        writer.writerow([_cell(getattr(gear, column)) for column in COLUMNS])
    return buffer.getvalue()


def _coerce(column: str, raw: str | None) -> Any:
    value = (raw or "").strip()
    if not value:
        return None
    if column in INT_COLUMNS:
        try:
            return int(value)
        except ValueError as exc:
            raise CsvImportError(f"{column} must be a whole number, got {value!r}") from exc
    return value


def parse_csv(text: str, *, coerce: bool = True) -> list[dict[str, Any]]:
    """Header-based parse. Blank lines are skipped; unknown columns dropped."""

    if not text or not text.strip():
        raise CsvImportError("The CSV file is empty")
    reader = csv.DictReader(io.StringIO(text.lstrip("﻿")))
    if not reader.fieldnames:
        raise CsvImportError("The CSV file has no header row")
    header = {name: (name or "").strip().lower() for name in reader.fieldnames}
    rows: list[dict[str, Any]] = []
    for raw in reader:
        if not any((value or "").strip() for value in raw.values() if isinstance(value, str)):
            continue
        row: dict[str, Any] = {}
        for original, column in header.items():
            if column not in COLUMNS:
                continue
            value = raw.get(original)
            row[column] = _coerce(column, value) if coerce else value
        rows.append(row)
    return rows


def import_gears(db: Session, text: str, *, actor_id: int | None = None) -> dict[str, int]:
    rows = parse_csv(text)
    if not rows:
        raise CsvImportError("The CSV file has no data rows")
    existing = crud_gears.get_gears_by_ids(db, [row["id"] for row in rows if row.get("id") is not None])
    inserted = updated = 0
    for row in rows:
        gear = existing.get(row.get("id")) if row.get("id") is not None else None
        # Blank cells keep the stored value.
        fields = {key: value for key, value in row.items() if key != "id" and value is not None}
        if gear is not None:
            crud_gears.update_gear(db, gear, fields, actor_id=actor_id)
            updated += 1
        else:
            crud_gears.create_gear(db, fields, actor_id=actor_id)
            inserted += 1
    logger.info("gear.csv_import", extra={"extra_data": {"inserted": inserted, "updated": updated}})
    return {"inserted": inserted, "updated": updated, "total": inserted + updated}
