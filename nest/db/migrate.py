"""Small additive migrations for existing SQLite databases."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Engine

# Only ADD columns and indexes here. ``create_all`` builds fresh schemas; these
# steps bring databases created by older releases up to date.

_ADDED_COLUMNS: dict[str, dict[str, str]] = {
    "gears": {
        "condition": "TEXT",
        "checked_out_to": "INTEGER",
        "current_request_id": "INTEGER",
        "last_checkout_date": "TEXT",
        "due_date": "TEXT",
        "updated_at": "TEXT",
        "available_quantity": "INTEGER DEFAULT 1 NOT NULL",
    },
    "gear_requests": {
        "team_members": "TEXT",
        "due_date": "TEXT",
        "admin_notes": "TEXT",
        "approved_at": "TEXT",
        "updated_at": "TEXT",
    },
    "checkins": {
        "request_id": "INTEGER",
        "quantity": "INTEGER DEFAULT 1 NOT NULL",
        "damage_notes": "TEXT",
        "approved_by": "INTEGER",
        "approved_at": "TEXT",
        "updated_at": "TEXT",
    },
    "notifications": {
        "type": "TEXT DEFAULT 'system' NOT NULL",
        "link": "TEXT",
        "metadata": "TEXT",
        "updated_at": "TEXT",
    },
    "gear_maintenance": {
        "maintenance_type": "TEXT DEFAULT 'Maintenance' NOT NULL",
    },
}

_INDEXES: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("gears", "idx_gears_status_due_date", ("status", "due_date")),
    ("gears", "idx_gears_condition", ("condition",)),
    ("gear_requests", "idx_gear_requests_due_date", ("due_date",)),
    ("checkins", "idx_checkins_checkin_date", ("checkin_date",)),
    ("gear_maintenance", "idx_gear_maintenance_performed_at", ("performed_at",)),
)


def _column_names(engine: Engine, table: str) -> set[str]:
    with engine.connect() as conn:
        return {record["name"] for record in conn.execute(text(f"PRAGMA table_info({table})")).mappings().all()}


def _add_column_sqlite(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(engine: Engine, table: str, name: str, cols: Iterable[str]) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({', '.join(cols)})"))


def run_migrations(engine: Engine) -> None:
    """Bring an SQLite schema up to date. Safe to run on every start."""

    if engine.dialect.name != "sqlite":
        return

    for table, needed in _ADDED_COLUMNS.items():
        existing = _column_names(engine, table)
        if not existing:
            continue
        for name, dtype in needed.items():
            if name not in existing:
                _add_column_sqlite(engine, table, f"{name} {dtype}")

    for table, name, cols in _INDEXES:
        if _column_names(engine, table) >= set(cols):
            _create_index_if_not_exists(engine, table, name, cols)

    # Rows written before availability was tracked start fully available.
    with engine.begin() as conn:
        conn.execute(
            text(
                "UPDATE gears SET available_quantity = quantity "
                "WHERE available_quantity IS NULL OR available_quantity > quantity"
            )
        )
