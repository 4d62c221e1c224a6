"""In-process change feed for connected clients.

Committed inserts, updates and deletes are published per row as
``TableChange`` events. Subscribers register per table; ``LiveQuery`` keeps a
fetched result set fresh by re-running its fetch on every change.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

_PENDING_KEY = "nest_realtime_changes"

T = TypeVar("T")


@dataclass(frozen=True)
class TableChange:
    table: str
    event: str
    row_id: Any

    def as_dict(self) -> dict[str, Any]:
        return {"table": self.table, "event": self.event, "id": self.row_id}


Callback = Callable[[TableChange], None]


class ChangeHub:
    """Fan-out of table changes to per-table subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: Callback) -> Callable[[], None]:
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(table, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, []))

    def publish(self, change: TableChange) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(change.table, []))
        for callback in callbacks:
            try:
                callback(change)
            except Exception:
                logger.exception("realtime.callback_failed", extra={"extra_data": change.as_dict()})


hub = ChangeHub()


def subscribe(table: str, callback: Callback) -> Callable[[], None]:
    return hub.subscribe(table, callback)


class LiveQuery(Generic[T]):
    """Holds the latest result of ``fetch`` for one table.

    The rows are loaded once on construction and then fully re-fetched on each
    change to ``table``. ``close`` stops listening.
    """

    def __init__(self, table: str, fetch: Callable[[], list[T]], *, change_hub: ChangeHub | None = None) -> None:
        self.table = table
        self._fetch = fetch
        self.rows: list[T] = list(fetch())
        self._unsubscribe = (change_hub or hub).subscribe(table, self._on_change)

    def _on_change(self, change: TableChange) -> None:
        self.rows = list(self._fetch())

    def close(self) -> None:
        self._unsubscribe()

    def __enter__(self) -> "LiveQuery[T]":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _row_id(obj: Any) -> Any:
    identity = inspect(obj).identity
    if identity:
        return identity[0] if len(identity) == 1 else list(identity)
    return getattr(obj, "id", None)


def _table_name(obj: Any) -> str | None:
    return getattr(obj, "__tablename__", None)


@event.listens_for(Session, "after_flush")
def _collect_changes(session: Session, flush_context) -> None:
    pending: list[TableChange] = session.info.setdefault(_PENDING_KEY, [])
    for kind, objects in ((INSERT, session.new), (UPDATE, session.dirty), (DELETE, session.deleted)):
        for obj in objects:
            table = _table_name(obj)
            if table is None:
                continue
            if kind == UPDATE and not session.is_modified(obj, include_collections=False):
                continue
            pending.append(TableChange(table, kind, _row_id(obj)))


@event.listens_for(Session, "after_commit")
def _publish_changes(session: Session) -> None:
    changes = session.info.pop(_PENDING_KEY, [])
    for change in changes:
        hub.publish(change)


@event.listens_for(Session, "after_soft_rollback")
def _discard_changes(session: Session, previous_transaction) -> None:
    if previous_transaction.nested:
        return
    session.info.pop(_PENDING_KEY, None)
