from __future__ import annotations

import json
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, Text

from ..db.session import Base

PUSH_PENDING = "pending"
PUSH_SENT = "sent"
PUSH_FAILED = "failed"


def _load_json(blob: str | None) -> dict[str, Any]:
    if not blob:
        return {}
    try:
        value = json.loads(blob)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False, default="system")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Integer, nullable=False, default=0)
    link = Column(Text, nullable=True)
    metadata_blob = Column("metadata", Text, nullable=True)
    created_at = Column(Text, nullable=False, index=True)
    updated_at = Column(Text, nullable=True)

    @property
    def meta(self) -> dict[str, Any]:
        return _load_json(self.metadata_blob)

    @meta.setter
    def meta(self, value: dict[str, Any] | None) -> None:
        self.metadata_blob = json.dumps(value) if value else None


class PushNotificationQueue(Base):
    __tablename__ = "push_notification_queue"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    data_blob = Column("data", Text, nullable=True)
    status = Column(Text, nullable=False, default=PUSH_PENDING, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    processed_at = Column(Text, nullable=True)

    @property
    def data(self) -> dict[str, Any]:
        return _load_json(self.data_blob)
