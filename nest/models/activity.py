from __future__ import annotations

import json
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base

REQUEST = "Request"
CHECKOUT = "Checkout"
CHECKIN = "Check-in"
MAINTENANCE = "Maintenance"
STATUS_CHANGE = "Status Change"
APPROVAL = "Approval"
REJECTION = "Rejection"


class ActivityLog(Base):
    """Append-only audit trail of what happened to gear and requests."""

    __tablename__ = "gear_activity_log"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    gear_id = Column(Integer, ForeignKey("gears.id", ondelete="SET NULL"), nullable=True, index=True)
    request_id = Column(Integer, ForeignKey("gear_requests.id", ondelete="SET NULL"), nullable=True, index=True)
    activity_type = Column(Text, nullable=False, index=True)
    status = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    details_blob = Column("details", Text, nullable=True)
    created_at = Column(Text, nullable=False, index=True)

    user = relationship("Profile", lazy="joined")
    gear = relationship("Gear", lazy="joined")

    @property
    def details(self) -> dict[str, Any]:
        if not self.details_blob:
            return {}
        try:
            value = json.loads(self.details_blob)
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}

    @property
    def user_name(self) -> str | None:
        return self.user.display_name if self.user else None

    @property
    def gear_name(self) -> str | None:
        return self.gear.name if self.gear else None
