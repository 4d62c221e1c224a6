from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base

PENDING_APPROVAL = "Pending Admin Approval"
COMPLETED = "Completed"
REJECTED = "Rejected"

CONDITION_GOOD = "Good"
CONDITION_DAMAGED = "Damaged"


class Checkin(Base):
    """A return of previously checked-out units, awaiting or past admin review."""

    __tablename__ = "checkins"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    gear_id = Column(Integer, ForeignKey("gears.id", ondelete="CASCADE"), nullable=False, index=True)
    request_id = Column(Integer, ForeignKey("gear_requests.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(Text, nullable=False, default=PENDING_APPROVAL, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    condition = Column(Text, nullable=False, default=CONDITION_GOOD)
    notes = Column(Text, nullable=True)
    damage_notes = Column(Text, nullable=True)
    checkin_date = Column(Text, nullable=False)
    approved_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    gear = relationship("Gear", lazy="joined")
    user = relationship("Profile", foreign_keys=[user_id], lazy="joined")

    @property
    def gear_name(self) -> str | None:
        return self.gear.name if self.gear else None

    @property
    def user_name(self) -> str | None:
        return self.user.display_name if self.user else None
