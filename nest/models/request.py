from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base

PENDING = "Pending"
APPROVED = "Approved"
REJECTED = "Rejected"
OVERDUE = "Overdue"
COMPLETED = "Completed"
CANCELLED = "Cancelled"


class GearRequest(Base):
    __tablename__ = "gear_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    destination = Column(Text, nullable=True)
    expected_duration = Column(Text, nullable=True)
    team_members = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=PENDING, index=True)
    due_date = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    approved_at = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False, index=True)
    updated_at = Column(Text, nullable=True)

    requester = relationship("Profile", lazy="joined")
    lines = relationship(
        "GearRequestGear",
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="GearRequestGear.id",
    )

    @property
    def requester_name(self) -> str | None:
        return self.requester.full_name if self.requester else None

    @property
    def requester_email(self) -> str | None:
        return self.requester.email if self.requester else None

    @property
    def gear_names(self) -> list[str]:
        return [line.gear.name.strip() for line in self.lines if line.gear and (line.gear.name or "").strip()]

    @property
    def total_quantity(self) -> int:
        return sum(max(1, line.quantity or 1) for line in self.lines)


class GearRequestGear(Base):
    """One requested line: ``quantity`` units of a gear on a request."""

    __tablename__ = "gear_request_gears"

    id = Column(Integer, primary_key=True, index=True)
    gear_request_id = Column(
        Integer, ForeignKey("gear_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    gear_id = Column(Integer, ForeignKey("gears.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    request = relationship("GearRequest", back_populates="lines")
    gear = relationship("Gear", lazy="joined")

    @property
    def gear_name(self) -> str | None:
        return self.gear.name if self.gear else None


class RequestStatusHistory(Base):
    __tablename__ = "request_status_history"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("gear_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False)
    changed_by = Column(Integer, nullable=True)
    note = Column(Text, nullable=True)
    changed_at = Column(Text, nullable=False)
