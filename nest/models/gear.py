from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Gear(Base):
    """A trackable equipment asset, possibly with several identical units.

    ``available_quantity`` counts the units on the shelf; the difference to
    ``quantity`` is what is checked out, pending check-in or out of service.
    """

    __tablename__ = "gears"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False, index=True)
    category = Column(Text, nullable=True, index=True)
    description = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="Available", index=True)
    condition = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    available_quantity = Column(Integer, nullable=False, default=1)
    serial_number = Column(Text, nullable=True)
    checked_out_to = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    current_request_id = Column(Integer, ForeignKey("gear_requests.id", ondelete="SET NULL"), nullable=True)
    last_checkout_date = Column(Text, nullable=True)
    due_date = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    holder = relationship("Profile", foreign_keys=[checked_out_to], lazy="joined")

    @property
    def checked_out_units(self) -> int:
        return max(0, (self.quantity or 0) - (self.available_quantity or 0))

    @property
    def holder_name(self) -> str | None:
        return self.holder.display_name if self.holder else None
