from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text

from ..db.session import Base


class GearMaintenance(Base):
    __tablename__ = "gear_maintenance"

    id = Column(Integer, primary_key=True, index=True)
    gear_id = Column(Integer, ForeignKey("gears.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Text, nullable=False)
    maintenance_type = Column(Text, nullable=False, default="Maintenance")
    description = Column(Text, nullable=True)
    performed_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    performed_at = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)
