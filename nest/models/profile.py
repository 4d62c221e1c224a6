from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base

ROLE_ADMIN = "Admin"
ROLE_USER = "User"
STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"


class Profile(Base):
    """A person who can sign in, request gear and (as Admin) manage it."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    full_name = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default=ROLE_USER, index=True)
    status = Column(Text, nullable=False, default=STATUS_ACTIVE)
    department = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def display_name(self) -> str:
        return (self.full_name or "").strip() or self.email
