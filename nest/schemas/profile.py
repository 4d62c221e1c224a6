from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

UserAction = Literal["suspend", "activate", "makeAdmin", "makeUser"]


class ProfileOut(BaseModel):
    id: int
    email: str
    full_name: Optional[str]
    role: str
    status: str
    department: Optional[str]
    phone: Optional[str]
    created_at: str
    updated_at: Optional[str]

    model_config = {"from_attributes": True}


class ProfileCreate(BaseModel):
    email: str = Field(min_length=3)
    full_name: Optional[str] = None
    password: str = Field(min_length=8)
    role: Literal["Admin", "User"] = "User"
    department: Optional[str] = None
    phone: Optional[str] = None


class ProfileSelfUpdate(BaseModel):
    full_name: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None


class UserActionRequest(BaseModel):
    action: UserAction
