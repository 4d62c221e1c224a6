from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class CheckinCreate(BaseModel):
    gear_id: int
    request_id: Optional[int] = None
    quantity: int = Field(default=1, ge=1)
    condition: Literal["Good", "Damaged"] = "Good"
    notes: Optional[str] = None
    damage_notes: Optional[str] = None


class CheckinGroupApprove(BaseModel):
    checkin_ids: list[int] = Field(min_length=1)


class CheckinReject(BaseModel):
    reason: str = Field(min_length=1)


class CheckinOut(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    gear_id: int
    gear_name: Optional[str] = None
    request_id: Optional[int]
    status: str
    quantity: int
    condition: str
    notes: Optional[str]
    damage_notes: Optional[str]
    checkin_date: str
    approved_by: Optional[int]
    approved_at: Optional[str]
    created_at: str

    model_config = {"from_attributes": True}
