from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class RequestLine(BaseModel):
    gear_id: int
    quantity: int = Field(default=1, ge=1)


class GearRequestCreate(BaseModel):
    user_id: Optional[int] = None
    reason: str = ""
    destination: str = ""
    expected_duration: str = ""
    team_members: list[str] = Field(default_factory=list)
    lines: list[RequestLine] = Field(min_length=1)

    @field_validator("team_members", mode="before")
    @classmethod
    def split_team_members(cls, value):
        if value in (None, ""):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class GearRequestUpdate(BaseModel):
    reason: Optional[str] = None
    destination: Optional[str] = None
    admin_notes: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = None


class ApproveRequest(BaseModel):
    request_id: int = Field(alias="requestId")

    model_config = {"populate_by_name": True}


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class RequestLineOut(BaseModel):
    gear_id: int
    gear_name: Optional[str] = None
    quantity: int

    model_config = {"from_attributes": True}


class GearRequestOut(BaseModel):
    id: int
    user_id: int
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None
    reason: Optional[str]
    destination: Optional[str]
    expected_duration: Optional[str]
    team_members: Optional[str]
    status: str
    due_date: Optional[str]
    admin_notes: Optional[str]
    approved_at: Optional[str]
    created_at: str
    updated_at: Optional[str]
    lines: list[RequestLineOut] = Field(default_factory=list)
    gear_names: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class GearRequestPage(BaseModel):
    data: list[GearRequestOut]
    total: int
    error: Optional[str] = None


class StatusHistoryOut(BaseModel):
    id: int
    request_id: int
    status: str
    changed_by: Optional[int]
    note: Optional[str]
    changed_at: str

    model_config = {"from_attributes": True}


class OverdueSweepResult(BaseModel):
    marked: int
    request_ids: list[int]
