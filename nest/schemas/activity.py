from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class ActivityOut(BaseModel):
    id: int
    user_id: Optional[int]
    user_name: Optional[str] = None
    gear_id: Optional[int]
    gear_name: Optional[str] = None
    request_id: Optional[int]
    activity_type: str
    status: Optional[str]
    notes: Optional[str]
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: str

    model_config = {"from_attributes": True}
