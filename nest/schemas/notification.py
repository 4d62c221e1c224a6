from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class NotificationOut(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    is_read: bool
    link: Optional[str]
    meta: dict[str, Any] = Field(default_factory=dict, serialization_alias="metadata")
    created_at: str

    model_config = {"from_attributes": True}


class BroadcastCreate(BaseModel):
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: str = "announcement"
    user_ids: Optional[list[int]] = None
    link: Optional[str] = None


class PushEnqueue(BaseModel):
    user_id: int
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class PushWorkerResult(BaseModel):
    processed: int
    sent: int
    failed: int
