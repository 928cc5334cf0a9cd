# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Request / Response schemas — API contract definitions.
These are Pydantic models used ONLY at the controller (HTTP) boundary.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, RootModel

from rotation_service.models.actions import ScheduleAction


# ── Rotation Schemas ──

class RotationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Rotation name")
    shift_length: Union[str, dict[str, Any]] = Field(
        ..., description='Shift length, e.g. "1 week" or {"days": 1}'
    )
    anchor_at: Optional[datetime] = Field(
        default=None, description="Start of shift 0; defaults to today (or this week) 00:00 UTC"
    )
    members: list[str] = Field(default_factory=list, description="Assignee ids in rotation order")
    notification_channel: Optional[str] = Field(default=None, max_length=255)


class RotationResponse(BaseModel):
    id: str
    workspace_id: str
    name: str
    anchor_at: datetime
    shift_length: str
    notification_channel: Optional[str] = None
    members: list[str]
    created_at: datetime
    updated_at: datetime


class TransitionResponse(BaseModel):
    at: datetime
    reason: str


class ChangeResponse(BaseModel):
    at: datetime
    previous: Optional[str] = None
    current: Optional[str] = None
    reason: str


class ScheduleResponse(BaseModel):
    rotation_id: str
    name: str
    at: datetime
    members: list[str]
    current_assignee: Optional[str] = None
    base_assignee: Optional[str] = None
    current_override_id: Optional[str] = None
    shift_start: datetime
    shift_end: datetime
    next_transition: Optional[TransitionResponse] = None
    scheduler_running: bool
    last_change: Optional[ChangeResponse] = None


# ── Action Schemas ──

class ActionRequest(RootModel[ScheduleAction]):
    """One schedule action, discriminated on its ``type`` field."""


# ── Member Schemas ──

class MemberAddRequest(BaseModel):
    assignee_id: str = Field(..., min_length=1, max_length=255)


class MemberPositionRequest(BaseModel):
    position: int = Field(..., description="New 0-based position")


# ── Override Schemas ──

class OverrideResponse(BaseModel):
    id: str
    assignee_id: str
    start_at: datetime
    end_at: datetime
    created_at: datetime


# ── Binding Schemas ──

class BindingCreateRequest(BaseModel):
    entry_point_id: str = Field(..., min_length=1, max_length=255)


class BindingResponse(BaseModel):
    id: str
    rotation_id: str
    entry_point_id: str
    created_at: datetime
