# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models — pure data structures, NO FastAPI dependency.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MS = timedelta(milliseconds=1)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_ms(value: datetime) -> int:
    return (ensure_utc(value) - EPOCH) // ONE_MS


def from_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransitionReason(str, Enum):
    """Why the effective assignee changed (or may change)."""

    SHIFT_CHANGE = "shift_change"
    OVERRIDE_START = "override_start"
    OVERRIDE_END = "override_end"
    SCHEDULE_UPDATE = "schedule_update"
    POLL = "poll"


REASON_TEXT: dict[TransitionReason, str] = {
    TransitionReason.SHIFT_CHANGE: "scheduled shift change",
    TransitionReason.OVERRIDE_START: "override started",
    TransitionReason.OVERRIDE_END: "override ended",
    TransitionReason.SCHEDULE_UPDATE: "schedule updated",
    TransitionReason.POLL: "scheduled refresh",
}


class Override(BaseModel):
    """A time-bounded exception over ``[start_at, end_at)``."""

    model_config = ConfigDict(frozen=True)

    id: str
    assignee_id: str
    start_at: datetime
    end_at: datetime
    created_at: datetime


class ScheduleSnapshot(BaseModel):
    """Rotation state as loaded for one scheduler iteration."""

    model_config = ConfigDict(frozen=True)

    rotation_id: str
    name: str = ""
    notification_channel: Optional[str] = None
    anchor_at: datetime
    shift_length_ms: int = Field(..., gt=0)
    members: list[str] = Field(default_factory=list)
    overrides: list[Override] = Field(default_factory=list)


class Transition(BaseModel):
    model_config = ConfigDict(frozen=True)

    instant: datetime
    reason: TransitionReason


class WakeSignal(BaseModel):
    """Out-of-band message that interrupts a scheduler's sleep."""

    model_config = ConfigDict(frozen=True)

    wake_at: Optional[datetime] = None
    deleted: bool = False
    action: Optional[str] = None
    reason: TransitionReason = TransitionReason.SCHEDULE_UPDATE


class ActorContext(BaseModel):
    """Identity supplied by the auth layer; trusted as-is."""

    model_config = ConfigDict(frozen=True)

    workspace_id: str = "default"
    actor_id: str = "system"
    role: str = "member"


class ActionResult(BaseModel):
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    persisted: bool = False
    woke_scheduler: bool = False
