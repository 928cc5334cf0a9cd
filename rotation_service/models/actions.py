# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Schedule-affecting actions accepted by the mutation executor.
One model per action, discriminated on ``type``.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from rotation_service.core.errors import InvalidOverrideRange
from rotation_service.models.domain import ensure_utc


class _Action(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def _normalise_instants(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v

    def validate_action(self) -> None:
        """Hook for checks that must pass before anything is written."""


class _RangedAction(_Action):
    start_at: datetime
    end_at: datetime

    def validate_action(self) -> None:
        if self.start_at >= self.end_at:
            raise InvalidOverrideRange(self.start_at, self.end_at)


class UpdateAnchor(_Action):
    type: Literal["update_anchor"] = "update_anchor"
    anchor_at: datetime
    preserve_current_assignee: bool = False


class UpdateShiftLength(_Action):
    type: Literal["update_shift_length"] = "update_shift_length"
    shift_length: Union[str, dict[str, Any]]
    preserve_current_assignee: bool = False


class CreateOverride(_RangedAction):
    type: Literal["create_override"] = "create_override"
    assignee_id: str = Field(..., min_length=1)


class SetOverride(_Action):
    """Hand the current shift to ``assignee_id``."""

    type: Literal["set_override"] = "set_override"
    assignee_id: str = Field(..., min_length=1)


class UpdateOverride(_RangedAction):
    type: Literal["update_override"] = "update_override"
    override_id: str = Field(..., min_length=1)
    assignee_id: str = Field(..., min_length=1)


class ClearOverride(_Action):
    type: Literal["clear_override"] = "clear_override"
    override_id: str = Field(..., min_length=1)


class DeleteRotation(_Action):
    type: Literal["delete"] = "delete"


class RenameRotation(_Action):
    type: Literal["rename"] = "rename"
    name: str = Field(..., min_length=1, max_length=255)


class SetNotificationChannel(_Action):
    type: Literal["set_notification_channel"] = "set_notification_channel"
    channel: Optional[str] = Field(default=None, max_length=255)


class AddMember(_Action):
    type: Literal["add_member"] = "add_member"
    assignee_id: str = Field(..., min_length=1, max_length=255)


class RemoveMember(_Action):
    type: Literal["remove_member"] = "remove_member"
    assignee_id: str = Field(..., min_length=1)
    clear_active_override: bool = True


class ReorderMember(_Action):
    type: Literal["reorder_member"] = "reorder_member"
    assignee_id: str = Field(..., min_length=1)
    new_position: int


ScheduleAction = Annotated[
    Union[
        UpdateAnchor,
        UpdateShiftLength,
        CreateOverride,
        SetOverride,
        UpdateOverride,
        ClearOverride,
        DeleteRotation,
        RenameRotation,
        SetNotificationChannel,
        AddMember,
        RemoveMember,
        ReorderMember,
    ],
    Field(discriminator="type"),
]

# Actions that change who is on the roster rather than when shifts turn over
ROSTER_ACTIONS: frozenset[str] = frozenset({"add_member", "remove_member", "reorder_member"})
