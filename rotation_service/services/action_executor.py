# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Mutation executor — applies schedule-affecting actions.

Each action is validated, written in its own transaction, and compared against
the rotation's next transition before the write. The scheduler is woken only
when that comparison says its current sleep is wrong.
"""

from datetime import datetime
from typing import Any, Callable, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from rotation_service.core.errors import (
    RotationError,
    RotationNotFound,
    ValidationError,
    WakeDeliveryError,
)
from rotation_service.core.logging import get_logger
from rotation_service.core.retry import retry_async
from rotation_service.metrics.prometheus import ACTIONS_TOTAL
from rotation_service.models.actions import (
    ROSTER_ACTIONS,
    AddMember,
    ClearOverride,
    CreateOverride,
    DeleteRotation,
    RemoveMember,
    RenameRotation,
    ReorderMember,
    ScheduleAction,
    SetNotificationChannel,
    SetOverride,
    UpdateAnchor,
    UpdateOverride,
    UpdateShiftLength,
)
from rotation_service.models.domain import (
    ActionResult,
    ActorContext,
    ScheduleSnapshot,
    TransitionReason,
    WakeSignal,
    utcnow,
)
from rotation_service.repositories.history_repository import HistoryRepository
from rotation_service.repositories.rotation_repository import RotationRepository
from rotation_service.services.interval import normalize_interval
from rotation_service.services.rotation import effective_assignee, next_transition
from rotation_service.services.wake_bus import WakeBus

logger = get_logger(__name__)

ACTION_REASON: dict[str, TransitionReason] = {
    "create_override": TransitionReason.OVERRIDE_START,
    "set_override": TransitionReason.OVERRIDE_START,
    "clear_override": TransitionReason.OVERRIDE_END,
}

# Actions that can change who is on call right now without moving the next
# transition instant
ASSIGNEE_WAKE_ACTIONS: frozenset[str] = ROSTER_ACTIONS | {"set_override"}

_action_adapter = TypeAdapter(ScheduleAction)


def parse_action(raw: Union[dict[str, Any], ScheduleAction]) -> ScheduleAction:
    if isinstance(raw, dict):
        try:
            return _action_adapter.validate_python(raw)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid action payload", {"errors": [e["msg"] for e in exc.errors()]}
            ) from exc
    return raw


def _instant(snapshot: ScheduleSnapshot, at: datetime) -> Optional[datetime]:
    transition = next_transition(snapshot, at)
    return transition.instant if transition else None


class MutationExecutor:
    """Runs one action against one rotation and signals its scheduler."""

    def __init__(
        self,
        repo: RotationRepository,
        wake_bus: WakeBus,
        history_repo: HistoryRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repo
        self._bus = wake_bus
        self._history = history_repo
        self._clock = clock

    # ── Entry points ──

    async def apply_action(
        self,
        rotation_id: str,
        action: Union[dict[str, Any], ScheduleAction],
        context: Optional[ActorContext] = None,
    ) -> ActionResult:
        """Like ``execute`` but reports failures in the result instead of raising."""
        action_type = action.get("type") if isinstance(action, dict) else action.type
        try:
            result_id = await self.execute(rotation_id, action, context)
        except RotationError as exc:
            ACTIONS_TOTAL.labels(action=str(action_type), outcome=exc.code).inc()
            return ActionResult(
                success=False,
                error=exc.message,
                error_type=exc.code,
                persisted=getattr(exc, "persisted", False),
            )
        return ActionResult(success=True, id=result_id)

    async def execute(
        self,
        rotation_id: str,
        action: Union[dict[str, Any], ScheduleAction],
        context: Optional[ActorContext] = None,
    ) -> str:
        """Apply ``action``; returns the created/affected override id or the rotation id.

        Raises ValidationError / NotFoundError / ConflictError before anything
        is written, and WakeDeliveryError(persisted=True) after the write when
        the scheduler could not be signalled.
        """
        context = context or ActorContext()
        action = parse_action(action)
        action.validate_action()
        shift_length = None
        if isinstance(action, UpdateShiftLength):
            shift_length, _ = normalize_interval(action.shift_length)

        if self._repo.get_rotation(rotation_id, context.workspace_id) is None:
            raise RotationNotFound(rotation_id)

        now = self._clock()
        before = self._repo.load_snapshot(rotation_id, now)
        if before is None:
            raise RotationNotFound(rotation_id)

        if isinstance(action, DeleteRotation):
            return await self._delete(rotation_id, context)

        result_id = self._write(rotation_id, action, now, shift_length)

        after = self._repo.load_snapshot(rotation_id, now)
        if after is None:
            raise RotationNotFound(rotation_id)

        wake_at = _instant(after, now)
        should_wake = _instant(before, now) != wake_at
        if action.type in ASSIGNEE_WAKE_ACTIONS:
            should_wake = should_wake or (
                effective_assignee(before, now) != effective_assignee(after, now)
            )

        self._history.record_event(
            "action_applied",
            rotation_id,
            {"action": action.type, "actor_id": context.actor_id, "woke_scheduler": should_wake},
        )
        ACTIONS_TOTAL.labels(action=action.type, outcome="applied").inc()
        logger.info(
            "Action applied: wake=%s", should_wake,
            extra={"rotation_id": rotation_id, "action": action.type},
        )

        if should_wake:
            await self._signal(
                rotation_id,
                WakeSignal(
                    wake_at=wake_at,
                    action=action.type,
                    reason=ACTION_REASON.get(action.type, TransitionReason.SCHEDULE_UPDATE),
                ),
            )
        return result_id

    # ── Internals ──

    def _write(self, rotation_id: str, action: ScheduleAction, now: datetime,
               shift_length: Optional[str]) -> str:
        repo = self._repo
        preserve_at = now if getattr(action, "preserve_current_assignee", False) else None

        if isinstance(action, UpdateAnchor):
            repo.update_anchor(rotation_id, action.anchor_at, preserve_at=preserve_at)
        elif isinstance(action, UpdateShiftLength):
            repo.update_shift_length(rotation_id, shift_length, preserve_at=preserve_at)
        elif isinstance(action, CreateOverride):
            return repo.create_override(
                rotation_id, action.assignee_id, action.start_at, action.end_at
            )
        elif isinstance(action, SetOverride):
            return repo.set_override(rotation_id, action.assignee_id, now)
        elif isinstance(action, UpdateOverride):
            repo.update_override(
                rotation_id, action.override_id, action.assignee_id,
                action.start_at, action.end_at,
            )
            return action.override_id
        elif isinstance(action, ClearOverride):
            repo.clear_override(rotation_id, action.override_id)
            return action.override_id
        elif isinstance(action, RenameRotation):
            repo.rename_rotation(rotation_id, action.name)
        elif isinstance(action, SetNotificationChannel):
            repo.set_notification_channel(rotation_id, action.channel)
        elif isinstance(action, AddMember):
            repo.add_member(rotation_id, action.assignee_id)
        elif isinstance(action, RemoveMember):
            repo.remove_member(
                rotation_id, action.assignee_id,
                clear_override_at=now if action.clear_active_override else None,
            )
        elif isinstance(action, ReorderMember):
            repo.move_member(rotation_id, action.assignee_id, action.new_position)
        return rotation_id

    async def _delete(self, rotation_id: str, context: ActorContext) -> str:
        self._repo.mark_deleted(rotation_id)
        self._history.record_event(
            "rotation_deleted", rotation_id, {"actor_id": context.actor_id}
        )
        ACTIONS_TOTAL.labels(action="delete", outcome="applied").inc()
        logger.info("Rotation deleted", extra={"rotation_id": rotation_id, "action": "delete"})
        await self._signal(rotation_id, WakeSignal(deleted=True, action="delete"))
        return rotation_id

    async def _signal(self, rotation_id: str, signal: WakeSignal) -> bool:
        async def deliver() -> bool:
            return self._bus.publish(rotation_id, signal)

        try:
            return await retry_async(
                deliver, label="wake_signal", retry_on=(WakeDeliveryError,)
            )
        except WakeDeliveryError as exc:
            raise WakeDeliveryError(
                f"Change persisted but scheduler was not signalled: {exc.message}",
                persisted=True,
                details={"rotation_id": rotation_id, "action": signal.action},
            ) from exc
