# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Rotation management — the operations exposed over HTTP.
Coordinates the repository, mutation executor and scheduler supervisor with
metrics and history.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from rotation_service.core.errors import InvalidOverrideRange, RotationNotFound, SchedulerStartError
from rotation_service.core.logging import get_logger
from rotation_service.metrics.prometheus import ROTATIONS_CREATED
from rotation_service.models.actions import AddMember, DeleteRotation, RemoveMember, ReorderMember
from rotation_service.models.domain import (
    ActionResult,
    ActorContext,
    ensure_utc,
    utcnow,
)
from rotation_service.repositories.history_repository import HistoryRepository
from rotation_service.repositories.rotation_repository import RotationRepository
from rotation_service.services.action_executor import MutationExecutor
from rotation_service.services.interval import MS_PER_WEEK, normalize_interval
from rotation_service.services.rotation import (
    base_assignee,
    current_override,
    effective_assignee,
    next_transition,
    shift_bounds,
)
from rotation_service.services.scheduler import SchedulerSupervisor

logger = get_logger(__name__)


def default_anchor(shift_length_ms: int, now: datetime) -> datetime:
    """Midnight UTC today, or Monday midnight UTC for whole-week shifts."""
    day_start = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    if shift_length_ms % MS_PER_WEEK == 0:
        return day_start - timedelta(days=day_start.weekday())
    return day_start


class ScheduleService:
    """Business logic for rotation schedules."""

    def __init__(
        self,
        repo: RotationRepository,
        executor: MutationExecutor,
        supervisor: SchedulerSupervisor,
        history_repo: HistoryRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repo
        self._executor = executor
        self._supervisor = supervisor
        self._history = history_repo
        self._clock = clock

    # ── Commands ──

    def create_rotation(
        self,
        context: ActorContext,
        name: str,
        shift_length: Union[str, dict[str, Any]],
        anchor_at: Optional[datetime] = None,
        members: Optional[list[str]] = None,
        notification_channel: Optional[str] = None,
    ) -> dict[str, Any]:
        """Persist a rotation and start its scheduler.

        Raises InvalidInterval for a bad shift length. If the scheduler cannot
        be started the rotation is removed again and SchedulerStartError raised.
        """
        shift_text, shift_ms = normalize_interval(shift_length)
        anchor = ensure_utc(anchor_at) if anchor_at else default_anchor(shift_ms, self._clock())

        rotation = self._repo.create_rotation(
            workspace_id=context.workspace_id,
            name=name,
            anchor_at=anchor,
            shift_length=shift_text,
            members=members,
            notification_channel=notification_channel,
        )
        try:
            self._supervisor.start(rotation["id"])
        except SchedulerStartError:
            logger.error(
                "Scheduler start failed, rolling back rotation",
                extra={"rotation_id": rotation["id"]},
            )
            self._repo.purge_rotation(rotation["id"])
            raise

        ROTATIONS_CREATED.inc()
        self._history.record_event(
            "rotation_created",
            rotation["id"],
            {
                "name": name,
                "members_count": len(rotation["members"]),
                "shift_length": shift_text,
                "actor_id": context.actor_id,
            },
        )
        logger.info(
            "Rotation created: name=%s, members=%d", name, len(rotation["members"]),
            extra={"rotation_id": rotation["id"]},
        )
        return rotation

    async def apply_action(
        self, context: ActorContext, rotation_id: str, action: Any
    ) -> ActionResult:
        return await self._executor.apply_action(rotation_id, action, context)

    async def add_member(self, context: ActorContext, rotation_id: str,
                         assignee_id: str) -> dict[str, Any]:
        await self._executor.execute(rotation_id, AddMember(assignee_id=assignee_id), context)
        return self.get_rotation(context, rotation_id)

    async def remove_member(self, context: ActorContext, rotation_id: str, assignee_id: str,
                            clear_active_override: bool = True) -> dict[str, Any]:
        await self._executor.execute(
            rotation_id,
            RemoveMember(assignee_id=assignee_id, clear_active_override=clear_active_override),
            context,
        )
        return self.get_rotation(context, rotation_id)

    async def move_member(self, context: ActorContext, rotation_id: str,
                          assignee_id: str, position: int) -> dict[str, Any]:
        await self._executor.execute(
            rotation_id,
            ReorderMember(assignee_id=assignee_id, new_position=position),
            context,
        )
        return self.get_rotation(context, rotation_id)

    async def delete_rotation(self, context: ActorContext, rotation_id: str) -> dict[str, str]:
        await self._executor.execute(rotation_id, DeleteRotation(), context)
        return {"status": "deleted", "rotation_id": rotation_id}

    def add_binding(self, context: ActorContext, rotation_id: str,
                    entry_point_id: str) -> dict[str, Any]:
        self.get_rotation(context, rotation_id)
        return self._repo.add_binding(rotation_id, entry_point_id)

    def remove_binding(self, context: ActorContext, rotation_id: str,
                       entry_point_id: str) -> dict[str, str]:
        self.get_rotation(context, rotation_id)
        self._repo.remove_binding(rotation_id, entry_point_id)
        return {"status": "unbound", "rotation_id": rotation_id, "entry_point_id": entry_point_id}

    # ── Queries ──

    def list_rotations(self, context: ActorContext) -> list[dict[str, Any]]:
        return self._repo.list_rotations(context.workspace_id)

    def get_rotation(self, context: ActorContext, rotation_id: str) -> dict[str, Any]:
        rotation = self._repo.get_rotation(rotation_id, context.workspace_id)
        if rotation is None:
            raise RotationNotFound(rotation_id)
        return rotation

    def get_schedule(self, context: ActorContext, rotation_id: str,
                     at: Optional[datetime] = None) -> dict[str, Any]:
        """Who is on call at ``at`` (default now) and when that next changes."""
        self.get_rotation(context, rotation_id)
        at = ensure_utc(at) if at else self._clock()
        snapshot = self._repo.load_snapshot(rotation_id, at)
        if snapshot is None:
            raise RotationNotFound(rotation_id)

        override = current_override(snapshot, at) if snapshot.members else None
        shift_start, shift_end = shift_bounds(snapshot, at)
        transition = next_transition(snapshot, at)
        return {
            "rotation_id": rotation_id,
            "name": snapshot.name,
            "at": at,
            "members": snapshot.members,
            "current_assignee": effective_assignee(snapshot, at),
            "base_assignee": base_assignee(snapshot, at),
            "current_override_id": override.id if override else None,
            "shift_start": shift_start,
            "shift_end": shift_end,
            "next_transition": (
                {"at": transition.instant, "reason": transition.reason.value}
                if transition else None
            ),
            "scheduler_running": self._supervisor.is_running(rotation_id),
            "last_change": self._last_change(rotation_id),
        }

    def _last_change(self, rotation_id: str) -> Optional[dict[str, Any]]:
        event = self._history.last_change(rotation_id)
        if event is None:
            return None
        return {"at": event["timestamp"], **event["details"]}

    def list_overrides(self, context: ActorContext, rotation_id: str,
                       start_at: Optional[datetime] = None,
                       end_at: Optional[datetime] = None) -> list[dict[str, Any]]:
        self.get_rotation(context, rotation_id)
        start = ensure_utc(start_at) if start_at else self._clock()
        end = ensure_utc(end_at) if end_at else start + timedelta(days=30)
        if start >= end:
            raise InvalidOverrideRange(start, end)
        return [o.model_dump() for o in self._repo.list_overrides(rotation_id, start, end)]

    def get_history(self, rotation_id: Optional[str] = None,
                    event_type: Optional[str] = None,
                    limit: Optional[int] = None) -> list[dict[str, Any]]:
        return self._history.get_all(rotation_id=rotation_id, event_type=event_type, limit=limit)

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_rotations": self._repo.count_active(),
            "running_schedulers": self._supervisor.count(),
            "total_history_events": self._history.count(),
            "event_types": self._history.count_by_type(),
        }
