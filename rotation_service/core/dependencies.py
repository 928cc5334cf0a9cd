# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection — wire repositories and services.
"""

from typing import Optional

from fastapi import Header

from rotation_service.core.database import engine
from rotation_service.models.domain import ActorContext
from rotation_service.repositories.history_repository import HistoryRepository
from rotation_service.repositories.rotation_repository import RotationRepository
from rotation_service.services.action_executor import MutationExecutor
from rotation_service.services.notification_client import Notifier
from rotation_service.services.scheduler import SchedulerSupervisor
from rotation_service.services.schedule_service import ScheduleService
from rotation_service.services.wake_bus import WakeBus

# ── Singleton instances ──
_rotation_repo = RotationRepository(engine)
_history_repo = HistoryRepository()
_wake_bus = WakeBus()
_notifier = Notifier()

_executor = MutationExecutor(
    repo=_rotation_repo,
    wake_bus=_wake_bus,
    history_repo=_history_repo,
)
_supervisor = SchedulerSupervisor(
    repo=_rotation_repo,
    notifier=_notifier,
    wake_bus=_wake_bus,
    history_repo=_history_repo,
)
_schedule_service = ScheduleService(
    repo=_rotation_repo,
    executor=_executor,
    supervisor=_supervisor,
    history_repo=_history_repo,
)


# ── FastAPI dependency functions ──
def get_schedule_service() -> ScheduleService:
    return _schedule_service


def get_rotation_repo() -> RotationRepository:
    return _rotation_repo


def get_history_repo() -> HistoryRepository:
    return _history_repo


def get_supervisor() -> SchedulerSupervisor:
    return _supervisor


def get_actor_context(
    x_workspace_id: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> ActorContext:
    """Identity forwarded by the gateway; trusted as-is."""
    return ActorContext(
        workspace_id=x_workspace_id or "default",
        actor_id=x_actor_id or "system",
        role=x_actor_role or "member",
    )
