# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Rotation endpoints — CRUD, actions, members, overrides, bindings.
Thin HTTP layer — delegates ALL logic to ScheduleService. RotationError
subclasses are rendered by the application's exception handler.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from rotation_service.core.config import settings
from rotation_service.core.dependencies import get_actor_context, get_schedule_service
from rotation_service.core.errors import status_for_code
from rotation_service.models.domain import ActionResult, ActorContext
from rotation_service.schemas.rotation import (
    ActionRequest,
    BindingCreateRequest,
    BindingResponse,
    MemberAddRequest,
    MemberPositionRequest,
    OverrideResponse,
    RotationCreateRequest,
    RotationResponse,
    ScheduleResponse,
)
from rotation_service.services.schedule_service import ScheduleService

router = APIRouter(prefix="/api/v1", tags=["Rotations"])


@router.post("/rotations", status_code=201, response_model=RotationResponse)
async def create_rotation(
    payload: RotationCreateRequest,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create a rotation and start its scheduler process."""
    return service.create_rotation(
        context,
        name=payload.name,
        shift_length=payload.shift_length,
        anchor_at=payload.anchor_at,
        members=payload.members,
        notification_channel=payload.notification_channel,
    )


@router.get("/rotations", response_model=list[RotationResponse])
async def list_rotations(
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """List the workspace's rotations."""
    return service.list_rotations(context)


@router.get("/rotations/history")
async def get_history(
    rotation_id: Optional[str] = Query(default=None),
    event_type: Optional[str] = Query(default=None),
    limit: int = Query(default=settings.DEFAULT_HISTORY_LIMIT, ge=1, le=1000),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Audit log of rotation and on-call events."""
    events = service.get_history(rotation_id=rotation_id, event_type=event_type, limit=limit)
    return {"total": len(events), "events": events}


@router.get("/rotations/{rotation_id}", response_model=RotationResponse)
async def get_rotation(
    rotation_id: str,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.get_rotation(context, rotation_id)


@router.delete("/rotations/{rotation_id}")
async def delete_rotation(
    rotation_id: str,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Delete a rotation; fails while an entry point still uses it."""
    return await service.delete_rotation(context, rotation_id)


@router.get("/rotations/{rotation_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    rotation_id: str,
    at: Optional[datetime] = Query(default=None, description="Evaluation instant, default now"),
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Current assignee, shift bounds and next transition."""
    return service.get_schedule(context, rotation_id, at)


@router.post("/rotations/{rotation_id}/actions", response_model=ActionResult)
async def apply_action(
    rotation_id: str,
    payload: ActionRequest,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Apply one schedule-affecting action."""
    result = await service.apply_action(context, rotation_id, payload.root)
    if not result.success:
        return JSONResponse(
            status_code=status_for_code(result.error_type),
            content=result.model_dump(),
        )
    return result


# ── Members ──

@router.post("/rotations/{rotation_id}/members", status_code=201, response_model=RotationResponse)
async def add_member(
    rotation_id: str,
    payload: MemberAddRequest,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Append a member at the end of the rotation."""
    return await service.add_member(context, rotation_id, payload.assignee_id)


@router.delete("/rotations/{rotation_id}/members/{assignee_id}", response_model=RotationResponse)
async def remove_member(
    rotation_id: str,
    assignee_id: str,
    clear_active_override: bool = Query(default=True),
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    return await service.remove_member(context, rotation_id, assignee_id, clear_active_override)


@router.put(
    "/rotations/{rotation_id}/members/{assignee_id}/position",
    response_model=RotationResponse,
)
async def move_member(
    rotation_id: str,
    assignee_id: str,
    payload: MemberPositionRequest,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Move a member to a new position, shifting the others."""
    return await service.move_member(context, rotation_id, assignee_id, payload.position)


# ── Overrides ──

@router.get("/rotations/{rotation_id}/overrides", response_model=list[OverrideResponse])
async def list_overrides(
    rotation_id: str,
    start_at: Optional[datetime] = Query(default=None),
    end_at: Optional[datetime] = Query(default=None),
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Overrides overlapping ``[start_at, end_at)`` (default: the next 30 days)."""
    return service.list_overrides(context, rotation_id, start_at, end_at)


# ── Entry-point bindings ──

@router.post("/rotations/{rotation_id}/bindings", status_code=201, response_model=BindingResponse)
async def add_binding(
    rotation_id: str,
    payload: BindingCreateRequest,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.add_binding(context, rotation_id, payload.entry_point_id)


@router.delete("/rotations/{rotation_id}/bindings/{entry_point_id}")
async def remove_binding(
    rotation_id: str,
    entry_point_id: str,
    context: ActorContext = Depends(get_actor_context),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.remove_binding(context, rotation_id, entry_point_id)
