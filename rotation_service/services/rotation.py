# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Rotation logic — pure computation, no side effects.

Every function takes the evaluation instant explicitly; nothing here reads the
clock, touches the database, logs or records metrics.
"""

from datetime import datetime, timedelta
from typing import Optional

from rotation_service.models.domain import (
    Override,
    ScheduleSnapshot,
    Transition,
    TransitionReason,
    from_ms,
    to_ms,
)

# Lower rank wins when two candidates fall on the same instant: an ending
# override hands control back to the base rotation before anything else starts.
TIE_BREAK_RANK: dict[TransitionReason, int] = {
    TransitionReason.OVERRIDE_END: 0,
    TransitionReason.OVERRIDE_START: 1,
    TransitionReason.SHIFT_CHANGE: 2,
}


def shift_index(snapshot: ScheduleSnapshot, at: datetime) -> int:
    """Number of whole shifts between the anchor and ``at`` (negative before it)."""
    return (to_ms(at) - to_ms(snapshot.anchor_at)) // snapshot.shift_length_ms


def base_position(snapshot: ScheduleSnapshot, at: datetime) -> Optional[int]:
    n = len(snapshot.members)
    if n == 0:
        return None
    return ((shift_index(snapshot, at) % n) + n) % n


def base_assignee(snapshot: ScheduleSnapshot, at: datetime) -> Optional[str]:
    position = base_position(snapshot, at)
    if position is None:
        return None
    return snapshot.members[position]


def shift_bounds(snapshot: ScheduleSnapshot, at: datetime) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` of the shift containing ``at``."""
    start_ms = to_ms(snapshot.anchor_at) + shift_index(snapshot, at) * snapshot.shift_length_ms
    return from_ms(start_ms), from_ms(start_ms + snapshot.shift_length_ms)


def current_override(snapshot: ScheduleSnapshot, at: datetime) -> Optional[Override]:
    """The active override created last (ties broken on the greatest id)."""
    active = [o for o in snapshot.overrides if o.start_at <= at < o.end_at]
    if not active:
        return None
    return max(active, key=lambda o: (o.created_at, o.id))


def effective_assignee(snapshot: ScheduleSnapshot, at: datetime) -> Optional[str]:
    """Who is on call at ``at`` once any current override is applied."""
    if not snapshot.members:
        return None
    override = current_override(snapshot, at)
    if override is not None:
        return override.assignee_id
    return base_assignee(snapshot, at)


def next_shift_boundary(snapshot: ScheduleSnapshot, at: datetime) -> datetime:
    """First ``anchor + k * shift_length`` strictly after ``at``."""
    _, end = shift_bounds(snapshot, at)
    while end <= at:
        end += timedelta(milliseconds=snapshot.shift_length_ms)
    return end


def transition_candidates(snapshot: ScheduleSnapshot, at: datetime) -> list[Transition]:
    candidates: list[Transition] = []
    if snapshot.members:
        candidates.append(
            Transition(
                instant=next_shift_boundary(snapshot, at),
                reason=TransitionReason.SHIFT_CHANGE,
            )
        )
    for override in snapshot.overrides:
        if override.start_at > at:
            candidates.append(
                Transition(instant=override.start_at, reason=TransitionReason.OVERRIDE_START)
            )
        if override.end_at > at:
            candidates.append(
                Transition(instant=override.end_at, reason=TransitionReason.OVERRIDE_END)
            )
    return candidates


def next_transition(snapshot: ScheduleSnapshot, at: datetime) -> Optional[Transition]:
    """Earliest instant after ``at`` at which the effective assignee may change.

    Returns None only when the rotation has neither members nor overrides.
    """
    candidates = transition_candidates(snapshot, at)
    if not candidates:
        return None
    return min(candidates, key=lambda t: (t.instant, TIE_BREAK_RANK[t.reason]))
