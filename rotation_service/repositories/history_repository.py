# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Rotation audit trail.

Process-local record of what happened to each rotation: creation, applied
actions, on-call changes seen by its scheduler, dropped notifications and
scheduler termination. Only the newest ``MAX_HISTORY_SIZE`` events are kept.
"""

import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Iterator, Optional

from rotation_service.core.config import settings
from rotation_service.models.domain import utcnow

ONCALL_CHANGED = "oncall_changed"


class HistoryRepository:
    def __init__(
        self,
        max_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._events: deque = deque(maxlen=max_size or settings.MAX_HISTORY_SIZE)
        self._clock = clock

    def _matching(self, rotation_id: Optional[str],
                  event_type: Optional[str]) -> Iterator[dict[str, Any]]:
        for event in self._events:
            if rotation_id and event["rotation_id"] != rotation_id:
                continue
            if event_type and event["event_type"] != event_type:
                continue
            yield event

    # ── Read ──

    def get_all(
        self,
        rotation_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Newest ``limit`` matching events, oldest first."""
        tail = deque(
            self._matching(rotation_id, event_type),
            maxlen=limit or settings.DEFAULT_HISTORY_LIMIT,
        )
        return list(tail)

    def last_change(self, rotation_id: str) -> Optional[dict[str, Any]]:
        """The most recent on-call change recorded for ``rotation_id``."""
        for event in reversed(self._events):
            if event["rotation_id"] == rotation_id and event["event_type"] == ONCALL_CHANGED:
                return event
        return None

    def count(self) -> int:
        return len(self._events)

    def count_by_type(self, rotation_id: Optional[str] = None) -> dict[str, int]:
        counts: dict[str, int] = {}
        for event in self._matching(rotation_id, None):
            counts[event["event_type"]] = counts.get(event["event_type"], 0) + 1
        return counts

    # ── Write ──

    def record_event(
        self, event_type: str, rotation_id: str, details: dict[str, Any]
    ) -> dict[str, Any]:
        event: dict[str, Any] = {
            "event_id": str(uuid.uuid4()),
            "event_type": event_type,
            "rotation_id": rotation_id,
            "timestamp": self._clock().isoformat(),
            "details": details,
        }
        self._events.append(event)
        return event

    def clear(self) -> None:
        self._events.clear()
