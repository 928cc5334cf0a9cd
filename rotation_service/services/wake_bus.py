# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Wake bus — per-rotation signal queues between the mutation executor
and scheduler processes.

A rotation's queue is created when its scheduler subscribes and lives until the
scheduler closes it, so a signal published while the scheduler is busy waits
in the queue for the next race.
"""

import asyncio

from rotation_service.core.errors import WakeDeliveryError
from rotation_service.core.logging import get_logger
from rotation_service.metrics.prometheus import WAKE_SIGNALS_SENT
from rotation_service.models.domain import WakeSignal

logger = get_logger(__name__)


class WakeBus:
    """In-process registry of rotation_id -> asyncio.Queue[WakeSignal]."""

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue] = {}

    def subscribe(self, rotation_id: str) -> asyncio.Queue:
        if rotation_id in self._queues:
            raise RuntimeError(f"Rotation {rotation_id} already has a subscriber")
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[rotation_id] = queue
        return queue

    def close(self, rotation_id: str) -> None:
        self._queues.pop(rotation_id, None)

    def is_subscribed(self, rotation_id: str) -> bool:
        return rotation_id in self._queues

    def publish(self, rotation_id: str, signal: WakeSignal) -> bool:
        """Deliver ``signal`` to the rotation's scheduler.

        A delete for a rotation with no running scheduler is a no-op and
        returns False. Any other undeliverable signal raises WakeDeliveryError.
        """
        queue = self._queues.get(rotation_id)
        if queue is None:
            if signal.deleted:
                logger.info(
                    "Delete signal for rotation without scheduler ignored",
                    extra={"rotation_id": rotation_id},
                )
                return False
            raise WakeDeliveryError(
                f"No scheduler process for rotation {rotation_id}",
                details={"rotation_id": rotation_id, "action": signal.action},
            )
        queue.put_nowait(signal)
        WAKE_SIGNALS_SENT.labels(kind="delete" if signal.deleted else "update").inc()
        return True

    def clear(self) -> None:
        self._queues.clear()
