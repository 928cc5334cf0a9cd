# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Notification client — inter-service communication.
Posts on-call change messages to the notification-service with timeout and
fixed-spacing retry.
"""

from typing import Optional

import httpx

from rotation_service.core.config import settings
from rotation_service.core.errors import NotificationDeliveryError
from rotation_service.core.logging import get_logger
from rotation_service.core.retry import retry_async
from rotation_service.metrics.prometheus import NOTIFICATIONS_SENT
from rotation_service.models.domain import REASON_TEXT, ScheduleSnapshot, TransitionReason

logger = get_logger(__name__)

UNASSIGNED = "Unassigned"


def format_message(name: str, assignee: Optional[str], reason: TransitionReason) -> str:
    return (
        f"*{name}* rotation update: {assignee or UNASSIGNED} is now on-call "
        f"({REASON_TEXT[reason]})"
    )


class Notifier:
    """Sends one chat message per effective on-call change."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        channel_type: Optional[str] = None,
    ) -> None:
        self._base_url = base_url or settings.NOTIFICATION_SERVICE_URL
        self._timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT
        self._channel_type = channel_type or settings.NOTIFICATION_CHANNEL

    async def _post(self, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(f"{self._base_url}/api/v1/notify", json=payload)
            resp.raise_for_status()
            return resp

    async def notify(
        self,
        rotation: ScheduleSnapshot,
        previous: Optional[str],
        current: Optional[str],
        reason: TransitionReason,
    ) -> bool:
        """Announce ``previous -> current``. Returns False when nothing was sent.

        Raises NotificationDeliveryError once every attempt has failed.
        """
        if previous == current or not rotation.notification_channel:
            return False

        payload = {
            "channel": self._channel_type,
            "recipient": rotation.notification_channel,
            "message": format_message(rotation.name, current, reason),
            "incident_id": "N/A",
            "metadata": {
                "rotation_id": rotation.rotation_id,
                "previous_assignee": previous,
                "assignee": current,
                "reason": reason.value,
            },
        }
        try:
            resp = await retry_async(
                lambda: self._post(payload),
                label="notification",
                retry_on=(httpx.HTTPError,),
            )
        except httpx.HTTPError as exc:
            NOTIFICATIONS_SENT.labels(status="failed").inc()
            raise NotificationDeliveryError(
                f"Notification for rotation {rotation.rotation_id} failed: {exc}",
                {"rotation_id": rotation.rotation_id, "recipient": rotation.notification_channel},
            ) from exc

        NOTIFICATIONS_SENT.labels(status="sent").inc()
        logger.info(
            "Notification sent: recipient=%s, status=%d",
            rotation.notification_channel,
            resp.status_code,
            extra={"rotation_id": rotation.rotation_id},
        )
        return True
