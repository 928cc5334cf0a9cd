# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Fixed-spacing retry for external side effects (notifications, wake signals).
Each sleep between attempts is an await, never a blocking wait.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from rotation_service.core.config import settings
from rotation_service.core.logging import get_logger
from rotation_service.metrics.prometheus import DELIVERY_RETRIES

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    label: str,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    attempts: Optional[int] = None,
    delay: Optional[float] = None,
) -> T:
    """Run ``operation`` up to ``attempts`` times; re-raise the last error."""
    max_attempts = attempts if attempts is not None else settings.RETRY_ATTEMPTS
    spacing = delay if delay is not None else settings.RETRY_DELAY_SECONDS
    last_exc: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            last_exc = exc
            if attempt < max_attempts:
                DELIVERY_RETRIES.labels(operation=label, attempt=str(attempt)).inc()
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.0fs: %s",
                    label, attempt, max_attempts, spacing, exc,
                )
                await asyncio.sleep(spacing)

    logger.error("%s failed after %d attempts: %s", label, max_attempts, last_exc)
    raise last_exc
