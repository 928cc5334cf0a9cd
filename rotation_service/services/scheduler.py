# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Scheduler processes — one long-lived asyncio task per rotation.

Each iteration reloads the rotation, compares the effective assignee with the
last one observed, notifies on change, then sleeps until the next transition
or until the wake bus delivers a signal, whichever comes first.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from rotation_service.core.config import settings
from rotation_service.core.errors import NotificationDeliveryError, SchedulerStartError
from rotation_service.core.logging import get_logger
from rotation_service.metrics.prometheus import (
    ACTIVE_SCHEDULERS,
    ONCALL_CHANGES,
    SCHEDULER_ERRORS,
    SCHEDULER_WAKEUPS,
)
from rotation_service.models.domain import TransitionReason, WakeSignal, utcnow
from rotation_service.repositories.history_repository import ONCALL_CHANGED, HistoryRepository
from rotation_service.repositories.rotation_repository import RotationRepository
from rotation_service.services.notification_client import Notifier
from rotation_service.services.rotation import effective_assignee, next_transition
from rotation_service.services.wake_bus import WakeBus

logger = get_logger(__name__)

RUNNING = "running"
TERMINATED = "terminated"


class RotationScheduler:
    """Durable loop for a single rotation."""

    def __init__(
        self,
        rotation_id: str,
        repo: RotationRepository,
        notifier: Notifier,
        queue: asyncio.Queue,
        history_repo: Optional[HistoryRepository] = None,
        clock: Callable[[], datetime] = utcnow,
        fallback_poll_seconds: Optional[float] = None,
        error_retry_seconds: Optional[float] = None,
    ) -> None:
        self.rotation_id = rotation_id
        self.state = RUNNING
        self._repo = repo
        self._notifier = notifier
        self._queue = queue
        self._history = history_repo
        self._clock = clock
        self._fallback = (
            fallback_poll_seconds
            if fallback_poll_seconds is not None
            else settings.FALLBACK_POLL_SECONDS
        )
        self._error_retry = min(
            error_retry_seconds if error_retry_seconds is not None else settings.ERROR_RETRY_SECONDS,
            self._fallback,
        )
        self._restored = False
        self._observed = False
        self.last_assignee: Optional[str] = None
        self._reason = TransitionReason.SCHEDULE_UPDATE

    def _log_extra(self) -> dict:
        return {"rotation_id": self.rotation_id}

    def restore(self) -> None:
        """Resume comparison from the persisted last observation, if any."""
        state = self._repo.load_scheduler_state(self.rotation_id)
        self._restored = True
        if state and state["observed"]:
            self._observed = True
            self.last_assignee = state["last_assignee"]

    def _persist(self) -> None:
        try:
            self._repo.save_scheduler_state(
                self.rotation_id, self.last_assignee, self._reason.value
            )
        except SQLAlchemyError as exc:
            logger.warning("Could not persist scheduler state: %s", exc, extra=self._log_extra())

    async def _observe(self, snapshot, now: datetime) -> None:
        current = effective_assignee(snapshot, now)
        if not self._observed:
            self._observed = True
            self.last_assignee = current
            self._persist()
            return
        if current == self.last_assignee:
            return

        previous = self.last_assignee
        ONCALL_CHANGES.labels(reason=self._reason.value).inc()
        logger.info(
            "On-call changed: %s -> %s (%s)", previous, current, self._reason.value,
            extra=self._log_extra(),
        )
        if self._history is not None:
            self._history.record_event(
                ONCALL_CHANGED,
                self.rotation_id,
                {"previous": previous, "current": current, "reason": self._reason.value},
            )
        try:
            await self._notifier.notify(snapshot, previous, current, self._reason)
        except NotificationDeliveryError as exc:
            self._notification_failed(exc.message)
        except Exception as exc:
            logger.exception("Notifier raised", extra=self._log_extra())
            self._notification_failed(str(exc))
        self.last_assignee = current
        self._persist()

    def _notification_failed(self, error: str) -> None:
        logger.error("Notification dropped: %s", error, extra=self._log_extra())
        if self._history is not None:
            self._history.record_event("notification_failed", self.rotation_id, {"error": error})

    def _load_failed(self, what: str, exc: Exception) -> tuple[float, TransitionReason]:
        SCHEDULER_ERRORS.inc()
        logger.error(
            "%s failed, retrying in %.0fs: %s", what, self._error_retry, exc,
            extra=self._log_extra(),
        )
        return self._error_retry, self._reason

    async def step(self) -> Optional[tuple[float, TransitionReason]]:
        """Run one evaluation. Returns ``(sleep_seconds, expected_reason)``,
        or None when the rotation no longer exists."""
        if not self._restored:
            try:
                self.restore()
            except Exception as exc:
                return self._load_failed("Resume point load", exc)
        now = self._clock()
        try:
            snapshot = self._repo.load_snapshot(self.rotation_id, now)
        except Exception as exc:
            return self._load_failed("Snapshot load", exc)
        if snapshot is None:
            return None

        await self._observe(snapshot, now)

        transition = next_transition(snapshot, now)
        # the notifier may have spent minutes retrying
        now = self._clock()
        cap = now + timedelta(seconds=self._fallback)
        if transition is None or transition.instant > cap:
            wake_at, reason = cap, TransitionReason.POLL
        else:
            wake_at, reason = transition.instant, transition.reason
        return max((wake_at - now).total_seconds(), 0.0), reason

    async def _wait(self, delay: float) -> Optional[WakeSignal]:
        """Sleep for ``delay`` seconds unless a signal arrives first."""
        sleeper = asyncio.ensure_future(asyncio.sleep(delay))
        getter = asyncio.ensure_future(self._queue.get())
        try:
            done, _ = await asyncio.wait({sleeper, getter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, getter):
                if not task.done():
                    task.cancel()
        if getter in done:
            return getter.result()
        return None

    async def run(self) -> None:
        ACTIVE_SCHEDULERS.inc()
        logger.info("Scheduler started", extra=self._log_extra())
        try:
            while True:
                plan = await self.step()
                if plan is None:
                    break
                delay, expected = plan
                signal = await self._wait(delay)
                if signal is None:
                    SCHEDULER_WAKEUPS.labels(
                        cause="poll" if expected == TransitionReason.POLL else "timer"
                    ).inc()
                    self._reason = expected
                    continue
                if signal.deleted:
                    SCHEDULER_WAKEUPS.labels(cause="delete").inc()
                    break
                SCHEDULER_WAKEUPS.labels(cause="signal").inc()
                self._reason = signal.reason
        finally:
            self.state = TERMINATED
            ACTIVE_SCHEDULERS.dec()
        if self._history is not None:
            self._history.record_event("scheduler_terminated", self.rotation_id, {})
        logger.info("Scheduler terminated", extra=self._log_extra())


class SchedulerSupervisor:
    """Owns the scheduler task of every live rotation."""

    def __init__(
        self,
        repo: RotationRepository,
        notifier: Notifier,
        wake_bus: WakeBus,
        history_repo: Optional[HistoryRepository] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repo
        self._notifier = notifier
        self._bus = wake_bus
        self._history = history_repo
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}
        self._schedulers: dict[str, RotationScheduler] = {}

    def is_running(self, rotation_id: str) -> bool:
        task = self._tasks.get(rotation_id)
        return task is not None and not task.done()

    def count(self) -> int:
        return sum(1 for rid in self._tasks if self.is_running(rid))

    def get(self, rotation_id: str) -> Optional[RotationScheduler]:
        return self._schedulers.get(rotation_id)

    def start(self, rotation_id: str) -> asyncio.Task:
        """Subscribe the rotation's wake queue and spawn its scheduler.

        Raises SchedulerStartError when one is already running or no event
        loop is available.
        """
        if self.is_running(rotation_id):
            raise SchedulerStartError(
                f"Scheduler already running for rotation {rotation_id}",
                {"rotation_id": rotation_id},
            )
        try:
            loop = asyncio.get_running_loop()
            queue = self._bus.subscribe(rotation_id)
        except RuntimeError as exc:
            raise SchedulerStartError(
                f"Could not start scheduler for rotation {rotation_id}: {exc}",
                {"rotation_id": rotation_id},
            ) from exc

        scheduler = RotationScheduler(
            rotation_id,
            repo=self._repo,
            notifier=self._notifier,
            queue=queue,
            history_repo=self._history,
            clock=self._clock,
        )
        task = loop.create_task(self._run(scheduler), name=f"rotation-{rotation_id}")
        self._tasks[rotation_id] = task
        self._schedulers[rotation_id] = scheduler
        return task

    async def _run(self, scheduler: RotationScheduler) -> None:
        rotation_id = scheduler.rotation_id
        try:
            await scheduler.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduler crashed", extra={"rotation_id": rotation_id})
        finally:
            self._bus.close(rotation_id)
            if self._schedulers.get(rotation_id) is scheduler:
                self._tasks.pop(rotation_id, None)
                self._schedulers.pop(rotation_id, None)

    def resume_all(self) -> int:
        """Start a scheduler for every live rotation without one."""
        started = 0
        for rotation_id in self._repo.list_active_rotation_ids():
            if self.is_running(rotation_id):
                continue
            try:
                self.start(rotation_id)
                started += 1
            except SchedulerStartError as exc:
                logger.error("Resume failed: %s", exc.message, extra={"rotation_id": rotation_id})
        if started:
            logger.info("Resumed %d rotation schedulers", started)
        return started

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # a task cancelled before its first step never reaches _run's cleanup
        for rotation_id in list(self._tasks):
            self._bus.close(rotation_id)
        self._tasks.clear()
        self._schedulers.clear()
