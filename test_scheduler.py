# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Tests for scheduler processes and their supervisor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from conftest import utc
from rotation_service.core.errors import NotificationDeliveryError, SchedulerStartError
from rotation_service.models.domain import TransitionReason, WakeSignal
from rotation_service.services.scheduler import (
    RUNNING,
    TERMINATED,
    RotationScheduler,
    SchedulerSupervisor,
)


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.notify = AsyncMock(return_value=True)
    return mock


def make_scheduler(rotation_id, repo, notifier, clock, history=None, queue=None, **kwargs):
    return RotationScheduler(
        rotation_id,
        repo=repo,
        notifier=notifier,
        queue=queue or asyncio.Queue(),
        history_repo=history,
        clock=clock,
        **kwargs,
    )


# ============================================
# Single iteration
# ============================================
class TestStep:
    @pytest.mark.asyncio
    async def test_first_observation_does_not_notify(self, repo, notifier, clock, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock,
                                   fallback_poll_seconds=86400)
        delay, reason = await scheduler.step()
        assert scheduler.last_assignee == "C"
        notifier.notify.assert_not_awaited()
        assert delay == 12 * 3600
        assert reason == TransitionReason.SHIFT_CHANGE

    @pytest.mark.asyncio
    async def test_sleep_is_capped_by_fallback(self, repo, notifier, clock, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock,
                                   fallback_poll_seconds=3600)
        delay, reason = await scheduler.step()
        assert delay == 3600
        assert reason == TransitionReason.POLL

    @pytest.mark.asyncio
    async def test_no_members_polls(self, repo, notifier, clock):
        rotation = repo.create_rotation("default", "Empty", utc(2024, 1, 1), "1 day", [])
        scheduler = make_scheduler(rotation["id"], repo, notifier, clock,
                                   fallback_poll_seconds=600)
        assert await scheduler.step() == (600, TransitionReason.POLL)

    @pytest.mark.asyncio
    async def test_change_notifies(self, repo, notifier, clock, history, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock, history,
                                   fallback_poll_seconds=86400)
        await scheduler.step()
        clock.advance(hours=12)
        await scheduler.step()
        notifier.notify.assert_awaited_once()
        snapshot, previous, current, _ = notifier.notify.await_args.args
        assert (previous, current) == ("C", "A")
        assert snapshot.notification_channel == "#oncall"
        assert scheduler.last_assignee == "A"
        assert history.count_by_type()["oncall_changed"] == 1

    @pytest.mark.asyncio
    async def test_unchanged_assignee_is_idempotent(self, repo, notifier, clock, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock)
        await scheduler.step()
        clock.advance(hours=1)
        await scheduler.step()
        await scheduler.step()
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notification_failure_is_not_fatal(self, repo, notifier, clock, history, abc_rotation):
        notifier.notify.side_effect = NotificationDeliveryError("chat down")
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock, history)
        await scheduler.step()
        clock.advance(hours=12)
        plan = await scheduler.step()
        assert plan is not None
        assert scheduler.last_assignee == "A"
        assert history.count_by_type()["notification_failed"] == 1

    @pytest.mark.asyncio
    async def test_notifier_exception_is_not_fatal(self, repo, notifier, clock, history, abc_rotation):
        notifier.notify.side_effect = httpx.InvalidURL("bad channel url")
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock, history)
        await scheduler.step()
        clock.advance(hours=12)
        assert await scheduler.step() is not None
        assert scheduler.last_assignee == "A"
        assert history.count_by_type()["notification_failed"] == 1

    @pytest.mark.asyncio
    async def test_sleep_accounts_for_slow_notification(self, repo, notifier, clock):
        rotation = repo.create_rotation("default", "Fast", utc(2024, 1, 1), "1 minute", ["A", "B"])

        async def slow_notify(*args):
            clock.advance(seconds=50)
            return True

        notifier.notify.side_effect = slow_notify
        scheduler = make_scheduler(rotation["id"], repo, notifier, clock,
                                   fallback_poll_seconds=3600)
        delay, _ = await scheduler.step()
        assert delay == 60
        clock.advance(seconds=60)
        delay, reason = await scheduler.step()
        notifier.notify.assert_awaited_once()
        assert delay == 10
        assert reason == TransitionReason.SHIFT_CHANGE

    @pytest.mark.asyncio
    async def test_transition_passed_while_notifying_wakes_at_once(self, repo, notifier, clock):
        rotation = repo.create_rotation("default", "Fast", utc(2024, 1, 1), "1 minute", ["A", "B"])

        async def stuck_notify(*args):
            clock.advance(seconds=90)
            return True

        notifier.notify.side_effect = stuck_notify
        scheduler = make_scheduler(rotation["id"], repo, notifier, clock)
        await scheduler.step()
        clock.advance(seconds=60)
        delay, _ = await scheduler.step()
        assert delay == 0

    @pytest.mark.asyncio
    async def test_deleted_rotation_terminates(self, repo, notifier, clock, abc_rotation):
        repo.mark_deleted(abc_rotation["id"])
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock)
        assert await scheduler.step() is None

    @pytest.mark.asyncio
    async def test_load_error_retries_later(self, repo, notifier, clock, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock,
                                   error_retry_seconds=5)
        with patch.object(repo, "load_snapshot", side_effect=OperationalError("SELECT", {}, "gone")):
            delay, _ = await scheduler.step()
        assert delay == 5

    @pytest.mark.asyncio
    async def test_resume_point_load_error_retries_later(self, repo, notifier, clock, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock,
                                   fallback_poll_seconds=86400, error_retry_seconds=5)
        failure = OperationalError("SELECT", {}, "gone")
        with patch.object(repo, "load_scheduler_state", side_effect=failure):
            assert await scheduler.step() == (5, TransitionReason.SCHEDULE_UPDATE)
        assert scheduler.last_assignee is None

        delay, _ = await scheduler.step()
        assert scheduler.last_assignee == "C"
        assert delay == 12 * 3600

    @pytest.mark.asyncio
    async def test_resume_point_is_persisted_and_restored(self, repo, notifier, clock, abc_rotation):
        first = make_scheduler(abc_rotation["id"], repo, notifier, clock)
        await first.step()
        assert repo.load_scheduler_state(abc_rotation["id"])["last_assignee"] == "C"

        # restarted process after the shift changed while it was down
        clock.advance(hours=12)
        second = make_scheduler(abc_rotation["id"], repo, notifier, clock)
        second.restore()
        await second.step()
        notifier.notify.assert_awaited_once()
        _, previous, current, _ = notifier.notify.await_args.args
        assert (previous, current) == ("C", "A")


# ============================================
# Full loop
# ============================================
class TestRun:
    @pytest.mark.asyncio
    async def test_delete_signal_terminates(self, repo, notifier, clock, abc_rotation):
        queue = asyncio.Queue()
        queue.put_nowait(WakeSignal(deleted=True, action="delete"))
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock, queue=queue)
        assert scheduler.state == RUNNING
        await asyncio.wait_for(scheduler.run(), timeout=2)
        assert scheduler.state == TERMINATED

    @pytest.mark.asyncio
    async def test_signal_reloads_before_sleeping_again(self, repo, notifier, clock, abc_rotation):
        queue = asyncio.Queue()
        queue.put_nowait(WakeSignal(action="rename"))
        queue.put_nowait(WakeSignal(deleted=True))
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock, queue=queue)
        with patch.object(repo, "load_snapshot", wraps=repo.load_snapshot) as spy:
            await asyncio.wait_for(scheduler.run(), timeout=2)
        assert spy.call_count == 2

    @pytest.mark.asyncio
    async def test_action_reason_is_used_for_notification(self, repo, notifier, clock, abc_rotation):
        queue = asyncio.Queue()
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock, queue=queue)
        task = asyncio.ensure_future(scheduler.run())
        await asyncio.sleep(0.05)
        repo.set_override(abc_rotation["id"], "X", clock())
        queue.put_nowait(WakeSignal(action="set_override", reason=TransitionReason.OVERRIDE_START))
        queue.put_nowait(WakeSignal(deleted=True))
        await asyncio.wait_for(task, timeout=2)
        _, previous, current, reason = notifier.notify.await_args.args
        assert (previous, current, reason) == ("C", "X", TransitionReason.OVERRIDE_START)

    @pytest.mark.asyncio
    async def test_timer_fires_without_signal(self, repo, notifier, clock, abc_rotation):
        scheduler = make_scheduler(abc_rotation["id"], repo, notifier, clock,
                                   fallback_poll_seconds=0.01)
        with patch.object(repo, "load_snapshot", wraps=repo.load_snapshot) as spy:
            task = asyncio.ensure_future(scheduler.run())
            await asyncio.sleep(0.2)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert spy.call_count > 2
        assert scheduler.state == TERMINATED


# ============================================
# Supervisor
# ============================================
class TestSupervisor:
    @pytest.mark.asyncio
    async def test_start_and_delete(self, repo, notifier, bus, clock, abc_rotation):
        supervisor = SchedulerSupervisor(repo, notifier, bus, clock=clock)
        task = supervisor.start(abc_rotation["id"])
        assert supervisor.is_running(abc_rotation["id"])
        assert bus.is_subscribed(abc_rotation["id"])

        bus.publish(abc_rotation["id"], WakeSignal(deleted=True))
        await asyncio.wait_for(task, timeout=2)
        assert not supervisor.is_running(abc_rotation["id"])
        assert not bus.is_subscribed(abc_rotation["id"])

    @pytest.mark.asyncio
    async def test_duplicate_start_fails(self, repo, notifier, bus, clock, abc_rotation):
        supervisor = SchedulerSupervisor(repo, notifier, bus, clock=clock)
        supervisor.start(abc_rotation["id"])
        with pytest.raises(SchedulerStartError):
            supervisor.start(abc_rotation["id"])
        await supervisor.shutdown()
        assert supervisor.count() == 0

    @pytest.mark.asyncio
    async def test_survives_resume_point_load_error(self, repo, notifier, bus, clock, abc_rotation):
        supervisor = SchedulerSupervisor(repo, notifier, bus, clock=clock)
        failure = OperationalError("SELECT", {}, "gone")
        with patch.object(repo, "load_scheduler_state", side_effect=failure) as load:
            supervisor.start(abc_rotation["id"])
            await asyncio.sleep(0.2)
            assert load.call_count >= 2
        assert supervisor.is_running(abc_rotation["id"])
        assert bus.is_subscribed(abc_rotation["id"])
        await supervisor.shutdown()

    def test_start_without_event_loop_fails(self, repo, notifier, bus, clock, abc_rotation):
        supervisor = SchedulerSupervisor(repo, notifier, bus, clock=clock)
        with pytest.raises(SchedulerStartError):
            supervisor.start(abc_rotation["id"])
        assert not bus.is_subscribed(abc_rotation["id"])

    @pytest.mark.asyncio
    async def test_resume_all(self, repo, notifier, bus, clock, abc_rotation):
        other = repo.create_rotation("default", "Other", utc(2024, 1, 1), "1 week", ["Z"])
        deleted = repo.create_rotation("default", "Gone", utc(2024, 1, 1), "1 week", ["Y"])
        repo.mark_deleted(deleted["id"])

        supervisor = SchedulerSupervisor(repo, notifier, bus, clock=clock)
        assert supervisor.resume_all() == 2
        assert supervisor.is_running(abc_rotation["id"])
        assert supervisor.is_running(other["id"])
        assert not supervisor.is_running(deleted["id"])
        assert supervisor.resume_all() == 0
        await supervisor.shutdown()
