# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Tests for the rotation audit trail."""

from unittest.mock import MagicMock

from conftest import utc
from rotation_service.models.domain import ActorContext
from rotation_service.repositories.history_repository import HistoryRepository
from rotation_service.services.schedule_service import ScheduleService


def change(history, rotation_id, previous, current):
    return history.record_event(
        "oncall_changed", rotation_id,
        {"previous": previous, "current": current, "reason": "shift_change"},
    )


class TestHistory:
    def test_events_use_the_clock(self, history, clock):
        event = history.record_event("rotation_created", "r1", {"name": "Primary"})
        assert event["timestamp"] == clock().isoformat()

    def test_filter_by_rotation_and_type(self, history):
        history.record_event("rotation_created", "r1", {})
        history.record_event("rotation_created", "r2", {})
        change(history, "r1", "A", "B")
        assert len(history.get_all(rotation_id="r1")) == 2
        assert [e["rotation_id"] for e in history.get_all(event_type="rotation_created")] == ["r1", "r2"]
        assert history.get_all(rotation_id="r2", event_type="oncall_changed") == []

    def test_limit_keeps_newest_in_order(self, history):
        for current in "ABCD":
            change(history, "r1", None, current)
        events = history.get_all(rotation_id="r1", limit=2)
        assert [e["details"]["current"] for e in events] == ["C", "D"]

    def test_oldest_events_are_dropped(self, clock):
        history = HistoryRepository(max_size=3, clock=clock)
        for i in range(5):
            history.record_event("action_applied", "r1", {"n": i})
        assert history.count() == 3
        assert [e["details"]["n"] for e in history.get_all()] == [2, 3, 4]

    def test_last_change_per_rotation(self, history, clock):
        assert history.last_change("r1") is None
        change(history, "r1", "A", "B")
        clock.advance(hours=1)
        change(history, "r1", "B", "C")
        change(history, "r2", "X", "Y")
        history.record_event("action_applied", "r1", {})

        last = history.last_change("r1")
        assert last["details"]["current"] == "C"
        assert last["timestamp"] == utc(2024, 1, 3, 13).isoformat()

    def test_count_by_type_per_rotation(self, history):
        change(history, "r1", "A", "B")
        change(history, "r2", "A", "B")
        history.record_event("notification_failed", "r1", {"error": "down"})
        assert history.count_by_type() == {"oncall_changed": 2, "notification_failed": 1}
        assert history.count_by_type("r2") == {"oncall_changed": 1}


class TestScheduleLastChange:
    def test_schedule_reports_last_change(self, repo, executor, history, clock, abc_rotation):
        supervisor = MagicMock()
        supervisor.is_running.return_value = False
        service = ScheduleService(repo, executor, supervisor, history, clock=clock)
        context = ActorContext(workspace_id="default", actor_id="u1", role="member")

        assert service.get_schedule(context, abc_rotation["id"])["last_change"] is None
        change(history, abc_rotation["id"], "B", "C")
        last = service.get_schedule(context, abc_rotation["id"])["last_change"]
        assert last == {
            "at": clock().isoformat(),
            "previous": "B",
            "current": "C",
            "reason": "shift_change",
        }
