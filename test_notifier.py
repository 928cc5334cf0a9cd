# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Tests for the notification-service client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import T0
from rotation_service.core.errors import NotificationDeliveryError
from rotation_service.models.domain import ScheduleSnapshot, TransitionReason
from rotation_service.services.notification_client import Notifier, format_message


def make_snapshot(channel="#oncall"):
    return ScheduleSnapshot(
        rotation_id="rot-1",
        name="Primary",
        notification_channel=channel,
        anchor_at=T0,
        shift_length_ms=86_400_000,
        members=["A", "B"],
    )


def ok_response():
    resp = MagicMock()
    resp.status_code = 200
    resp.raise_for_status = MagicMock()
    return resp


class TestFormatMessage:
    def test_message(self):
        assert format_message("Primary", "B", TransitionReason.OVERRIDE_START) == (
            "*Primary* rotation update: B is now on-call (override started)"
        )

    def test_unassigned(self):
        assert "Unassigned is now on-call" in format_message("P", None, TransitionReason.POLL)


class TestNotifier:
    @pytest.mark.asyncio
    async def test_posts_to_notification_service(self):
        notifier = Notifier(base_url="http://notify:8004")
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=ok_response())) as post:
            sent = await notifier.notify(make_snapshot(), "A", "B", TransitionReason.SHIFT_CHANGE)
        assert sent is True
        url = post.await_args.args[0]
        payload = post.await_args.kwargs["json"]
        assert url == "http://notify:8004/api/v1/notify"
        assert payload["recipient"] == "#oncall"
        assert payload["channel"] == "slack"
        assert payload["message"] == "*Primary* rotation update: B is now on-call (scheduled shift change)"
        assert payload["metadata"]["previous_assignee"] == "A"

    @pytest.mark.asyncio
    async def test_unchanged_assignee_sends_nothing(self):
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock()) as post:
            sent = await Notifier().notify(make_snapshot(), "A", "A", TransitionReason.POLL)
        assert sent is False
        post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_channel_sends_nothing(self):
        with patch.object(httpx.AsyncClient, "post", new=AsyncMock()) as post:
            sent = await Notifier().notify(make_snapshot(channel=None), "A", "B",
                                           TransitionReason.SHIFT_CHANGE)
        assert sent is False
        post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        post = AsyncMock(side_effect=[httpx.ConnectError("refused"), ok_response()])
        with patch.object(httpx.AsyncClient, "post", new=post):
            sent = await Notifier().notify(make_snapshot(), "A", "B", TransitionReason.SHIFT_CHANGE)
        assert sent is True
        assert post.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self):
        post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch.object(httpx.AsyncClient, "post", new=post):
            with pytest.raises(NotificationDeliveryError):
                await Notifier().notify(make_snapshot(), "A", "B", TransitionReason.SHIFT_CHANGE)
        assert post.await_count == 3
