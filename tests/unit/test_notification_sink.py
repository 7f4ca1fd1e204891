"""
Unit tests for the notification sink.
"""

import logging

import pytest

from iwmenu.notification import (
    DEFAULT_ICON,
    DEFAULT_SUMMARY,
    DEFAULT_TIMEOUT_MS,
    DesktopNotifier,
    Notification,
    NotificationError,
    NotificationSink,
)


class FakeNotifier(DesktopNotifier):

    def __init__(self, fail_show=False, fail_close=False):
        self.shown = []
        self.closed = []
        self.fail_show = fail_show
        self.fail_close = fail_close
        self._next_id = 1

    async def show(self, notification: Notification) -> int:
        if self.fail_show:
            raise NotificationError("Session bus unavailable")
        self.shown.append(notification)
        notification_id = self._next_id
        self._next_id += 1
        return notification_id

    async def close(self, notification_id: int) -> None:
        if self.fail_close:
            raise NotificationError("CloseNotification failed")
        self.closed.append(notification_id)


class TestNotificationSink:
    """Test queueing, defaults and replace-previous behaviour."""

    @pytest.mark.asyncio
    async def test_defaults(self):
        """Test default summary, icon and timeout are applied."""
        notifier = FakeNotifier()
        sink = NotificationSink(notifier)
        sink.start()

        sink.send("Connected to Cafe")
        await sink.stop()

        [notification] = notifier.shown
        assert notification.body == "Connected to Cafe"
        assert notification.summary == DEFAULT_SUMMARY == "iNet Wireless"
        assert notification.icon == DEFAULT_ICON == "network-wireless"
        assert notification.timeout_ms == DEFAULT_TIMEOUT_MS == 3000

    @pytest.mark.asyncio
    async def test_previous_notification_is_closed(self):
        """Test each new notification replaces the one before it."""
        notifier = FakeNotifier()
        sink = NotificationSink(notifier)
        sink.start()

        for body in ("one", "two", "three"):
            sink.send(body)
        await sink.stop()

        assert [n.body for n in notifier.shown] == ["one", "two", "three"]
        assert notifier.closed == [1, 2]
        assert sink.last_id == 3

    @pytest.mark.asyncio
    async def test_icon_key_and_timeout(self):
        """Test icon keys resolve to symbolic names and a zero timeout is kept."""
        notifier = FakeNotifier()
        sink = NotificationSink(notifier)
        sink.start()

        sink.send("Scan in progress", icon="scan", timeout_ms=0)
        await sink.stop()

        assert notifier.shown[0].icon == "view-refresh-symbolic"
        assert notifier.shown[0].timeout_ms == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged_only(self, caplog):
        """Test a broken notification service never raises to the caller."""
        notifier = FakeNotifier(fail_show=True)
        sink = NotificationSink(notifier)
        sink.start()

        with caplog.at_level(logging.WARNING, logger="iwmenu.notification"):
            sink.send("Connected to Cafe")
            await sink.stop()

        assert notifier.shown == []
        assert "Failed to send notification" in caplog.text

    @pytest.mark.asyncio
    async def test_close_failure_still_records_new_id(self):
        """Test a failed close does not lose the newest notification id."""
        notifier = FakeNotifier(fail_close=True)
        sink = NotificationSink(notifier)
        sink.start()

        sink.send("one")
        sink.send("two")
        await sink.stop()

        assert sink.last_id == 2
