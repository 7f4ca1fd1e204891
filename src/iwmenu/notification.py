"""
Desktop notifications.

Messages are queued without blocking the caller; a single consumer task shows
them one at a time and closes the previous one so only the latest is visible.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Optional

from jeepney import DBusAddress, new_method_call
from jeepney.io.asyncio import open_dbus_router
from jeepney.wrappers import DBusErrorResponse, unwrap_msg

from .icons import Icons

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "iNet Wireless"
DEFAULT_ICON = "network-wireless"
DEFAULT_TIMEOUT_MS = 3000
NEVER_EXPIRE = 0
APP_NAME = "iwmenu"

NOTIFICATIONS_ADDRESS = DBusAddress(
    "/org/freedesktop/Notifications",
    bus_name="org.freedesktop.Notifications",
    interface="org.freedesktop.Notifications",
)


class NotificationError(Exception):
    """The notification service rejected or could not receive a request."""


@dataclass
class Notification:
    body: str
    summary: str = DEFAULT_SUMMARY
    icon: str = DEFAULT_ICON
    timeout_ms: int = DEFAULT_TIMEOUT_MS


class DesktopNotifier(ABC):
    """Transport for notifications."""

    @abstractmethod
    async def show(self, notification: Notification) -> int:
        """
        Display a notification.

        Returns:
            Server-assigned notification id

        Raises:
            NotificationError: If the service is unreachable or refuses
        """

    @abstractmethod
    async def close(self, notification_id: int) -> None:
        """Withdraw a notification shown earlier."""


class FreedesktopNotifier(DesktopNotifier):
    """org.freedesktop.Notifications over the session bus (jeepney)."""

    def __init__(self):
        self._router = None
        self._stack: Optional[AsyncExitStack] = None

    async def _ensure_router(self):
        if self._router is None:
            stack = AsyncExitStack()
            try:
                self._router = await stack.enter_async_context(open_dbus_router(bus="SESSION"))
            except (OSError, ValueError, KeyError) as e:
                await stack.aclose()
                raise NotificationError(f"Session bus unavailable: {e}") from e
            self._stack = stack
        return self._router

    async def _call(self, method: str, signature: str, body: tuple) -> tuple:
        router = await self._ensure_router()
        message = new_method_call(NOTIFICATIONS_ADDRESS, method, signature, body)
        try:
            return unwrap_msg(await router.send_and_get_reply(message))
        except (DBusErrorResponse, OSError) as e:
            raise NotificationError(f"{method} failed: {e}") from e

    async def show(self, notification: Notification) -> int:
        body = await self._call(
            "Notify", "susssasa{sv}i",
            (APP_NAME, 0, notification.icon, notification.summary, notification.body,
             [], {}, notification.timeout_ms))
        return int(body[0])

    async def close(self, notification_id: int) -> None:
        await self._call("CloseNotification", "u", (notification_id,))

    async def aclose(self) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
            self._router = None


class NotificationSink:
    """
    Fire-and-forget notification queue with replace-previous semantics.

    Args:
        notifier: Transport used by the consumer task
        icons: Icon table used to resolve icon keys to names
    """

    def __init__(self, notifier: DesktopNotifier, icons: Optional[Icons] = None):
        self.notifier = notifier
        self.icons = icons or Icons()
        self.last_id: Optional[int] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._consume())

    def send(self, body: str, summary: Optional[str] = None, icon: Optional[str] = None,
             timeout_ms: Optional[int] = None) -> None:
        """
        Queue a notification; never blocks and never raises.

        Args:
            body: Notification text
            summary: Title, defaults to DEFAULT_SUMMARY
            icon: Icon key from the icon table, defaults to 'network_wireless'
            timeout_ms: Expiry in milliseconds; NEVER_EXPIRE keeps it until replaced
        """
        icon_name = self.icons.notification_icon(icon or "network_wireless") or DEFAULT_ICON
        self._queue.put_nowait(Notification(
            body=body,
            summary=summary or DEFAULT_SUMMARY,
            icon=icon_name,
            timeout_ms=DEFAULT_TIMEOUT_MS if timeout_ms is None else timeout_ms,
        ))

    async def _consume(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._show(notification)
            finally:
                self._queue.task_done()

    async def _show(self, notification: Notification) -> None:
        try:
            new_id = await self.notifier.show(notification)
        except NotificationError as e:
            logger.warning(f"Failed to send notification: {e}")
            return

        if self.last_id is not None and self.last_id != new_id:
            try:
                await self.notifier.close(self.last_id)
            except NotificationError as e:
                logger.debug(f"Failed to close notification {self.last_id}: {e}")
        self.last_id = new_id

    async def flush(self, timeout: float = 2.0) -> None:
        """Wait until queued notifications were handed to the service."""
        if self._consumer is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out flushing notifications")

    async def stop(self) -> None:
        await self.flush()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
