"""
Notification dispatcher — at most one visible "new message" notice.

A newer notice replaces the current one. Every notice clears itself after
``timeout`` seconds unless it is dismissed or clicked first.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from switchboard.models.notification import Notification
from switchboard.reconciler import MergeResult, resolve_display_name

DEFAULT_TIMEOUT_S = 5.0

NotificationListener = Callable[[Optional[Notification]], None]
RouteCallback = Callable[[str, str], None]

logger = logging.getLogger(__name__)


def build_notification(result: MergeResult, created_at: float) -> Optional[Notification]:
    """Notice for a merged push message; None for self-originated ones."""
    message = result.message
    if message.from_self:
        return None
    conversation = result.conversation
    sender = message.sender
    sender_name = resolve_display_name(
        sender.pushname if sender else None,
        sender.number if sender else None,
        default="New Message",
    )
    title = f"{sender_name} @ {conversation.display_name}" if conversation.is_group else sender_name
    body = f"Media ({message.type or 'file'})" if message.has_attachment else (message.body or "")
    return Notification(
        title=title,
        body=body,
        session_id=message.session_id,
        conversation_id=message.conversation_id,
        conversation_name=conversation.display_name or sender_name,
        is_group=conversation.is_group,
        created_at=created_at,
    )


class NotificationDispatcher:
    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_S,
        on_route: Optional[RouteCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._timeout = timeout
        self._on_route = on_route
        self._clock = clock
        self._current: Optional[Notification] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: list[NotificationListener] = []

    @property
    def current(self) -> Optional[Notification]:
        return self._current

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """Called with the new notice, or None when the notice clears."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def on_new_message(self, result: MergeResult) -> None:
        """Reconciler listener."""
        notification = build_notification(result, self._clock())
        if notification is not None:
            self.show(notification)

    def show(self, notification: Notification) -> None:
        self._cancel_timer()
        self._current = notification
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._timer = loop.call_later(self._timeout, self._expire, notification)
        else:
            logger.warning("No running event loop, notice will not auto-expire")
        self._notify(notification)

    def _expire(self, notification: Notification) -> None:
        if self._current is notification:
            self._timer = None
            self._clear()

    def dismiss(self) -> None:
        if self._current is not None:
            self._cancel_timer()
            self._clear()

    def click(self) -> Optional[tuple[str, str]]:
        """Route to the notice's conversation and clear it. Returns (session_id, conversation_id)."""
        notification = self._current
        if notification is None:
            return None
        self._cancel_timer()
        self._clear()
        target = (notification.session_id, notification.conversation_id)
        if self._on_route is not None:
            self._on_route(*target)
        return target

    def _clear(self) -> None:
        self._current = None
        self._notify(None)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self, notification: Optional[Notification]) -> None:
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")

    def close(self) -> None:
        self._cancel_timer()
        self._current = None
