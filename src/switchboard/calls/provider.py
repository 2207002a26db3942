"""
Provider-originated call alerts.

Calls placed through the messaging provider cannot be negotiated from the
dashboard, so these only ever become dismiss-only notices. No state is kept.
"""

import logging
import time
from typing import Callable

from switchboard.models.events import ProviderCallAlert
from switchboard.models.notification import ProviderCallNotice
from switchboard.router import EventRouter

NoticeListener = Callable[[ProviderCallNotice], None]

logger = logging.getLogger(__name__)


class ProviderCallNotifier:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._listeners: list[NoticeListener] = []

    def register(self, router: EventRouter) -> None:
        router.register(ProviderCallAlert, self.forward)

    def add_listener(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def forward(self, alert: ProviderCallAlert) -> ProviderCallNotice:
        notice = ProviderCallNotice(
            session_id=alert.session_id,
            caller_id=alert.caller_id,
            is_video=alert.is_video,
            received_at=self._clock(),
        )
        logger.info("Provider call from %s on session %s", alert.caller_id, alert.session_id)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Provider call listener failed")
        return notice
