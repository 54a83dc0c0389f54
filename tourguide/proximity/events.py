from __future__ import annotations

import logging
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass

from tourguide.proximity.tiers import TierEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProximityNotification:
    conversation_id: str
    event: TierEvent


Listener = Callable[[ProximityNotification], None]


class NotificationBus:
    """Observer list for tier notifications, with a small per-session backlog for polling UIs."""

    def __init__(self, backlog: int = 20):
        self._listeners: list[Listener] = []
        self._recent: dict[str, deque[ProximityNotification]] = defaultdict(
            lambda: deque(maxlen=backlog)
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, notification: ProximityNotification) -> None:
        self._recent[notification.conversation_id].append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")

    def recent(self, conversation_id: str) -> list[ProximityNotification]:
        return list(self._recent.get(conversation_id, ()))

    def forget(self, conversation_id: str) -> None:
        self._recent.pop(conversation_id, None)
