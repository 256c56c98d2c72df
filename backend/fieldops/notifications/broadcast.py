"""
Best-effort broadcast channel.

Subscribers (e.g. a websocket fan-out) receive generic events such as
"jobs:updated". There is no delivery guarantee and no acknowledgment:
a failing subscriber is logged and skipped.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

JOBS_UPDATED = "jobs:updated"
NOTIFICATION = "notification"

Subscriber = Callable[[str, Dict[str, Any]], None]


class Broadcaster:
    """In-process publish/subscribe for job change signals."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver an event to every subscriber.

        Returns:
            Number of subscribers that accepted the event
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for callback in subscribers:
            try:
                callback(event, payload or {})
                delivered += 1
            except Exception:
                logger.exception(f"[BROADCAST] Subscriber failed for event '{event}'")
        return delivered
