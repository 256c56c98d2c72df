"""
Notification storage.

PersistenceManager implements the same interface on SQLite.
"""

import threading
from typing import Iterable, List, Protocol

from .models import Notification


class NotificationStore(Protocol):
    """Persists per-recipient notifications."""

    def save_notifications(self, notifications: Iterable[Notification]) -> int:
        ...

    def list_notifications(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        ...

    def mark_read(self, notification_id: str, recipient_id: str) -> bool:
        ...

    def mark_all_read(self, recipient_id: str) -> int:
        ...

    def count_unread(self, recipient_id: str) -> int:
        ...


class InMemoryNotificationStore:
    """List-backed notification store."""

    def __init__(self):
        self._notifications: List[Notification] = []
        self._lock = threading.Lock()

    def save_notifications(self, notifications: Iterable[Notification]) -> int:
        batch = [n.model_copy() for n in notifications]
        with self._lock:
            self._notifications.extend(batch)
        return len(batch)

    def list_notifications(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        with self._lock:
            matches = [
                n.model_copy() for n in self._notifications
                if n.recipient_id == recipient_id and not (unread_only and n.read)
            ]
        matches.sort(key=lambda n: n.created_at, reverse=True)
        return matches[:limit]

    def mark_read(self, notification_id: str, recipient_id: str) -> bool:
        with self._lock:
            for n in self._notifications:
                if n.id == notification_id and n.recipient_id == recipient_id:
                    n.read = True
                    return True
        return False

    def mark_all_read(self, recipient_id: str) -> int:
        count = 0
        with self._lock:
            for n in self._notifications:
                if n.recipient_id == recipient_id and not n.read:
                    n.read = True
                    count += 1
        return count

    def count_unread(self, recipient_id: str) -> int:
        with self._lock:
            return sum(1 for n in self._notifications if n.recipient_id == recipient_id and not n.read)
