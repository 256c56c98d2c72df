"""
Notifications: post-commit fan-out of job events.

Nothing here can affect a job transition. The job service hands requests
to the dispatcher only after the conditional write has committed.
"""

from .models import Notification, NotificationRequest, NotificationType
from .broadcast import Broadcaster, JOBS_UPDATED, NOTIFICATION
from .store import InMemoryNotificationStore, NotificationStore
from .dispatcher import NotificationDispatcher

__all__ = [
    "Notification",
    "NotificationRequest",
    "NotificationType",
    "Broadcaster",
    "JOBS_UPDATED",
    "NOTIFICATION",
    "InMemoryNotificationStore",
    "NotificationStore",
    "NotificationDispatcher",
]
