"""
Asynchronous notification dispatcher.

The job service hands a NotificationRequest to submit() after a write has
committed. submit() never blocks and never raises: requests go onto a
bounded queue drained by a single worker thread, so a slow or failing
notification path cannot affect a transition's result.

Ordering: requests are delivered in submission order (single worker).
Backpressure: when the queue is full the request is dropped and logged.
"""

import logging
import queue
import threading
from typing import List, Optional

from ..actors.directory import ActorDirectory
from .broadcast import NOTIFICATION, Broadcaster
from .models import Notification, NotificationRequest
from .store import NotificationStore

logger = logging.getLogger(__name__)

_STOP = object()


class NotificationDispatcher:
    """
    Single-worker FIFO dispatcher for job notifications.

    Lifecycle is explicit: start() before use, stop() on shutdown.
    Requests submitted while stopped stay queued until start().
    """

    def __init__(
        self,
        directory: ActorDirectory,
        store: NotificationStore,
        broadcaster: Optional[Broadcaster] = None,
        max_queue_size: int = 1000,
    ):
        self._directory = directory
        self._store = store
        self._broadcaster = broadcaster
        self._queue: "queue.Queue" = queue.Queue(maxsize=max_queue_size)
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        """Start the worker thread (no-op if already running)."""
        with self._lock:
            if self.is_running:
                return
            self._worker = threading.Thread(
                target=self._run,
                name="notification-dispatcher",
                daemon=True,
            )
            self._worker.start()
        logger.info("[NOTIFY] Dispatcher started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Drain queued requests, then stop the worker."""
        with self._lock:
            worker = self._worker
            if worker is None:
                return
            self._queue.put(_STOP)
            self._worker = None
        worker.join(timeout)
        logger.info("[NOTIFY] Dispatcher stopped")

    def flush(self) -> None:
        """Block until every submitted request has been processed."""
        self._queue.join()

    def submit(self, request: NotificationRequest) -> bool:
        """
        Hand off a request without blocking.

        Returns:
            True if queued, False if dropped because the queue is full
        """
        try:
            self._queue.put_nowait(request)
            return True
        except queue.Full:
            logger.warning(
                f"[NOTIFY] Queue full, dropping {request.type.value} for job {request.job_id}"
            )
            return False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.deliver(item)
            except Exception:
                logger.exception("[NOTIFY] Failed to deliver notification")
            finally:
                self._queue.task_done()

    def resolve_recipients(self, request: NotificationRequest) -> List[str]:
        """
        Union of explicit ids and active role holders, minus the actor.

        Order is stable: explicit ids first, then role holders.
        """
        recipients: List[str] = []
        for actor_id in request.recipient_ids:
            if actor_id not in recipients:
                recipients.append(actor_id)

        if request.recipient_roles:
            for actor in self._directory.list_by_role(request.recipient_roles):
                if actor.id not in recipients:
                    recipients.append(actor.id)

        if request.exclude_actor_id:
            recipients = [r for r in recipients if r != request.exclude_actor_id]
        return recipients

    def deliver(self, request: NotificationRequest) -> List[Notification]:
        """
        Persist one notification per recipient and push a real-time event.

        Runs on the worker thread; callable directly for synchronous use.
        """
        recipients = self.resolve_recipients(request)
        if not recipients:
            return []

        notifications = [
            Notification(
                recipient_id=recipient_id,
                type=request.type,
                message=request.message,
                job_id=request.job_id,
            )
            for recipient_id in recipients
        ]
        self._store.save_notifications(notifications)
        logger.info(
            f"[NOTIFY] {request.type.value} delivered to {len(notifications)} recipient(s)"
        )

        if self._broadcaster is not None:
            self._broadcaster.publish(NOTIFICATION, {
                "type": request.type.value,
                "message": request.message,
                "job_id": request.job_id,
                "recipient_ids": recipients,
            })
        return notifications
