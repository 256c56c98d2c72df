"""
Notification Tests

QC tests proving:
1. Recipient rules follow job visibility (technicians only after dispatch)
2. The dispatcher delivers in order, never blocks, survives failures
3. Post-commit failures never change a committed result
4. Both notification stores scope reads and marks to the recipient
"""

import logging

import pytest

from fieldops.actors.directory import InMemoryActorDirectory
from fieldops.actors.models import Actor, ActorRole
from fieldops.jobs.models import JobStatus
from fieldops.jobs.service import JobService
from fieldops.notifications import rules
from fieldops.notifications.broadcast import JOBS_UPDATED, NOTIFICATION, Broadcaster
from fieldops.notifications.dispatcher import NotificationDispatcher
from fieldops.notifications.models import Notification, NotificationRequest, NotificationType
from fieldops.notifications.store import InMemoryNotificationStore
from fieldops.persistence.manager import PersistenceManager

from conftest import ADMIN, ADMIN_2, MANAGER, TECH, TECH_2, advance, create_job


# =============================================================================
# Test Helpers
# =============================================================================

class RecordingBroadcaster(Broadcaster):
    def __init__(self):
        super().__init__()
        self.events = []
        self.subscribe(lambda event, payload: self.events.append((event, payload)))


class ExplodingDispatcher:
    def submit(self, request):
        raise RuntimeError("notification backend down")


class ExplodingBroadcaster:
    def publish(self, event, payload=None):
        raise RuntimeError("socket layer down")


class FlakyStore(InMemoryNotificationStore):
    """Fails the first save, then behaves."""

    def __init__(self):
        super().__init__()
        self.failed = False

    def save_notifications(self, notifications):
        if not self.failed:
            self.failed = True
            raise RuntimeError("disk full")
        return super().save_notifications(notifications)


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def dispatcher(directory, notification_store):
    dispatcher = NotificationDispatcher(directory, notification_store)
    dispatcher.start()
    yield dispatcher
    dispatcher.stop()


def recipients_of(dispatcher, request):
    return set(dispatcher.resolve_recipients(request)) if request else set()


# =============================================================================
# Recipient rules
# =============================================================================

class TestRecipientRules:

    def test_created_job_goes_to_other_admins(self, service, dispatcher):
        job = create_job(service.store)
        request = rules.job_created(job, ADMIN)

        assert request.type == NotificationType.JOB_CREATED
        assert recipients_of(dispatcher, request) == {ADMIN_2.id}
        assert 'New job created by Ada Admin: "Fix boiler"' in request.message

    def test_assignment_goes_to_managers_not_technician(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.ASSIGNED)
        request = rules.job_assigned(job, "Tom Tech", ADMIN)

        assert recipients_of(dispatcher, request) == {MANAGER.id}

    def test_dispatch_goes_to_assigned_technician(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.DISPATCHED)
        request = rules.status_changed(job, MANAGER)

        assert request.type == NotificationType.JOB_DISPATCHED
        assert recipients_of(dispatcher, request) == {TECH.id}
        assert "dispatched to you" in request.message

    def test_completion_goes_to_office_not_technician(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.COMPLETED)
        request = rules.status_changed(job, TECH)

        assert request.type == NotificationType.JOB_COMPLETED
        assert recipients_of(dispatcher, request) == {ADMIN.id, ADMIN_2.id, MANAGER.id}

    def test_billing_goes_to_admins(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.BILLED)
        request = rules.status_changed(job, MANAGER)

        assert recipients_of(dispatcher, request) == {ADMIN.id, ADMIN_2.id}

    def test_reassignment_names_both_technicians(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.ASSIGNED)
        request = rules.job_reassigned(job, "Tom Tech", "Tina Tech", ADMIN)

        assert request.type == NotificationType.JOB_REASSIGNED
        assert "reassigned from Tom Tech to Tina Tech" in request.message
        assert recipients_of(dispatcher, request) == {MANAGER.id}

    def test_update_of_tentative_job_stays_with_admins(self, service, dispatcher):
        job = create_job(service.store)
        assert recipients_of(dispatcher, rules.job_updated(job, ADMIN)) == {ADMIN_2.id}

    def test_update_of_dispatched_job_reaches_technician(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.DISPATCHED)
        assert recipients_of(dispatcher, rules.job_updated(job, MANAGER)) == {
            ADMIN.id, ADMIN_2.id, TECH.id,
        }

    def test_deleting_tentative_job_notifies_nobody(self, service):
        assert rules.job_deleted(create_job(service.store), ADMIN) is None

    def test_deleting_dispatched_job(self, service, dispatcher):
        job = advance(service, create_job(service.store).id, JobStatus.DISPATCHED)
        request = rules.job_deleted(job, ADMIN)

        assert request.job_id is None
        assert recipients_of(dispatcher, request) == {MANAGER.id, TECH.id}

    def test_inactive_role_holders_are_skipped(self, notification_store):
        directory = InMemoryActorDirectory([
            ADMIN,
            Actor(id="manager-old", role=ActorRole.OFFICE_MANAGER, active=False),
            MANAGER,
        ])
        dispatcher = NotificationDispatcher(directory, notification_store)
        request = NotificationRequest(
            type=NotificationType.JOB_ASSIGNED,
            message="m",
            recipient_roles=[ActorRole.OFFICE_MANAGER],
        )
        assert dispatcher.resolve_recipients(request) == [MANAGER.id]

    def test_explicit_ids_come_first_without_duplicates(self, dispatcher):
        request = NotificationRequest(
            type=NotificationType.JOB_UPDATED,
            message="m",
            recipient_ids=[TECH_2.id, MANAGER.id],
            recipient_roles=[ActorRole.OFFICE_MANAGER, ActorRole.ADMIN],
            exclude_actor_id=ADMIN.id,
        )
        assert dispatcher.resolve_recipients(request) == [TECH_2.id, MANAGER.id, ADMIN_2.id]


# =============================================================================
# Dispatcher
# =============================================================================

class TestDispatcher:

    def test_deliver_persists_one_row_per_recipient(self, directory, notification_store):
        broadcaster = RecordingBroadcaster()
        dispatcher = NotificationDispatcher(directory, notification_store, broadcaster)
        request = NotificationRequest(
            type=NotificationType.JOB_CONFIRMED,
            message="Job confirmed",
            job_id="job-1",
            recipient_roles=[ActorRole.ADMIN, ActorRole.OFFICE_MANAGER],
            exclude_actor_id=ADMIN.id,
        )

        delivered = dispatcher.deliver(request)

        assert {n.recipient_id for n in delivered} == {ADMIN_2.id, MANAGER.id}
        assert notification_store.list_notifications(MANAGER.id)[0].job_id == "job-1"
        assert broadcaster.events[0][0] == NOTIFICATION
        assert broadcaster.events[0][1]["type"] == "JOB_CONFIRMED"

    def test_worker_delivers_in_submission_order(self, directory, notification_store):
        broadcaster = RecordingBroadcaster()
        dispatcher = NotificationDispatcher(directory, notification_store, broadcaster)
        dispatcher.start()
        try:
            for i in range(5):
                assert dispatcher.submit(NotificationRequest(
                    type=NotificationType.JOB_UPDATED,
                    message=f"update {i}",
                    recipient_ids=[TECH.id],
                ))
            dispatcher.flush()
        finally:
            dispatcher.stop()

        assert [p["message"] for _, p in broadcaster.events] == [f"update {i}" for i in range(5)]
        assert len(notification_store.list_notifications(TECH.id)) == 5

    def test_full_queue_drops_without_blocking(self, directory, notification_store, caplog):
        dispatcher = NotificationDispatcher(directory, notification_store, max_queue_size=1)
        request = NotificationRequest(
            type=NotificationType.JOB_UPDATED, message="m", recipient_ids=[TECH.id]
        )

        with caplog.at_level(logging.WARNING):
            assert dispatcher.submit(request) is True
            assert dispatcher.submit(request) is False

        assert "[NOTIFY] Queue full" in caplog.text

    def test_worker_survives_a_failed_delivery(self, directory):
        store = FlakyStore()
        dispatcher = NotificationDispatcher(directory, store)
        dispatcher.start()
        try:
            for message in ("lost", "kept"):
                dispatcher.submit(NotificationRequest(
                    type=NotificationType.JOB_UPDATED, message=message, recipient_ids=[TECH.id]
                ))
            dispatcher.flush()
        finally:
            dispatcher.stop()

        assert [n.message for n in store.list_notifications(TECH.id)] == ["kept"]

    def test_stop_drains_queue(self, directory, notification_store):
        dispatcher = NotificationDispatcher(directory, notification_store)
        dispatcher.submit(NotificationRequest(
            type=NotificationType.JOB_UPDATED, message="queued", recipient_ids=[TECH.id]
        ))
        dispatcher.start()
        dispatcher.stop()

        assert not dispatcher.is_running
        assert len(notification_store.list_notifications(TECH.id)) == 1


# =============================================================================
# Broadcaster
# =============================================================================

class TestBroadcaster:

    def test_failing_subscriber_is_skipped(self):
        broadcaster = Broadcaster()
        received = []

        def broken(event, payload):
            raise RuntimeError("socket closed")

        broadcaster.subscribe(broken)
        broadcaster.subscribe(lambda event, payload: received.append(event))

        assert broadcaster.publish(JOBS_UPDATED) == 1
        assert received == [JOBS_UPDATED]

    def test_unsubscribe(self):
        broadcaster = Broadcaster()
        received = []
        unsubscribe = broadcaster.subscribe(lambda event, payload: received.append(event))

        unsubscribe()
        unsubscribe()

        assert broadcaster.publish(JOBS_UPDATED) == 0
        assert received == []


# =============================================================================
# Post-commit isolation
# =============================================================================

class TestPostCommit:

    def test_committed_transition_notifies_and_broadcasts(self, store, directory, notification_store):
        broadcaster = RecordingBroadcaster()
        dispatcher = NotificationDispatcher(directory, notification_store, broadcaster)
        service = JobService(store, directory, dispatcher=dispatcher, broadcaster=broadcaster)
        dispatcher.start()
        try:
            job = advance(service, create_job(store).id, JobStatus.DISPATCHED)
            dispatcher.flush()
        finally:
            dispatcher.stop()

        inbox = notification_store.list_notifications(TECH.id)
        assert [n.type for n in inbox] == [NotificationType.JOB_DISPATCHED]
        assert inbox[0].job_id == job.id
        assert [e for e, _ in broadcaster.events].count(JOBS_UPDATED) == 3

    def test_refused_operation_notifies_nobody(self, store, directory, notification_store):
        broadcaster = RecordingBroadcaster()
        dispatcher = NotificationDispatcher(directory, notification_store, broadcaster)
        service = JobService(store, directory, dispatcher=dispatcher, broadcaster=broadcaster)
        job = create_job(store)

        assert not service.transition(job.id, JobStatus.BILLED, ADMIN).ok
        assert broadcaster.events == []
        dispatcher.start()
        dispatcher.stop()
        assert notification_store.list_notifications(ADMIN_2.id) == []

    def test_failing_collaborators_do_not_change_result(self, store, directory):
        service = JobService(
            store,
            directory,
            dispatcher=ExplodingDispatcher(),
            broadcaster=ExplodingBroadcaster(),
        )
        job = create_job(store)

        result = service.transition(job.id, JobStatus.CONFIRMED, ADMIN)

        assert result.ok
        assert store.get_job(job.id).status == JobStatus.CONFIRMED


# =============================================================================
# Notification stores
# =============================================================================

@pytest.fixture(params=["memory", "sqlite"])
def any_notification_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryNotificationStore()
    return PersistenceManager(db_path=str(tmp_path / "notifications.db"))


def test_store_scopes_reads_and_marks(any_notification_store):
    store = any_notification_store
    mine = [
        Notification(recipient_id=TECH.id, type=NotificationType.JOB_UPDATED, message=f"m{i}")
        for i in range(3)
    ]
    theirs = Notification(recipient_id=TECH_2.id, type=NotificationType.JOB_UPDATED, message="x")
    assert store.save_notifications(mine + [theirs]) == 4

    assert len(store.list_notifications(TECH.id)) == 3
    assert store.mark_read(theirs.id, TECH.id) is False
    assert store.mark_read(mine[0].id, TECH.id) is True
    assert len(store.list_notifications(TECH.id, unread_only=True)) == 2
    assert store.mark_all_read(TECH.id) == 2
    assert store.list_notifications(TECH.id, unread_only=True) == []
    assert store.list_notifications(TECH_2.id, unread_only=True)[0].id == theirs.id
    assert len(store.list_notifications(TECH.id, limit=1)) == 1


def test_unread_count_is_not_capped_by_page_size(any_notification_store):
    """
    GIVEN: Five unread notifications for one recipient and one for another
    WHEN: A page of two is listed
    THEN: count_unread still reports all five, and tracks marks
    """
    store = any_notification_store
    mine = [
        Notification(recipient_id=TECH.id, type=NotificationType.JOB_UPDATED, message=f"m{i}")
        for i in range(5)
    ]
    store.save_notifications(mine)
    store.save_notifications([
        Notification(recipient_id=TECH_2.id, type=NotificationType.JOB_UPDATED, message="x"),
    ])

    assert len(store.list_notifications(TECH.id, limit=2)) == 2
    assert store.count_unread(TECH.id) == 5

    store.mark_read(mine[0].id, TECH.id)
    assert store.count_unread(TECH.id) == 4
    assert store.count_unread(TECH_2.id) == 1
    store.mark_all_read(TECH.id)
    assert store.count_unread(TECH.id) == 0
    assert store.count_unread("nobody") == 0
