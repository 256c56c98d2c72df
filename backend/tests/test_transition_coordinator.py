"""
Tests for the Transition Coordinator

QC: Verify that ordinary status changes:
1. Follow the lifecycle end to end with one history record per step
2. Refuse illegal moves, missing dispatch notes and foreign technicians
3. Stamp completed_at / billed_at exactly when those statuses land
4. Report CONFLICT (never retry) when the job moved after it was read
"""

from datetime import datetime, timezone

import pytest

from fieldops.jobs.coordinator import TransitionCoordinator
from fieldops.jobs.errors import FailureKind
from fieldops.jobs.models import JobStatus
from fieldops.jobs.results import failure_kind
from fieldops.jobs.service import JobService

from conftest import ADMIN, MANAGER, TECH, TECH_2, StaleReadStore, advance, create_job


FIXED_NOW = datetime(2030, 1, 15, 9, 30, tzinfo=timezone.utc)


class TestHappyPath:
    """Lifecycle from TENTATIVE to BILLED."""

    @pytest.mark.parametrize("target,history_length", [
        (JobStatus.TENTATIVE, 1),
        (JobStatus.CONFIRMED, 2),
        (JobStatus.ASSIGNED, 3),
        (JobStatus.DISPATCHED, 4),
        (JobStatus.IN_PROGRESS, 5),
        (JobStatus.COMPLETED, 6),
        (JobStatus.BILLED, 7),
    ])
    def test_history_length_tracks_position(self, service, target, history_length):
        job = advance(service, create_job(service.store).id, target)

        assert job.status == target
        assert len(job.status_history) == history_length
        assert job.status_history[-1].to_status == target

    def test_full_lifecycle_records(self, service):
        """
        GIVEN: A new job
        WHEN: It is driven to BILLED by the roles the table requires
        THEN: History chains, actors are recorded, dispatch notes are kept
        """
        job = advance(service, create_job(service.store).id, JobStatus.BILLED)
        history = job.status_history

        assert [r.to_status for r in history] == list(JobStatus)
        assert [r.from_status for r in history] == [None] + list(JobStatus)[:-1]
        assert [r.actor_id for r in history] == [
            ADMIN.id, ADMIN.id, ADMIN.id, MANAGER.id, TECH.id, TECH.id, MANAGER.id,
        ]
        assert history[3].notes == "Bring the long ladder"
        assert history[1].notes == "Status changed from TENTATIVE to CONFIRMED"
        assert job.assigned_technician == TECH.id

    def test_success_message(self, service):
        job = create_job(service.store)
        result = service.transition(job.id, JobStatus.CONFIRMED, ADMIN)

        assert result.ok
        assert result.message == "Status updated to CONFIRMED"
        assert failure_kind(result) is None

    def test_explicit_notes_replace_default(self, service):
        job = create_job(service.store)
        result = service.transition(job.id, JobStatus.CONFIRMED, ADMIN, "Customer called back")
        assert result.job.status_history[-1].notes == "Customer called back"


class TestTimestamps:
    """completed_at and billed_at are set once, by the landing transition."""

    def test_completed_and_billed_stamped_from_clock(self, store, directory):
        service = JobService(store, directory)
        service.transitions = TransitionCoordinator(store, clock=lambda: FIXED_NOW)

        job = advance(service, create_job(store).id, JobStatus.IN_PROGRESS)
        assert job.completed_at is None
        assert job.billed_at is None

        completed = advance(service, job.id, JobStatus.COMPLETED)
        assert completed.completed_at == FIXED_NOW
        assert completed.billed_at is None
        assert completed.status_history[-1].timestamp == FIXED_NOW

        billed = advance(service, job.id, JobStatus.BILLED)
        assert billed.completed_at == FIXED_NOW
        assert billed.billed_at == FIXED_NOW


class TestRefusals:
    """Refused transitions write nothing."""

    def test_missing_job(self, service):
        result = service.transition("no-such-job", JobStatus.CONFIRMED, ADMIN)

        assert not result.ok
        assert result.kind == FailureKind.NOT_FOUND
        assert result.message == "Job not found: no-such-job"

    def test_skipping_a_step(self, service):
        job = create_job(service.store)
        result = service.transition(job.id, JobStatus.DISPATCHED, ADMIN)

        assert result.kind == FailureKind.INVALID_TRANSITION
        assert result.valid_targets == [JobStatus.CONFIRMED]
        assert len(service.store.get_job(job.id).status_history) == 1

    def test_wrong_role(self, service):
        job = create_job(service.store)
        result = service.transition(job.id, JobStatus.CONFIRMED, MANAGER)
        assert result.kind == FailureKind.INVALID_TRANSITION
        assert service.store.get_job(job.id).status == JobStatus.TENTATIVE

    def test_plain_transition_to_assigned_needs_a_technician(self, service):
        job = advance(service, create_job(service.store).id, JobStatus.CONFIRMED)
        result = service.transition(job.id, JobStatus.ASSIGNED, ADMIN)

        assert result.kind == FailureKind.INVALID_TRANSITION
        assert "no assigned technician" in result.message

    @pytest.mark.parametrize("notes", [None, "", "   "])
    def test_dispatch_requires_notes(self, service, notes):
        job = advance(service, create_job(service.store).id, JobStatus.ASSIGNED)
        result = service.transition(job.id, JobStatus.DISPATCHED, MANAGER, notes)

        assert result.kind == FailureKind.MISSING_REQUIRED_NOTE
        assert service.store.get_job(job.id).status == JobStatus.ASSIGNED

    def test_other_technician_is_not_assigned(self, service):
        job = advance(service, create_job(service.store).id, JobStatus.DISPATCHED)
        result = service.transition(job.id, JobStatus.IN_PROGRESS, TECH_2)

        assert result.kind == FailureKind.NOT_ASSIGNED
        assert result.message == "You are not assigned to this job"
        assert service.store.get_job(job.id).status == JobStatus.DISPATCHED

    @pytest.mark.parametrize("target", [s for s in JobStatus if s != JobStatus.BILLED])
    def test_billed_is_terminal(self, service, target):
        job = advance(service, create_job(service.store).id, JobStatus.BILLED)
        result = service.transition(job.id, target, ADMIN)

        assert result.kind == FailureKind.INVALID_TRANSITION
        assert "none (terminal state)" in result.message
        assert result.valid_targets == []
        assert len(service.store.get_job(job.id).status_history) == 7


class TestStaleSnapshot:
    """Validation passes on a stale read; the conditional write decides."""

    def test_conflict_when_job_moves_between_read_and_write(self, service):
        """
        GIVEN: An ASSIGNED job read by a manager
        WHEN: Another manager dispatches it before the first write lands
        THEN: The first request gets CONFLICT and history has one dispatch
        """
        job = advance(service, create_job(service.store).id, JobStatus.ASSIGNED)

        def other_manager_dispatches(job_id):
            assert service.transitions.transition(
                job_id, JobStatus.DISPATCHED, MANAGER, "Other manager's note"
            ).ok

        stale = StaleReadStore(service.store, other_manager_dispatches)
        result = TransitionCoordinator(stale).transition(
            job.id, JobStatus.DISPATCHED, MANAGER, "First manager's note"
        )

        assert result.kind == FailureKind.CONFLICT
        assert "refresh and retry" in result.message
        history = service.store.get_job(job.id).status_history
        assert [r.to_status for r in history].count(JobStatus.DISPATCHED) == 1
        assert history[-1].notes == "Other manager's note"

    def test_not_found_when_job_deleted_between_read_and_write(self, service):
        job = create_job(service.store)

        def admin_deletes(job_id):
            assert service.delete_job(job_id, ADMIN).ok

        stale = StaleReadStore(service.store, admin_deletes)
        result = TransitionCoordinator(stale).transition(job.id, JobStatus.CONFIRMED, ADMIN)

        assert result.kind == FailureKind.NOT_FOUND
