"""
Technician assignment.

AssignmentCoordinator: first assignment, the fixed transition
CONFIRMED -> ASSIGNED, with the extra precondition that the assignee
resolves to a TECHNICIAN.

ReassignmentHandler: out-of-band move of an ASSIGNED, DISPATCHED or
IN_PROGRESS job back to ASSIGNED under a new technician. The history
record's from_status is whatever status the job was actually in, so a
DISPATCHED or IN_PROGRESS job is deliberately rewound.

Both use the same conditional-write discipline as ordinary transitions.
Reassignment is guarded on the status read at the start of the
operation, so it cannot overwrite a concurrent status change.
"""

import logging
from datetime import datetime
from typing import Callable, FrozenSet, Optional

from ..actors.directory import ActorDirectory
from ..actors.models import Actor, ActorRole
from .errors import (
    ActorNotFoundError,
    InvalidAssigneeError,
    InvalidTransitionError,
    JobFailure,
    JobNotFoundError,
    TerminalStateError,
    TransitionConflictError,
)
from .models import Job, JobStatus, TransitionRecord, utcnow
from .results import Failure, Result, Success
from .state import REASSIGNABLE_STATUSES, TransitionPolicy
from .store import JobStore, WriteOutcome

logger = logging.getLogger(__name__)


def _resolve_technician(directory: ActorDirectory, technician_id: str) -> Actor:
    technician = directory.resolve(technician_id)
    if technician is None:
        raise ActorNotFoundError(technician_id)
    if technician.role != ActorRole.TECHNICIAN:
        raise InvalidAssigneeError(technician_id)
    return technician


class AssignmentCoordinator:
    """Assigns a technician to a CONFIRMED job."""

    def __init__(
        self,
        store: JobStore,
        directory: ActorDirectory,
        policy: Optional[TransitionPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._directory = directory
        self._policy = policy or TransitionPolicy()
        self._clock = clock

    def assign(
        self,
        job_id: str,
        technician_id: str,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Result:
        """
        Assign technician_id to a CONFIRMED job.

        Args:
            job_id: Job to assign
            technician_id: Actor id of the technician
            actor: Acting identity
            notes: Optional history notes (defaults to "Assigned to <name>")

        Returns:
            Success with the updated snapshot, or a typed Failure
        """
        try:
            job = self._assign(job_id, technician_id, actor, notes)
        except JobFailure as e:
            logger.info(f"[ASSIGN] Refused for job {job_id}: {e.kind.value}: {e.message}")
            return Failure.from_error(e)

        logger.info(f"[ASSIGN] Job {job_id} assigned to {technician_id} by {actor.id}")
        return Success(job=job, message="Technician assigned")

    def _assign(
        self,
        job_id: str,
        technician_id: str,
        actor: Actor,
        notes: Optional[str],
    ) -> Job:
        technician = _resolve_technician(self._directory, technician_id)

        violation = self._policy.validate(JobStatus.CONFIRMED, JobStatus.ASSIGNED, actor.role)
        if violation is not None:
            raise InvalidTransitionError.from_violation(violation)

        now = self._clock()
        record = TransitionRecord(
            from_status=JobStatus.CONFIRMED,
            to_status=JobStatus.ASSIGNED,
            actor_id=actor.id,
            timestamp=now,
            notes=notes or f"Assigned to {technician.display_name}",
        )
        result = self._store.attempt_transition(
            job_id,
            JobStatus.CONFIRMED,
            {"status": JobStatus.ASSIGNED, "assigned_technician": technician.id},
            record,
        )

        if result.outcome == WriteOutcome.NOT_FOUND:
            raise JobNotFoundError(job_id)
        if result.outcome == WriteOutcome.CONFLICT:
            raise self._diagnose_conflict(job_id)
        return result.job

    def _diagnose_conflict(self, job_id: str) -> JobFailure:
        """
        Compose a precise diagnostic for a failed assignment write.

        Advisory read only. Its result is never used to retry the write.
        """
        current = self._store.get_job(job_id)
        if current is None:
            return JobNotFoundError(job_id)
        if self._policy.is_terminal(current.status):
            return TerminalStateError(job_id, "assigned")
        return TransitionConflictError(
            job_id,
            f"Job must be CONFIRMED to assign. Current status: {current.status.value}",
        )


class ReassignmentHandler:
    """
    Hands an in-flight job to a different technician.

    Only roles in reassign_roles may reassign (ADMIN by default).
    """

    def __init__(
        self,
        store: JobStore,
        directory: ActorDirectory,
        policy: Optional[TransitionPolicy] = None,
        reassign_roles: FrozenSet[ActorRole] = frozenset({ActorRole.ADMIN}),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._directory = directory
        self._policy = policy or TransitionPolicy()
        self._reassign_roles = frozenset(reassign_roles)
        self._clock = clock

    def reassign(
        self,
        job_id: str,
        technician_id: str,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Result:
        """
        Reassign a job and rewind it to ASSIGNED.

        Args:
            job_id: Job to reassign
            technician_id: Actor id of the new technician
            actor: Acting identity
            notes: Optional history notes
                (defaults to "Reassigned from <old> to <new>")

        Returns:
            Success with the updated snapshot and the previous assignee,
            or a typed Failure
        """
        try:
            job, previous = self._reassign(job_id, technician_id, actor, notes)
        except JobFailure as e:
            if isinstance(e, TransitionConflictError):
                logger.warning(f"[REASSIGN] Conflict on job {job_id}: status moved before write")
            else:
                logger.info(f"[REASSIGN] Refused for job {job_id}: {e.kind.value}: {e.message}")
            return Failure.from_error(e)

        logger.info(
            f"[REASSIGN] Job {job_id} reassigned from {previous} to {technician_id} "
            f"(was {job.status_history[-1].from_status.value})"
        )
        technician = self._directory.resolve(technician_id)
        return Success(
            job=job,
            message=f"Reassigned to {technician.display_name if technician else technician_id}",
            previous_assignee=previous,
        )

    def _reassign(
        self,
        job_id: str,
        technician_id: str,
        actor: Actor,
        notes: Optional[str],
    ):
        if actor.role not in self._reassign_roles:
            allowed = ", ".join(r.value for r in ActorRole if r in self._reassign_roles)
            raise InvalidTransitionError(
                f"Role {actor.role.value} cannot reassign jobs. Allowed: {allowed}"
            )

        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        current_status = job.status

        if self._policy.is_terminal(current_status):
            raise TerminalStateError(job_id, "reassigned")
        if current_status not in REASSIGNABLE_STATUSES:
            allowed = ", ".join(s.value for s in JobStatus if s in REASSIGNABLE_STATUSES)
            raise InvalidTransitionError(
                f"Cannot reassign a job in {current_status.value} status. "
                f"Job must be in {allowed}."
            )

        technician = _resolve_technician(self._directory, technician_id)

        previous = job.assigned_technician
        previous_actor = self._directory.resolve(previous) if previous else None
        old_name = previous_actor.display_name if previous_actor else "previous technician"

        now = self._clock()
        record = TransitionRecord(
            from_status=current_status,
            to_status=JobStatus.ASSIGNED,
            actor_id=actor.id,
            timestamp=now,
            notes=notes or f"Reassigned from {old_name} to {technician.display_name}",
        )
        result = self._store.attempt_transition(
            job_id,
            current_status,
            {"status": JobStatus.ASSIGNED, "assigned_technician": technician.id},
            record,
        )

        if result.outcome == WriteOutcome.NOT_FOUND:
            raise JobNotFoundError(job_id)
        if result.outcome == WriteOutcome.CONFLICT:
            raise TransitionConflictError(job_id)
        return result.job, previous
