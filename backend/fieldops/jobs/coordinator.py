"""
Transition coordinator: ordinary status changes.

Steps (each a possible terminal exit):
1. Load the job                            -> NOT_FOUND
2. Policy check (state machine + role)     -> INVALID_TRANSITION
3. DISPATCHED requires non-blank notes     -> MISSING_REQUIRED_NOTE
4. A technician must own the job           -> NOT_ASSIGNED
5. Derive side effects (completed_at / billed_at)
6. Build the history record
7. Conditional write keyed on the status read in step 1
8. CONFLICT if the status moved meanwhile  -> CONFLICT (never retried)

Steps 2-6 validate a snapshot that may be stale by step 7. Correctness
does not depend on it: the conditional write is the sole authority, and
a passing validation followed by a conflict is expected.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..actors.models import Actor, ActorRole
from .errors import (
    InvalidTransitionError,
    JobFailure,
    JobNotFoundError,
    MissingRequiredNoteError,
    NotAssignedError,
    TransitionConflictError,
)
from .models import Job, JobStatus, TransitionRecord, utcnow
from .results import Failure, Result, Success
from .state import TransitionPolicy
from .store import JobStore, WriteOutcome

logger = logging.getLogger(__name__)

# Targets whose transition must carry manager notes
NOTE_REQUIRED_TARGETS = frozenset({JobStatus.DISPATCHED})

# Statuses at or after ASSIGNED: a job in one of them must have a technician
ASSIGNEE_REQUIRED_STATUSES = frozenset({
    JobStatus.ASSIGNED,
    JobStatus.DISPATCHED,
    JobStatus.IN_PROGRESS,
    JobStatus.COMPLETED,
    JobStatus.BILLED,
})


def default_note(from_status: JobStatus, to_status: JobStatus) -> str:
    return f"Status changed from {from_status.value} to {to_status.value}"


class TransitionCoordinator:
    """
    Orchestrates validation, ownership checks and the conditional write
    for ordinary status changes.

    Holds no mutable state. Safe to share between concurrent callers.
    """

    def __init__(
        self,
        store: JobStore,
        policy: Optional[TransitionPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._policy = policy or TransitionPolicy()
        self._clock = clock

    def transition(
        self,
        job_id: str,
        target_status: JobStatus,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Result:
        """
        Move a job to target_status on behalf of actor.

        Args:
            job_id: Job to move
            target_status: Requested status
            actor: Acting identity (role taken as given)
            notes: Free-text notes; required when dispatching

        Returns:
            Success with the updated snapshot, or a typed Failure
        """
        logger.info(
            f"[TRANSITION] {actor.role.value} {actor.id} requests job {job_id} -> {target_status.value}"
        )
        try:
            job = self._transition(job_id, target_status, actor, notes)
        except JobFailure as e:
            if isinstance(e, TransitionConflictError):
                logger.warning(f"[TRANSITION] Conflict on job {job_id}: status moved before write")
            else:
                logger.info(f"[TRANSITION] Refused for job {job_id}: {e.kind.value}: {e.message}")
            return Failure.from_error(e)

        logger.info(
            f"[TRANSITION] Job {job_id} transitioned: "
            f"{job.status_history[-1].from_status.value} -> {job.status.value}"
        )
        return Success(job=job, message=f"Status updated to {job.status.value}")

    def _transition(
        self,
        job_id: str,
        target_status: JobStatus,
        actor: Actor,
        notes: Optional[str],
    ) -> Job:
        # 1. Load
        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        current_status = job.status

        # 2. State machine + role
        violation = self._policy.validate(current_status, target_status, actor.role)
        if violation is not None:
            raise InvalidTransitionError.from_violation(violation)

        if target_status in ASSIGNEE_REQUIRED_STATUSES and not job.assigned_technician:
            raise InvalidTransitionError(
                f"Job has no assigned technician. Assign one before moving to {target_status.value}",
                self._policy.valid_targets(current_status),
            )

        # 3. Dispatch notes
        if target_status in NOTE_REQUIRED_TARGETS and (not notes or not notes.strip()):
            raise MissingRequiredNoteError(target_status)

        # 4. Ownership
        if actor.role == ActorRole.TECHNICIAN and job.assigned_technician != actor.id:
            raise NotAssignedError(job_id, actor.id)

        # 5. Side effects
        now = self._clock()
        write_set: Dict[str, Any] = {"status": target_status}
        if target_status == JobStatus.COMPLETED:
            write_set["completed_at"] = now
        if target_status == JobStatus.BILLED:
            write_set["billed_at"] = now

        # 6. History record
        record = TransitionRecord(
            from_status=current_status,
            to_status=target_status,
            actor_id=actor.id,
            timestamp=now,
            notes=notes or default_note(current_status, target_status),
        )

        # 7. Conditional write
        result = self._store.attempt_transition(job_id, current_status, write_set, record)

        # 8. No retry: fresh state needs fresh validation by the caller
        if result.outcome == WriteOutcome.NOT_FOUND:
            raise JobNotFoundError(job_id)
        if result.outcome == WriteOutcome.CONFLICT:
            raise TransitionConflictError(job_id)
        return result.job
