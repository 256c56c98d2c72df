"""
Job creation, detail edits and deletion.

Detail edits bypass the state machine but still honour the terminal-state
invariant: a BILLED job can be neither edited nor deleted. Both writes
are guarded on the status read at the start, so an edit or delete racing
a transition into BILLED conflicts instead of landing on a billed job.

status, status_history, assigned_technician and created_by are stripped
from every edit. They change only through the coordinators.
"""

import logging
import math
from datetime import datetime
from typing import Any, Callable, FrozenSet, List, Mapping, Optional, Union

from ..actors.models import Actor, ActorRole
from .errors import (
    InvalidTransitionError,
    JobFailure,
    JobNotFoundError,
    TerminalStateError,
    TransitionConflictError,
)
from .models import (
    Job,
    JobCreateRequest,
    JobDetailsUpdate,
    JobHistory,
    JobPage,
    JobStatus,
    TransitionRecord,
    utcnow,
)
from .results import Failure, Result, Success
from .state import TransitionPolicy
from .store import JobStore, WriteOutcome

logger = logging.getLogger(__name__)

CREATE_ROLES: FrozenSet[ActorRole] = frozenset({ActorRole.ADMIN})
EDIT_ROLES: FrozenSet[ActorRole] = frozenset({ActorRole.ADMIN, ActorRole.OFFICE_MANAGER})
DELETE_ROLES: FrozenSet[ActorRole] = frozenset({ActorRole.ADMIN})

DEFAULT_PAGE_SIZE = 20


def _require_role(actor: Actor, roles: FrozenSet[ActorRole], action: str) -> None:
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in ActorRole if r in roles)
        raise InvalidTransitionError(
            f"Role {actor.role.value} cannot {action} jobs. Allowed: {allowed}"
        )


class JobDetailsService:
    """Everything about a job that is not a status transition."""

    def __init__(
        self,
        store: JobStore,
        policy: Optional[TransitionPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._policy = policy or TransitionPolicy()
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Result:
        job = self._store.get_job(job_id)
        if job is None:
            return Failure.from_error(JobNotFoundError(job_id))
        return Success(job=job)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
    ) -> List[Job]:
        return self._store.list_jobs(status=status, assigned_technician=assigned_technician)

    def list_page(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> JobPage:
        """
        One page of the filtered listing.

        Raises:
            ValueError: If page or limit is below 1
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be at least 1")

        total = self._store.count_jobs(status=status, assigned_technician=assigned_technician)
        jobs = self._store.list_jobs(
            status=status,
            assigned_technician=assigned_technician,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return JobPage(jobs=jobs, page=page, limit=limit, total=total, pages=math.ceil(total / limit))

    def get_history(self, job_id: str) -> Optional[JobHistory]:
        """Status lineage of a job, oldest first, or None if it does not exist."""
        job = self._store.get_job(job_id)
        return JobHistory.from_job(job) if job else None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_job(self, request: JobCreateRequest, actor: Actor) -> Result:
        """
        Create a job in TENTATIVE with its creation record.

        Args:
            request: Validated descriptive fields
            actor: Creator (must be ADMIN)
        """
        try:
            _require_role(actor, CREATE_ROLES, "create")
        except JobFailure as e:
            return Failure.from_error(e)

        now = self._clock()
        job = Job(
            **request.model_dump(),
            status=JobStatus.TENTATIVE,
            created_by=actor.id,
            created_at=now,
            updated_at=now,
            status_history=[
                TransitionRecord(
                    from_status=None,
                    to_status=JobStatus.TENTATIVE,
                    actor_id=actor.id,
                    timestamp=now,
                    notes="Job created",
                )
            ],
        )
        stored = self._store.insert_job(job)
        logger.info(f"[DETAILS] Job {stored.id} created by {actor.id}")
        return Success(job=stored, message="Job created")

    # ------------------------------------------------------------------
    # Detail edits
    # ------------------------------------------------------------------

    def update_details(
        self,
        job_id: str,
        fields: Union[JobDetailsUpdate, Mapping[str, Any]],
        actor: Actor,
    ) -> Result:
        """
        Update non-status fields.

        Args:
            job_id: Job to edit
            fields: Either a JobDetailsUpdate or raw fields. Raw fields have
                protected keys stripped before validation.
            actor: Editor (ADMIN or OFFICE_MANAGER)

        Raises:
            pydantic.ValidationError: If raw fields are malformed
        """
        update = fields if isinstance(fields, JobDetailsUpdate) else JobDetailsUpdate.from_fields(dict(fields))

        try:
            job = self._update(job_id, update, actor)
        except JobFailure as e:
            logger.info(f"[DETAILS] Edit refused for job {job_id}: {e.kind.value}: {e.message}")
            return Failure.from_error(e)

        logger.info(f"[DETAILS] Job {job_id} edited by {actor.id}: {sorted(update.write_set())}")
        return Success(job=job, message="Job updated")

    def _update(self, job_id: str, update: JobDetailsUpdate, actor: Actor) -> Job:
        _require_role(actor, EDIT_ROLES, "edit")

        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if self._policy.is_terminal(job.status):
            raise TerminalStateError(job_id, "edited")

        result = self._store.attempt_update(job_id, job.status, update.write_set())
        if result.outcome == WriteOutcome.NOT_FOUND:
            raise JobNotFoundError(job_id)
        if result.outcome == WriteOutcome.CONFLICT:
            raise self._diagnose_conflict(job_id, "edited")
        return result.job

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_job(self, job_id: str, actor: Actor) -> Result:
        """
        Delete a job that is not BILLED.

        Returns:
            Success carrying the deleted snapshot, or a typed Failure
        """
        try:
            job = self._delete(job_id, actor)
        except JobFailure as e:
            logger.info(f"[DETAILS] Delete refused for job {job_id}: {e.kind.value}: {e.message}")
            return Failure.from_error(e)

        logger.info(f"[DETAILS] Job {job_id} deleted by {actor.id} (was {job.status.value})")
        return Success(job=job, message=f'Job "{job.title}" deleted')

    def _delete(self, job_id: str, actor: Actor) -> Job:
        _require_role(actor, DELETE_ROLES, "delete")

        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if self._policy.is_terminal(job.status):
            raise TerminalStateError(job_id, "deleted")

        result = self._store.attempt_delete(job_id, job.status)
        if result.outcome == WriteOutcome.NOT_FOUND:
            raise JobNotFoundError(job_id)
        if result.outcome == WriteOutcome.CONFLICT:
            raise self._diagnose_conflict(job_id, "deleted")
        return result.job

    def _diagnose_conflict(self, job_id: str, action: str) -> JobFailure:
        # Advisory read: report a job billed in the meantime as terminal
        current = self._store.get_job(job_id)
        if current is None:
            return JobNotFoundError(job_id)
        if self._policy.is_terminal(current.status):
            return TerminalStateError(job_id, action)
        return TransitionConflictError(job_id)
