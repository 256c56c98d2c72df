"""
Job service: the caller of the job core.

Wires the coordinators together and, after every committed write, hands
a notification to the dispatcher and signals the broadcast channel.

Post-commit work is fire-and-forget. Its failure is caught and logged
here and never changes the result already produced by the core, nor
rolls back the committed write.
"""

import logging
from typing import Any, Callable, List, Mapping, Optional, Union

from ..actors.directory import ActorDirectory
from ..actors.models import Actor
from ..notifications import rules
from ..notifications.broadcast import JOBS_UPDATED, Broadcaster
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.models import NotificationRequest
from .assignment import AssignmentCoordinator, ReassignmentHandler
from .coordinator import TransitionCoordinator
from .details import DEFAULT_PAGE_SIZE, JobDetailsService
from .models import Job, JobCreateRequest, JobDetailsUpdate, JobHistory, JobPage, JobStatus
from .results import Result
from .state import TransitionPolicy
from .store import JobStore

logger = logging.getLogger(__name__)


class JobService:
    """Facade over the job core plus its post-commit collaborators."""

    def __init__(
        self,
        store: JobStore,
        directory: ActorDirectory,
        dispatcher: Optional[NotificationDispatcher] = None,
        broadcaster: Optional[Broadcaster] = None,
        policy: Optional[TransitionPolicy] = None,
    ):
        policy = policy or TransitionPolicy()
        self.store = store
        self.directory = directory
        self.policy = policy
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster

        self.transitions = TransitionCoordinator(store, policy)
        self.assignments = AssignmentCoordinator(store, directory, policy)
        self.reassignments = ReassignmentHandler(store, directory, policy)
        self.details = JobDetailsService(store, policy)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Result:
        return self.details.get_job(job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
    ) -> List[Job]:
        return self.details.list_jobs(status=status, assigned_technician=assigned_technician)

    def list_page(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> JobPage:
        return self.details.list_page(
            status=status, assigned_technician=assigned_technician, page=page, limit=limit
        )

    def get_history(self, job_id: str) -> Optional[JobHistory]:
        return self.details.get_history(job_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_job(self, request: JobCreateRequest, actor: Actor) -> Result:
        result = self.details.create_job(request, actor)
        if result.ok:
            self._after_commit(lambda: rules.job_created(result.job, actor))
        return result

    def transition(
        self,
        job_id: str,
        target_status: JobStatus,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Result:
        result = self.transitions.transition(job_id, target_status, actor, notes)
        if result.ok:
            self._after_commit(lambda: rules.status_changed(result.job, actor))
        return result

    def assign(
        self,
        job_id: str,
        technician_id: str,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Result:
        result = self.assignments.assign(job_id, technician_id, actor, notes)
        if result.ok:
            self._after_commit(
                lambda: rules.job_assigned(result.job, self._name_of(technician_id), actor)
            )
        return result

    def reassign(
        self,
        job_id: str,
        technician_id: str,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Result:
        result = self.reassignments.reassign(job_id, technician_id, actor, notes)
        if result.ok:
            self._after_commit(
                lambda: rules.job_reassigned(
                    result.job,
                    self._name_of(result.previous_assignee, "previous technician"),
                    self._name_of(technician_id),
                    actor,
                )
            )
        return result

    def update_details(
        self,
        job_id: str,
        fields: Union[JobDetailsUpdate, Mapping[str, Any]],
        actor: Actor,
    ) -> Result:
        result = self.details.update_details(job_id, fields, actor)
        if result.ok:
            self._after_commit(lambda: rules.job_updated(result.job, actor))
        return result

    def delete_job(self, job_id: str, actor: Actor) -> Result:
        result = self.details.delete_job(job_id, actor)
        if result.ok:
            self._after_commit(lambda: rules.job_deleted(result.job, actor))
        return result

    # ------------------------------------------------------------------
    # Post-commit hand-off
    # ------------------------------------------------------------------

    def _name_of(self, actor_id: Optional[str], fallback: str = "a technician") -> str:
        if not actor_id:
            return fallback
        actor = self.directory.resolve(actor_id)
        return actor.display_name if actor else fallback

    def _after_commit(self, build: Callable[[], Optional[NotificationRequest]]) -> None:
        """Notify and broadcast. Never raises."""
        if self.dispatcher is not None:
            try:
                request = build()
                if request is not None:
                    self.dispatcher.submit(request)
            except Exception:
                logger.exception("[NOTIFY] Failed to hand off notification")

        if self.broadcaster is not None:
            try:
                self.broadcaster.publish(JOBS_UPDATED)
            except Exception:
                logger.exception("[BROADCAST] Failed to publish jobs update")
