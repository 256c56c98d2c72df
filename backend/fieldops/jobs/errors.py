"""
Job-specific failure types.

All failures inherit from JobFailure and carry a FailureKind.
Coordinators raise them internally and convert them to a typed Failure
result at their public boundary (see results.py), so none of these ever
escapes a coordinator call.

Infrastructure errors (see persistence.errors) are NOT failures of this
taxonomy and propagate unchanged.
"""

from enum import Enum
from typing import TYPE_CHECKING, Iterable, Tuple

from .models import JobStatus

if TYPE_CHECKING:
    from .state import TransitionViolation


class FailureKind(str, Enum):
    """Typed failure taxonomy of the job core."""

    NOT_FOUND = "NOT_FOUND"  # Job or referenced actor absent
    INVALID_TRANSITION = "INVALID_TRANSITION"  # State-machine or role violation
    MISSING_REQUIRED_NOTE = "MISSING_REQUIRED_NOTE"
    NOT_ASSIGNED = "NOT_ASSIGNED"  # Technician is not the job's owner
    CONFLICT = "CONFLICT"  # Conditional write precondition failed
    INVALID_ASSIGNEE = "INVALID_ASSIGNEE"  # Resolved actor is not a technician
    TERMINAL_STATE_VIOLATION = "TERMINAL_STATE_VIOLATION"  # Job is BILLED


class JobFailure(Exception):
    """Base exception for all job-core failures."""

    kind: FailureKind

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class JobNotFoundError(JobFailure):
    """Raised when a job does not exist (never existed or was deleted)."""

    kind = FailureKind.NOT_FOUND

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class ActorNotFoundError(JobFailure):
    """Raised when a referenced actor cannot be resolved."""

    kind = FailureKind.NOT_FOUND

    def __init__(self, actor_id: str, label: str = "Technician"):
        self.actor_id = actor_id
        super().__init__(f"{label} not found: {actor_id}")


class InvalidTransitionError(JobFailure):
    """Raised when the state machine or role table refuses a move."""

    kind = FailureKind.INVALID_TRANSITION

    def __init__(self, message: str, valid_targets: Iterable[JobStatus] = ()):
        self.valid_targets: Tuple[JobStatus, ...] = tuple(valid_targets)
        super().__init__(message)

    @classmethod
    def from_violation(cls, violation: "TransitionViolation") -> "InvalidTransitionError":
        return cls(violation.message, violation.valid_targets)


class MissingRequiredNoteError(JobFailure):
    """Raised when a transition that requires notes has none."""

    kind = FailureKind.MISSING_REQUIRED_NOTE

    def __init__(self, target_status: JobStatus):
        self.target_status = target_status
        super().__init__("Notes are required when dispatching a job to a technician")


class NotAssignedError(JobFailure):
    """Raised when a technician acts on a job assigned to someone else."""

    kind = FailureKind.NOT_ASSIGNED

    def __init__(self, job_id: str, actor_id: str):
        self.job_id = job_id
        self.actor_id = actor_id
        super().__init__("You are not assigned to this job")


class TransitionConflictError(JobFailure):
    """Raised when the conditional write finds the job's status has moved."""

    kind = FailureKind.CONFLICT

    DEFAULT_MESSAGE = (
        "Conflict: job status was changed by another request. "
        "Please refresh and retry."
    )

    def __init__(self, job_id: str, message: str = DEFAULT_MESSAGE):
        self.job_id = job_id
        super().__init__(message)


class InvalidAssigneeError(JobFailure):
    """Raised when the resolved assignee does not hold the TECHNICIAN role."""

    kind = FailureKind.INVALID_ASSIGNEE

    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        super().__init__("User is not a technician")


class TerminalStateError(JobFailure):
    """Raised when a job in a terminal status is edited, reassigned or deleted."""

    kind = FailureKind.TERMINAL_STATE_VIOLATION

    def __init__(self, job_id: str, action: str):
        self.job_id = job_id
        self.action = action
        super().__init__(f"Billed jobs cannot be {action}")
