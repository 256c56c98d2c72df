"""
Job core: lifecycle of a field-service job.

This package owns the transition engine:
- TransitionPolicy: the state machine and role table (pure, no I/O)
- JobStore: conditional-write persistence contract
- TransitionCoordinator / AssignmentCoordinator / ReassignmentHandler
- JobDetailsService: creation, detail edits, deletion

Not included:
- Authentication or identity issuance
- Visibility filtering of which jobs a role may list
- Notification delivery (see fieldops.notifications; wired in service.py)
"""

from .errors import (
    FailureKind,
    JobFailure,
    JobNotFoundError,
    InvalidTransitionError,
    TransitionConflictError,
)
from .models import (
    JobStatus,
    TransitionRecord,
    Job,
    JobHistory,
    JobPage,
    JobCreateRequest,
    JobDetailsUpdate,
)
from .results import Success, Failure, Result
from .state import TransitionPolicy, DEFAULT_STATUS_TRANSITIONS
from .store import JobStore, WriteOutcome, WriteResult
from .registry import InMemoryJobStore
from .coordinator import TransitionCoordinator
from .assignment import AssignmentCoordinator, ReassignmentHandler
from .details import JobDetailsService

__all__ = [
    # Errors
    "FailureKind",
    "JobFailure",
    "JobNotFoundError",
    "InvalidTransitionError",
    "TransitionConflictError",
    # Models
    "JobStatus",
    "TransitionRecord",
    "Job",
    "JobHistory",
    "JobPage",
    "JobCreateRequest",
    "JobDetailsUpdate",
    # Results
    "Success",
    "Failure",
    "Result",
    # State validation
    "TransitionPolicy",
    "DEFAULT_STATUS_TRANSITIONS",
    # Storage
    "JobStore",
    "WriteOutcome",
    "WriteResult",
    "InMemoryJobStore",
    # Coordinators
    "TransitionCoordinator",
    "AssignmentCoordinator",
    "ReassignmentHandler",
    "JobDetailsService",
]
