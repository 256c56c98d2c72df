"""
Typed results returned across the job-core boundary.

Result = Success(job snapshot) | Failure(kind, message)

Transports map Failure.kind to their own status semantics.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import FailureKind, InvalidTransitionError, JobFailure
from .models import Job, JobStatus


class Success(BaseModel):
    """A committed operation and the job snapshot it produced."""

    model_config = ConfigDict(extra="forbid")

    ok: Literal[True] = True
    job: Job
    message: str = ""
    # Set by reassignment: the technician the job was taken from
    previous_assignee: Optional[str] = None


class Failure(BaseModel):
    """A refused operation. Nothing was written."""

    model_config = ConfigDict(extra="forbid")

    ok: Literal[False] = False
    kind: FailureKind
    message: str
    valid_targets: List[JobStatus] = Field(default_factory=list)

    @classmethod
    def from_error(cls, error: JobFailure) -> "Failure":
        valid: List[JobStatus] = []
        if isinstance(error, InvalidTransitionError):
            valid = list(error.valid_targets)
        return cls(kind=error.kind, message=error.message, valid_targets=valid)


Result = Union[Success, Failure]


def failure_kind(result: Result) -> Optional[FailureKind]:
    """The failure kind of a result, or None on success."""
    return None if result.ok else result.kind
