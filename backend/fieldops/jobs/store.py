"""
JobStore: persistence contract for jobs.

The only synchronization primitive of the job core is the conditional
("compare-and-swap") write: a mutation succeeds ONLY if the persisted
status still equals the expected status at the moment of the write.
Otherwise it is rejected and no partial mutation is observable.

Among N concurrent writes racing from the same expected status, exactly
one observes UPDATED and the rest observe CONFLICT.

NOT_FOUND and CONFLICT are distinct:
- NOT_FOUND: the job never existed or was deleted
- CONFLICT: the job exists but its status no longer matches
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Protocol

from .models import DETAIL_FIELDS, Job, JobStatus, TransitionRecord


class WriteOutcome(str, Enum):
    """Outcome of a conditional write."""

    UPDATED = "updated"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class WriteResult:
    """
    Result of a conditional write.

    job is the post-write snapshot for UPDATED (the removed snapshot for
    a delete), None otherwise.
    """

    outcome: WriteOutcome
    job: Optional[Job] = None

    @property
    def ok(self) -> bool:
        return self.outcome == WriteOutcome.UPDATED


# Fields a transition write set may touch
TRANSITION_FIELDS: FrozenSet[str] = frozenset({
    "status",
    "assigned_technician",
    "completed_at",
    "billed_at",
})


def check_transition_write(
    expected_status: JobStatus,
    write_set: Mapping[str, Any],
    record: TransitionRecord,
) -> None:
    """
    Validate a transition write before it reaches storage.

    The record must chain from the expected status and land on the
    status being written, so the history invariants hold for every
    store implementation.

    Raises:
        ValueError: If the write set or record is inconsistent
    """
    unknown = set(write_set) - TRANSITION_FIELDS
    if unknown:
        raise ValueError(f"Fields not writable by a transition: {sorted(unknown)}")
    if write_set.get("status") != record.to_status:
        raise ValueError("Write set status must equal the record's to_status")
    if record.from_status != expected_status:
        raise ValueError("Record from_status must equal the expected status")


def check_detail_write(write_set: Mapping[str, Any]) -> None:
    """
    Validate a detail-edit write set.

    Raises:
        ValueError: If it names anything other than descriptive fields
    """
    unknown = set(write_set) - DETAIL_FIELDS
    if unknown:
        raise ValueError(f"Fields not writable by a detail edit: {sorted(unknown)}")


class JobStore(Protocol):
    """
    Persistence interface consumed by the coordinators.

    Implementations must make every attempt_* call a single atomic
    operation guarded on expected_status.
    """

    def insert_job(self, job: Job) -> Job:
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        ...

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Job]:
        ...

    def count_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
    ) -> int:
        ...

    def attempt_transition(
        self,
        job_id: str,
        expected_status: JobStatus,
        write_set: Dict[str, Any],
        record: TransitionRecord,
    ) -> WriteResult:
        ...

    def attempt_update(
        self,
        job_id: str,
        expected_status: JobStatus,
        write_set: Dict[str, Any],
    ) -> WriteResult:
        ...

    def attempt_delete(self, job_id: str, expected_status: JobStatus) -> WriteResult:
        ...
