"""
In-memory job store.

Stores jobs by ID and implements the JobStore conditional-write contract.

The store-private lock is the storage layer's atomicity, the in-memory
equivalent of a database's single-row atomic update. Coordinators never
see or take it.

Snapshots handed out are deep copies: callers cannot mutate stored state.
"""

import threading
from typing import Any, Dict, List, Optional

from .models import Job, JobStatus, TransitionRecord, utcnow
from .store import WriteOutcome, WriteResult, check_detail_write, check_transition_write


class InMemoryJobStore:
    """
    Dict-backed JobStore.

    Useful for tests and single-process deployments.
    Does not survive a restart (see persistence.PersistenceManager).
    """

    def __init__(self):
        # job_id -> Job
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def insert_job(self, job: Job) -> Job:
        """
        Add a new job.

        Args:
            job: The job to add

        Returns:
            Snapshot of the stored job

        Raises:
            ValueError: If a job with the same ID already exists
        """
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job with ID '{job.id}' already exists")
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def _matching(
        self,
        status: Optional[JobStatus],
        assigned_technician: Optional[str],
    ) -> List[Job]:
        # Newest first; equal timestamps fall back to latest insert first
        jobs = [
            job for job in reversed(self._jobs.values())
            if (status is None or job.status == status)
            and (assigned_technician is None or job.assigned_technician == assigned_technician)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Job]:
        """
        List jobs, newest first, optionally filtered.

        Args:
            status: Only jobs in this status
            assigned_technician: Only jobs assigned to this actor id
            limit: Page size (None for every match)
            offset: Matches to skip before the page starts
        """
        with self._lock:
            jobs = self._matching(status, assigned_technician)
            end = None if limit is None else offset + limit
            return [job.model_copy(deep=True) for job in jobs[offset:end]]

    def count_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
    ) -> int:
        with self._lock:
            return len(self._matching(status, assigned_technician))

    def attempt_transition(
        self,
        job_id: str,
        expected_status: JobStatus,
        write_set: Dict[str, Any],
        record: TransitionRecord,
    ) -> WriteResult:
        check_transition_write(expected_status, write_set, record)

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return WriteResult(WriteOutcome.NOT_FOUND)
            if current.status != expected_status:
                return WriteResult(WriteOutcome.CONFLICT)

            updated = current.model_copy(
                update={
                    **write_set,
                    "status_history": [*current.status_history, record],
                    "updated_at": record.timestamp,
                },
                deep=True,
            )
            self._jobs[job_id] = updated
            return WriteResult(WriteOutcome.UPDATED, updated.model_copy(deep=True))

    def attempt_update(
        self,
        job_id: str,
        expected_status: JobStatus,
        write_set: Dict[str, Any],
    ) -> WriteResult:
        check_detail_write(write_set)

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return WriteResult(WriteOutcome.NOT_FOUND)
            if current.status != expected_status:
                return WriteResult(WriteOutcome.CONFLICT)

            updated = current.model_copy(
                update={**write_set, "updated_at": utcnow()},
                deep=True,
            )
            self._jobs[job_id] = updated
            return WriteResult(WriteOutcome.UPDATED, updated.model_copy(deep=True))

    def attempt_delete(self, job_id: str, expected_status: JobStatus) -> WriteResult:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return WriteResult(WriteOutcome.NOT_FOUND)
            if current.status != expected_status:
                return WriteResult(WriteOutcome.CONFLICT)

            del self._jobs[job_id]
            return WriteResult(WriteOutcome.UPDATED, current)
