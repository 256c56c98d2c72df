"""
Job and TransitionRecord data models.

A job moves through a fixed set of statuses, mutated by different actor
roles. Every status change appends one TransitionRecord to the job's
status history.

All models use Pydantic for validation.
State transitions are validated externally (see state.py) and persisted
only through the conditional write of a JobStore (see store.py).

History invariants:
- history[0] is the creation record: from_status None, to_status TENTATIVE
- for i > 0, history[i].from_status == history[i-1].to_status
- job.status == history[-1].to_status
- history is never truncated or reordered
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """
    Job lifecycle status.

    TENTATIVE → CONFIRMED → ASSIGNED → DISPATCHED → IN_PROGRESS → COMPLETED → BILLED
    """

    TENTATIVE = "TENTATIVE"  # Created by an admin, not yet confirmed
    CONFIRMED = "CONFIRMED"  # Confirmed, waiting for a technician
    ASSIGNED = "ASSIGNED"  # Technician chosen, waiting for manager review
    DISPATCHED = "DISPATCHED"  # Sent to the technician with manager notes
    IN_PROGRESS = "IN_PROGRESS"  # Technician is on site
    COMPLETED = "COMPLETED"  # Work finished
    BILLED = "BILLED"  # Invoiced (terminal)


class TransitionRecord(BaseModel):
    """
    One entry of a job's status history.

    from_status is None only for the creation record.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    from_status: Optional[JobStatus] = None
    to_status: JobStatus
    actor_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    notes: str = ""


# Fields that only the coordinators may change.
# The detail-edit path strips them unconditionally.
PROTECTED_FIELDS: FrozenSet[str] = frozenset({
    "id",
    "status",
    "status_history",
    "assigned_technician",
    "created_by",
})

# Descriptive fields, opaque to the transition core.
DETAIL_FIELDS: FrozenSet[str] = frozenset({
    "title",
    "description",
    "customer_name",
    "customer_phone",
    "customer_email",
    "address",
    "scheduled_date",
    "estimated_cost",
    "actual_cost",
    "notes",
})


class Job(BaseModel):
    """
    A field-service job.

    Instances returned by a JobStore are snapshots: mutating one never
    changes persisted state.
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    # Descriptive fields
    title: str
    description: Optional[str] = None
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    address: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    actual_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    # State
    status: JobStatus = JobStatus.TENTATIVE
    assigned_technician: Optional[str] = None
    created_by: str
    status_history: List[TransitionRecord] = Field(default_factory=list)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None  # Set once, when COMPLETED lands
    billed_at: Optional[datetime] = None  # Set once, when BILLED lands


class JobHistory(BaseModel):
    """Read-only view of a job's status lineage."""

    model_config = ConfigDict(extra="forbid")

    job_id: str
    title: str
    current_status: JobStatus
    history: List[TransitionRecord]

    @classmethod
    def from_job(cls, job: Job) -> "JobHistory":
        return cls(
            job_id=job.id,
            title=job.title,
            current_status=job.status,
            history=list(job.status_history),
        )


class JobPage(BaseModel):
    """One page of a filtered job listing, newest first."""

    jobs: List[Job]
    page: int
    limit: int
    total: int  # Matches across all pages
    pages: int


# ============================================================================
# REQUEST MODELS
# ============================================================================


def _validate_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().lower()
    local, _, domain = v.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid customer email")
    return v


def _validate_schedule(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return v
    day = v.astimezone(timezone.utc).date() if v.tzinfo else v.date()
    if day < utcnow().date():
        raise ValueError("Scheduled date cannot be in the past")
    return v


class JobCreateRequest(BaseModel):
    """Descriptive fields supplied when an admin creates a job."""

    model_config = ConfigDict(extra="forbid")

    title: str
    customer_name: str
    description: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    address: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("title", "customer_name")
    @classmethod
    def validate_required_text(cls, v: str) -> str:
        """Required text fields must be non-blank."""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)

    @field_validator("scheduled_date")
    @classmethod
    def validate_schedule(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _validate_schedule(v)


class JobDetailsUpdate(BaseModel):
    """
    Non-status fields an edit may change.

    Only fields explicitly set are written (see model_dump(exclude_unset=True)).
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    address: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    actual_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("title", "customer_name")
    @classmethod
    def validate_not_blank(cls, v: Optional[str]) -> Optional[str]:
        """Required text fields may be omitted but never cleared."""
        # Defaults are not validated, so None here was explicitly supplied
        if v is None or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v)

    @field_validator("scheduled_date")
    @classmethod
    def validate_schedule(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _validate_schedule(v)

    @classmethod
    def from_fields(cls, fields: Dict[str, Any]) -> "JobDetailsUpdate":
        """
        Build an update from raw fields, dropping protected ones.

        Protected fields (status, history, assignee, creator, id) are removed
        before validation so they can never reach the write set.
        """
        safe = {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS}
        return cls.model_validate(safe)

    def write_set(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)

