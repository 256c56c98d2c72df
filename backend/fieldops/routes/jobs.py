"""
Job endpoints.

HTTP adapter over the job service. Every mutation maps the core's typed
Failure to an HTTP status (see dependencies.FAILURE_STATUS); nothing here
re-validates transitions.

Routes are plain (sync) functions so FastAPI runs them in its threadpool:
concurrent requests race only at the store's conditional write.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, ValidationError

from ..actors.models import Actor
from ..jobs.details import DEFAULT_PAGE_SIZE
from ..jobs.errors import JobNotFoundError
from ..jobs.models import Job, JobCreateRequest, JobHistory, JobStatus
from ..jobs.results import Failure, Result
from ..jobs.service import JobService
from .dependencies import get_current_actor, get_job_service, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


class StatusChangeRequest(BaseModel):
    """Request body for a status transition."""

    model_config = ConfigDict(extra="forbid")

    status: JobStatus
    notes: Optional[str] = None


class TechnicianRequest(BaseModel):
    """Request body for assignment and reassignment."""

    model_config = ConfigDict(extra="forbid")

    technician_id: str
    notes: Optional[str] = None


class JobResponse(BaseModel):
    """Single-job response."""

    success: bool = True
    data: Job
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class JobListResponse(BaseModel):
    """One page of the job listing."""

    success: bool = True
    data: List[Job]
    pagination: Pagination


class JobHistoryResponse(BaseModel):
    """Status history response."""

    success: bool = True
    data: JobHistory


class OperationResponse(BaseModel):
    """Response for operations that return no job."""

    success: bool = True
    message: str


def _unwrap(result: Result) -> JobResponse:
    if not result.ok:
        raise http_error(result)
    return JobResponse(data=result.job, message=result.message or None)


@router.get("", response_model=JobListResponse)
def list_jobs(
    status: Optional[JobStatus] = None,
    assigned_technician: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=100),
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    """List jobs, newest first, optionally filtered by status or technician."""
    result = service.list_page(
        status=status, assigned_technician=assigned_technician, page=page, limit=limit
    )
    return JobListResponse(
        data=result.jobs,
        pagination=Pagination(
            page=result.page, limit=result.limit, total=result.total, pages=result.pages
        ),
    )


@router.post("", response_model=JobResponse, status_code=201)
def create_job(
    body: JobCreateRequest,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    """Create a TENTATIVE job (ADMIN only)."""
    return _unwrap(service.create_job(body, actor))


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    return _unwrap(service.get_job(job_id))


@router.get("/{job_id}/history", response_model=JobHistoryResponse)
def get_job_history(
    job_id: str,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    """Return the job's status lineage, oldest first."""
    history = service.get_history(job_id)
    if history is None:
        raise http_error(Failure.from_error(JobNotFoundError(job_id)))
    return JobHistoryResponse(data=history)


@router.patch("/{job_id}/status", response_model=JobResponse)
def change_status(
    job_id: str,
    body: StatusChangeRequest,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    """
    Transition a job.

    409 means the job moved since it was read: reload and decide again.
    """
    return _unwrap(service.transition(job_id, body.status, actor, body.notes))


@router.patch("/{job_id}/assign", response_model=JobResponse)
def assign_technician(
    job_id: str,
    body: TechnicianRequest,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    return _unwrap(service.assign(job_id, body.technician_id, actor, body.notes))


@router.patch("/{job_id}/reassign", response_model=JobResponse)
def reassign_technician(
    job_id: str,
    body: TechnicianRequest,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    return _unwrap(service.reassign(job_id, body.technician_id, actor, body.notes))


@router.put("/{job_id}", response_model=JobResponse)
def update_job(
    job_id: str,
    body: Dict[str, Any] = Body(...),
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    """
    Edit descriptive fields. BILLED jobs cannot be edited.

    Protected fields (status, assignee, history, creator, id) are silently
    dropped; anything else unknown is a 422.
    """
    try:
        result = service.update_details(job_id, body, actor)
    except ValidationError as e:
        logger.info(f"Rejected edit for job {job_id}: {e.error_count()} invalid field(s)")
        raise RequestValidationError(e.errors(include_url=False)) from e
    return _unwrap(result)


@router.delete("/{job_id}", response_model=OperationResponse)
def delete_job(
    job_id: str,
    service: JobService = Depends(get_job_service),
    actor: Actor = Depends(get_current_actor),
):
    """Delete a job (ADMIN only). BILLED jobs cannot be deleted."""
    result = service.delete_job(job_id, actor)
    if not result.ok:
        raise http_error(result)
    return OperationResponse(message=result.message)
