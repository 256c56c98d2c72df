"""
Shared request dependencies and failure mapping for HTTP routes.
"""

from typing import Dict

from fastapi import Header, HTTPException, Request

from ..actors.models import Actor
from ..jobs.errors import FailureKind
from ..jobs.results import Failure
from ..jobs.service import JobService

# Failure kind -> HTTP status
FAILURE_STATUS: Dict[FailureKind, int] = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.INVALID_TRANSITION: 400,
    FailureKind.MISSING_REQUIRED_NOTE: 400,
    FailureKind.INVALID_ASSIGNEE: 400,
    FailureKind.NOT_ASSIGNED: 403,
    FailureKind.CONFLICT: 409,
    FailureKind.TERMINAL_STATE_VIOLATION: 400,
}


def http_error(failure: Failure) -> HTTPException:
    """Translate a core Failure into an HTTPException."""
    detail = {"kind": failure.kind.value, "message": failure.message}
    if failure.valid_targets:
        detail["valid_targets"] = [s.value for s in failure.valid_targets]
    return HTTPException(status_code=FAILURE_STATUS[failure.kind], detail=detail)


def get_job_service(request: Request) -> JobService:
    return request.app.state.job_service


def get_current_actor(
    request: Request,
    x_actor_id: str = Header(..., alias="X-Actor-Id"),
) -> Actor:
    """
    Resolve the acting identity from the X-Actor-Id header.

    Credential issuance and verification happen upstream; this only maps
    an already-authenticated id to its role.
    """
    actor = request.app.state.actor_directory.resolve(x_actor_id)
    if actor is None or not actor.active:
        raise HTTPException(status_code=401, detail="Unknown or inactive actor")
    return actor
