"""
Pytest configuration and shared fixtures for the backend test suite.
"""

import sys
from pathlib import Path

import pytest

# Add backend to Python path for test imports
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

from fieldops.actors.directory import InMemoryActorDirectory
from fieldops.actors.models import Actor, ActorRole
from fieldops.jobs.details import JobDetailsService
from fieldops.jobs.models import Job, JobCreateRequest, JobStatus
from fieldops.jobs.registry import InMemoryJobStore
from fieldops.jobs.service import JobService
from fieldops.persistence.manager import PersistenceManager


# Configure pytest
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "concurrency: marks tests that race real threads against one job"
    )


# =============================================================================
# Actors
# =============================================================================

ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN, name="Ada Admin")
ADMIN_2 = Actor(id="admin-2", role=ActorRole.ADMIN, name="Alan Admin")
MANAGER = Actor(id="manager-1", role=ActorRole.OFFICE_MANAGER, name="Maya Manager")
TECH = Actor(id="tech-1", role=ActorRole.TECHNICIAN, name="Tom Tech")
TECH_2 = Actor(id="tech-2", role=ActorRole.TECHNICIAN, name="Tina Tech")
RETIRED_TECH = Actor(id="tech-9", role=ActorRole.TECHNICIAN, name="Rita Retired", active=False)

ALL_ACTORS = [ADMIN, ADMIN_2, MANAGER, TECH, TECH_2, RETIRED_TECH]


@pytest.fixture
def directory():
    return InMemoryActorDirectory(ALL_ACTORS)


# =============================================================================
# Stores
# =============================================================================

@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Every JobStore implementation must honour the same contract."""
    if request.param == "memory":
        return InMemoryJobStore()
    return PersistenceManager(db_path=str(tmp_path / "fieldops.db"))


@pytest.fixture
def service(store, directory):
    """Job service without post-commit collaborators."""
    return JobService(store, directory)


# =============================================================================
# Job helpers
# =============================================================================

def create_job(store, title: str = "Fix boiler", creator: Actor = ADMIN) -> Job:
    """Create a TENTATIVE job through the details service."""
    result = JobDetailsService(store).create_job(
        JobCreateRequest(title=title, customer_name="Carla Customer"),
        creator,
    )
    assert result.ok, result
    return result.job


def advance(service: JobService, job_id: str, target: JobStatus, technician: Actor = TECH) -> Job:
    """
    Drive a job along the happy path until it reaches target.

    Each step uses the role the transition table requires.
    """
    steps = {
        JobStatus.CONFIRMED: lambda: service.transition(job_id, JobStatus.CONFIRMED, ADMIN),
        JobStatus.ASSIGNED: lambda: service.assign(job_id, technician.id, ADMIN),
        JobStatus.DISPATCHED: lambda: service.transition(
            job_id, JobStatus.DISPATCHED, MANAGER, "Bring the long ladder"),
        JobStatus.IN_PROGRESS: lambda: service.transition(job_id, JobStatus.IN_PROGRESS, technician),
        JobStatus.COMPLETED: lambda: service.transition(job_id, JobStatus.COMPLETED, technician),
        JobStatus.BILLED: lambda: service.transition(job_id, JobStatus.BILLED, MANAGER),
    }

    order = list(JobStatus)
    job = service.store.get_job(job_id)
    while job.status != target:
        next_status = order[order.index(job.status) + 1]
        result = steps[next_status]()
        assert result.ok, result
        job = result.job
    return job


class StaleReadStore:
    """
    Wraps a store and runs `interfere` between the first read and the
    write that follows it, simulating a concurrent writer deterministically.
    """

    def __init__(self, inner, interfere):
        self._inner = inner
        self._interfere = interfere
        self._fired = False

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def get_job(self, job_id):
        job = self._inner.get_job(job_id)
        if not self._fired:
            self._fired = True
            self._interfere(job_id)
        return job
