"""
Who hears about what.

Recipient rules for each committed job event. Technicians only hear
about jobs once they have been dispatched to them; office managers never
hear about TENTATIVE jobs.
"""

from typing import Optional

from ..actors.models import Actor, ActorRole
from ..jobs.models import Job, JobStatus
from .models import NotificationRequest, NotificationType

# Statuses in which the assigned technician can see the job
TECHNICIAN_VISIBLE_STATUSES = frozenset({
    JobStatus.DISPATCHED,
    JobStatus.IN_PROGRESS,
    JobStatus.COMPLETED,
})

_STATUS_TYPES = {
    JobStatus.CONFIRMED: NotificationType.JOB_CONFIRMED,
    JobStatus.ASSIGNED: NotificationType.JOB_ASSIGNED,
    JobStatus.DISPATCHED: NotificationType.JOB_DISPATCHED,
    JobStatus.IN_PROGRESS: NotificationType.JOB_STARTED,
    JobStatus.COMPLETED: NotificationType.JOB_COMPLETED,
    JobStatus.BILLED: NotificationType.JOB_BILLED,
}

_STATUS_MESSAGES = {
    JobStatus.CONFIRMED: 'Job "{title}" has been confirmed',
    JobStatus.ASSIGNED: 'Job "{title}" has been assigned',
    JobStatus.DISPATCHED: 'Job "{title}" has been dispatched to you',
    JobStatus.IN_PROGRESS: 'Job "{title}" is now in progress',
    JobStatus.COMPLETED: 'Job "{title}" has been completed',
    JobStatus.BILLED: 'Job "{title}" has been billed',
}

_STATUS_ROLES = {
    JobStatus.CONFIRMED: [ActorRole.ADMIN, ActorRole.OFFICE_MANAGER],
    JobStatus.IN_PROGRESS: [ActorRole.ADMIN, ActorRole.OFFICE_MANAGER],
    JobStatus.COMPLETED: [ActorRole.ADMIN, ActorRole.OFFICE_MANAGER],
    JobStatus.BILLED: [ActorRole.ADMIN],
}


def job_created(job: Job, actor: Actor) -> NotificationRequest:
    # New jobs are TENTATIVE: only other admins can see them
    return NotificationRequest(
        type=NotificationType.JOB_CREATED,
        message=(
            f'New job created by {actor.display_name}: "{job.title}" '
            f"for {job.customer_name}"
        ),
        job_id=job.id,
        recipient_roles=[ActorRole.ADMIN],
        exclude_actor_id=actor.id,
    )


def status_changed(job: Job, actor: Actor) -> NotificationRequest:
    """Notification for an ordinary transition that landed on job.status."""
    recipient_ids = []
    if job.status == JobStatus.DISPATCHED and job.assigned_technician:
        recipient_ids.append(job.assigned_technician)

    template = _STATUS_MESSAGES.get(job.status, 'Job "{title}" status updated')
    return NotificationRequest(
        type=_STATUS_TYPES[job.status],
        message=f"{template.format(title=job.title)} by {actor.display_name}",
        job_id=job.id,
        recipient_ids=recipient_ids,
        recipient_roles=list(_STATUS_ROLES.get(job.status, [])),
        exclude_actor_id=actor.id,
    )


def job_assigned(job: Job, technician_name: str, actor: Actor) -> NotificationRequest:
    # The technician hears about it only when a manager dispatches
    return NotificationRequest(
        type=NotificationType.JOB_ASSIGNED,
        message=(
            f'Job "{job.title}" has been assigned to {technician_name} '
            f"by {actor.display_name}"
        ),
        job_id=job.id,
        recipient_roles=[ActorRole.OFFICE_MANAGER],
        exclude_actor_id=actor.id,
    )


def job_reassigned(
    job: Job,
    old_name: str,
    new_name: str,
    actor: Actor,
) -> NotificationRequest:
    return NotificationRequest(
        type=NotificationType.JOB_REASSIGNED,
        message=(
            f'Job "{job.title}" reassigned from {old_name} to {new_name} '
            f"by {actor.display_name}"
        ),
        job_id=job.id,
        recipient_roles=[ActorRole.OFFICE_MANAGER],
        exclude_actor_id=actor.id,
    )


def job_updated(job: Job, actor: Actor) -> NotificationRequest:
    roles = [ActorRole.ADMIN]
    if job.status != JobStatus.TENTATIVE:
        roles.append(ActorRole.OFFICE_MANAGER)

    recipient_ids = []
    if job.assigned_technician and job.status in TECHNICIAN_VISIBLE_STATUSES:
        recipient_ids.append(job.assigned_technician)

    return NotificationRequest(
        type=NotificationType.JOB_UPDATED,
        message=f'Job "{job.title}" details have been updated by {actor.display_name}',
        job_id=job.id,
        recipient_ids=recipient_ids,
        recipient_roles=roles,
        exclude_actor_id=actor.id,
    )


def job_deleted(job: Job, actor: Actor) -> Optional[NotificationRequest]:
    """Notification for a deleted job, or None when nobody could see it."""
    recipient_ids = []
    if job.assigned_technician and job.status in TECHNICIAN_VISIBLE_STATUSES:
        recipient_ids.append(job.assigned_technician)

    roles = []
    if job.status != JobStatus.TENTATIVE:
        roles.append(ActorRole.OFFICE_MANAGER)

    if not recipient_ids and not roles:
        return None

    return NotificationRequest(
        type=NotificationType.JOB_DELETED,
        message=f'Job "{job.title}" has been deleted by {actor.display_name}',
        job_id=None,
        recipient_ids=recipient_ids,
        recipient_roles=roles,
        exclude_actor_id=actor.id,
    )
