"""
Notification data models.

A NotificationRequest is what the job service hands off after a
committed write. The dispatcher expands it into one Notification per
recipient.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..actors.models import ActorRole
from ..jobs.models import utcnow


class NotificationType(str, Enum):
    """Kinds of job notifications."""

    JOB_CREATED = "JOB_CREATED"
    JOB_CONFIRMED = "JOB_CONFIRMED"
    JOB_ASSIGNED = "JOB_ASSIGNED"
    JOB_REASSIGNED = "JOB_REASSIGNED"
    JOB_DISPATCHED = "JOB_DISPATCHED"
    JOB_STARTED = "JOB_STARTED"
    JOB_COMPLETED = "JOB_COMPLETED"
    JOB_BILLED = "JOB_BILLED"
    JOB_UPDATED = "JOB_UPDATED"
    JOB_DELETED = "JOB_DELETED"


class NotificationRequest(BaseModel):
    """
    Fire-and-forget notification hand-off.

    Recipients are the union of explicit ids and every active actor
    holding one of the roles, minus the acting actor.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: NotificationType
    message: str
    job_id: Optional[str] = None
    recipient_ids: List[str] = Field(default_factory=list)
    recipient_roles: List[ActorRole] = Field(default_factory=list)
    exclude_actor_id: Optional[str] = None


class Notification(BaseModel):
    """A notification delivered to one recipient."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    recipient_id: str
    type: NotificationType
    message: str
    job_id: Optional[str] = None
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
