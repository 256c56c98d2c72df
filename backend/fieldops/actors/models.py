"""
Actor data models.

Actors are supplied by an external identity collaborator.
The job core treats the role as given per request and never re-derives it.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict


class ActorRole(str, Enum):
    """
    Flat role enumeration.

    Role-gated behaviour is a table lookup on these values,
    never a class hierarchy.
    """

    ADMIN = "ADMIN"
    OFFICE_MANAGER = "OFFICE_MANAGER"
    TECHNICIAN = "TECHNICIAN"


class Actor(BaseModel):
    """An identity acting on a job (or a candidate assignee)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    role: ActorRole
    name: str = ""
    active: bool = True

    @property
    def display_name(self) -> str:
        """Name for human-readable messages, falling back to the id."""
        return self.name or self.id
