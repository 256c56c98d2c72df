"""
Actors: identities that act on jobs.

Identity issuance is out of scope. This package only models actors and
offers the directory interface the job core resolves them through.
"""

from .models import Actor, ActorRole
from .directory import ActorDirectory, InMemoryActorDirectory

__all__ = [
    "Actor",
    "ActorRole",
    "ActorDirectory",
    "InMemoryActorDirectory",
]
