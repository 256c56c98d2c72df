"""
Actor directory.

Narrow interface the job core uses to resolve actor ids (technician
lookup for assignment and reassignment, role expansion for notifications).

The in-memory implementation is the default collaborator for the service
and for tests. A real deployment may back the protocol with its identity
provider instead.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from pydantic import TypeAdapter

from .models import Actor, ActorRole

logger = logging.getLogger(__name__)


class ActorDirectory(Protocol):
    """Resolves actor ids to actors."""

    def resolve(self, actor_id: str) -> Optional[Actor]:
        ...

    def list_by_role(self, roles: Iterable[ActorRole]) -> List[Actor]:
        ...


class InMemoryActorDirectory:
    """
    Dict-backed actor directory.

    Inactive actors still resolve (history references them) but are
    excluded from role expansion.
    """

    def __init__(self, actors: Optional[Iterable[Actor]] = None):
        self._actors: Dict[str, Actor] = {}
        self._lock = threading.Lock()
        for actor in actors or ():
            self.add(actor)

    def add(self, actor: Actor) -> None:
        """
        Register an actor.

        Raises:
            ValueError: If an actor with the same ID already exists
        """
        with self._lock:
            if actor.id in self._actors:
                raise ValueError(f"Actor with ID '{actor.id}' already exists")
            self._actors[actor.id] = actor

    def resolve(self, actor_id: str) -> Optional[Actor]:
        with self._lock:
            return self._actors.get(actor_id)

    def list_by_role(self, roles: Iterable[ActorRole]) -> List[Actor]:
        wanted = set(roles)
        with self._lock:
            return [
                actor for actor in self._actors.values()
                if actor.role in wanted and actor.active
            ]

    @classmethod
    def from_file(cls, path: str) -> "InMemoryActorDirectory":
        """
        Load actors from a JSON array of actor objects.

        Args:
            path: Path to the JSON file

        Returns:
            Populated directory

        Raises:
            pydantic.ValidationError: If an entry is malformed
            OSError: If the file cannot be read
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        actors = TypeAdapter(List[Actor]).validate_python(raw)
        logger.info(f"Loaded {len(actors)} actors from {path}")
        return cls(actors)
