"""
State transition policy for jobs.

Pure function of (current status, target status, actor role).
No I/O and no knowledge of any specific job instance.

Job lifecycle:
TENTATIVE → CONFIRMED → ASSIGNED → DISPATCHED → IN_PROGRESS → COMPLETED → BILLED

INVARIANT: BILLED is terminal. No outgoing transitions exist for it.

The transition table is static configuration passed into the policy at
construction. Role gating is a table lookup, not a class hierarchy.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Tuple

from ..actors.models import ActorRole
from .models import JobStatus


TransitionTable = Mapping[JobStatus, Mapping[JobStatus, FrozenSet[ActorRole]]]


# ============================================================================
# DEFAULT TRANSITION TABLE
# ============================================================================
# current status -> {target status: roles allowed to perform the move}
#   - ASSIGNED: visible to the office manager for review. The manager adds
#     a note and dispatches.
#   - DISPATCHED: now visible to the assigned technician.
# ============================================================================
DEFAULT_STATUS_TRANSITIONS: TransitionTable = MappingProxyType({
    JobStatus.TENTATIVE: MappingProxyType({
        JobStatus.CONFIRMED: frozenset({ActorRole.ADMIN}),
    }),
    JobStatus.CONFIRMED: MappingProxyType({
        JobStatus.ASSIGNED: frozenset({ActorRole.ADMIN}),
    }),
    JobStatus.ASSIGNED: MappingProxyType({
        JobStatus.DISPATCHED: frozenset({ActorRole.OFFICE_MANAGER}),
    }),
    JobStatus.DISPATCHED: MappingProxyType({
        JobStatus.IN_PROGRESS: frozenset({ActorRole.TECHNICIAN}),
    }),
    JobStatus.IN_PROGRESS: MappingProxyType({
        JobStatus.COMPLETED: frozenset({ActorRole.TECHNICIAN}),
    }),
    JobStatus.COMPLETED: MappingProxyType({
        JobStatus.BILLED: frozenset({ActorRole.OFFICE_MANAGER}),
    }),
    JobStatus.BILLED: MappingProxyType({}),
})

# Statuses from which a job may be handed to a different technician.
# Reassignment rewinds the job to ASSIGNED.
REASSIGNABLE_STATUSES: FrozenSet[JobStatus] = frozenset({
    JobStatus.ASSIGNED,
    JobStatus.DISPATCHED,
    JobStatus.IN_PROGRESS,
})


class ViolationReason(str, Enum):
    """Why a requested transition was refused."""

    SAME_STATUS = "same_status"
    NOT_IN_TABLE = "not_in_table"
    ROLE_NOT_ALLOWED = "role_not_allowed"


@dataclass(frozen=True)
class TransitionViolation:
    """
    A refused transition.

    valid_targets is always the set of targets reachable from the current
    status (empty for a terminal status); allowed_roles is filled only
    for ROLE_NOT_ALLOWED.
    """

    reason: ViolationReason
    message: str
    current_status: JobStatus
    target_status: JobStatus
    valid_targets: Tuple[JobStatus, ...] = ()
    allowed_roles: Tuple[ActorRole, ...] = ()


def _ordered_roles(roles: FrozenSet[ActorRole]) -> Tuple[ActorRole, ...]:
    return tuple(role for role in ActorRole if role in roles)


def _join(values) -> str:
    return ", ".join(v.value for v in values)


class TransitionPolicy:
    """
    Validates (current, target, role) against an immutable transition table.

    The table is copied and frozen at construction. Statuses missing from
    the table have no outgoing transitions.
    """

    def __init__(self, transitions: TransitionTable = DEFAULT_STATUS_TRANSITIONS):
        self._transitions: TransitionTable = MappingProxyType({
            current: MappingProxyType({
                target: frozenset(roles) for target, roles in targets.items()
            })
            for current, targets in transitions.items()
        })

    def valid_targets(self, current: JobStatus) -> List[JobStatus]:
        """Targets reachable from current, in table order."""
        return list(self._transitions.get(current, {}).keys())

    def allowed_roles(self, current: JobStatus, target: JobStatus) -> FrozenSet[ActorRole]:
        """Roles allowed to move current → target (empty if not a legal move)."""
        return self._transitions.get(current, {}).get(target, frozenset())

    def is_terminal(self, status: JobStatus) -> bool:
        """A status is terminal when it has no outgoing transitions."""
        return not self._transitions.get(status)

    def validate(
        self,
        current: JobStatus,
        target: JobStatus,
        role: ActorRole,
    ) -> Optional[TransitionViolation]:
        """
        Check whether role may move a job from current to target.

        Args:
            current: Status the job is in
            target: Requested status
            role: Role of the acting actor

        Returns:
            None if allowed, otherwise the violation
        """
        targets = self._transitions.get(current, {})
        valid = tuple(targets.keys())

        if current == target:
            return TransitionViolation(
                reason=ViolationReason.SAME_STATUS,
                message="Job is already in this status",
                current_status=current,
                target_status=target,
                valid_targets=valid,
            )

        if target not in targets:
            listed = _join(valid) if valid else "none (terminal state)"
            return TransitionViolation(
                reason=ViolationReason.NOT_IN_TABLE,
                message=(
                    f"Invalid transition from {current.value} to {target.value}. "
                    f"Valid: {listed}"
                ),
                current_status=current,
                target_status=target,
                valid_targets=valid,
            )

        allowed = _ordered_roles(targets[target])
        if role not in allowed:
            return TransitionViolation(
                reason=ViolationReason.ROLE_NOT_ALLOWED,
                message=(
                    f"Role {role.value} cannot move job from {current.value} "
                    f"to {target.value}. Allowed: {_join(allowed)}"
                ),
                current_status=current,
                target_status=target,
                valid_targets=valid,
                allowed_roles=allowed,
            )

        return None
