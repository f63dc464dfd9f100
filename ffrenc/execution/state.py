"""
Job lifecycle state transitions.

Job lifecycle: CREATED -> QUEUED -> ACTIVE -> SUCCEEDED | FAILED

The runner walks this table as it emits events and the UI reducer walks it
as it applies them, so both sides agree on what a legal sequence is.

INVARIANT: Terminal states (SUCCEEDED, FAILED) are immutable. There is no
retry and no requeue.
"""

from enum import Enum
from typing import FrozenSet, Set, Tuple


class JobPhase(str, Enum):
    CREATED = "created"  # Duration known, not yet announced
    QUEUED = "queued"  # Announced, waiting for a permit
    ACTIVE = "active"  # Holding a permit, backend running
    SUCCEEDED = "succeeded"  # Backend judged the exit successful
    FAILED = "failed"  # Backend failed, errored or was cancelled


TERMINAL_PHASES: FrozenSet[JobPhase] = frozenset({
    JobPhase.SUCCEEDED,
    JobPhase.FAILED,
})

_TRANSITIONS: Set[Tuple[JobPhase, JobPhase]] = {
    (JobPhase.CREATED, JobPhase.QUEUED),
    (JobPhase.QUEUED, JobPhase.ACTIVE),
    (JobPhase.ACTIVE, JobPhase.SUCCEEDED),
    (JobPhase.ACTIVE, JobPhase.FAILED),
}


class InvalidStateTransitionError(Exception):
    """Raised when attempting an illegal lifecycle transition."""

    def __init__(self, current_state: JobPhase, target_state: JobPhase):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid job state transition: {current_state.value} -> {target_state.value}"
        )


def is_terminal(phase: JobPhase) -> bool:
    return phase in TERMINAL_PHASES


def can_transition(from_phase: JobPhase, to_phase: JobPhase) -> bool:
    """
    Check if a lifecycle transition is legal.

    Unlike most state tables, staying in the same phase is NOT allowed:
    every lifecycle event moves a job forward exactly once.
    """
    return (from_phase, to_phase) in _TRANSITIONS


def validate_transition(from_phase: JobPhase, to_phase: JobPhase) -> None:
    """
    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition(from_phase, to_phase):
        raise InvalidStateTransitionError(from_phase, to_phase)
