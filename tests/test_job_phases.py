"""
Job lifecycle transition table tests.
"""

import pytest

from ffrenc.execution.state import (
    InvalidStateTransitionError,
    JobPhase,
    can_transition,
    is_terminal,
    validate_transition,
)


def test_happy_path_transitions_allowed():
    """CREATED -> QUEUED -> ACTIVE -> SUCCEEDED|FAILED is the only path."""
    assert can_transition(JobPhase.CREATED, JobPhase.QUEUED)
    assert can_transition(JobPhase.QUEUED, JobPhase.ACTIVE)
    assert can_transition(JobPhase.ACTIVE, JobPhase.SUCCEEDED)
    assert can_transition(JobPhase.ACTIVE, JobPhase.FAILED)


@pytest.mark.parametrize("phase", list(JobPhase))
def test_self_transition_not_allowed(phase):
    assert not can_transition(phase, phase)


@pytest.mark.parametrize("terminal", [JobPhase.SUCCEEDED, JobPhase.FAILED])
@pytest.mark.parametrize("target", list(JobPhase))
def test_terminal_phases_are_immutable(terminal, target):
    assert is_terminal(terminal)
    assert not can_transition(terminal, target)


def test_skipping_phases_not_allowed():
    assert not can_transition(JobPhase.QUEUED, JobPhase.SUCCEEDED)
    assert not can_transition(JobPhase.CREATED, JobPhase.ACTIVE)


def test_validate_transition_raises():
    with pytest.raises(InvalidStateTransitionError, match="queued -> succeeded"):
        validate_transition(JobPhase.QUEUED, JobPhase.SUCCEEDED)
