"""
UI reducer tests.

Comprehensive QC tests proving:
1. Every lifecycle event is applied to the right job
2. Events that break the per-job order are rejected
3. Snapshot counters keep their invariants
4. Elapsed / percent / ETA derivation edge cases

These tests use synthetic events and do not invoke FFmpeg.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import FakeClock
from ffrenc.execution.base import ExitStatus
from ffrenc.execution.state import JobPhase
from ffrenc.monitor.errors import ProtocolViolationError
from ffrenc.monitor.event_model import (
    Created,
    Failed,
    Finished,
    LifecycleEvent,
    Progress,
    Started,
)
from ffrenc.monitor.state import AggregateSnapshot, UiState, compute_eta, compute_percent

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Test Helpers
# =============================================================================

def ev(job_id: int, payload) -> LifecycleEvent:
    return LifecycleEvent(job_id=job_id, payload=payload)


def created(job_id: int, total: float = 100.0) -> LifecycleEvent:
    return ev(job_id, Created(
        input=Path(f"/in/clip{job_id}.mov"),
        output=Path(f"/out/clip{job_id}.renc.mp4"),
        total=total,
    ))


def finished(job_id: int, returncode: int = 0) -> LifecycleEvent:
    return ev(job_id, Finished(exit=ExitStatus.from_returncode(returncode)))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def state(clock) -> UiState:
    return UiState(clock=clock)


# =============================================================================
# Reducer
# =============================================================================

class TestReducer:
    def test_full_success_lifecycle(self, state, clock):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        clock.advance(5)
        state.apply(ev(0, Progress(total=100.0, current=50.0)))
        clock.advance(5)
        state.apply(finished(0))

        task = state.snapshot().get(0)
        assert task.phase == JobPhase.SUCCEEDED
        assert task.active is False
        assert task.success is True
        assert task.error_description is None
        assert task.elapsed_seconds == 10.0

    def test_created_job_is_queued_not_active(self, state):
        state.apply(created(0))
        snap = state.snapshot()
        assert snap.total_tasks == 1
        assert snap.active_tasks == 0
        assert snap.tasks[0].phase == JobPhase.QUEUED
        assert snap.tasks[0].started_at is None

    def test_nonzero_exit_is_failure_with_description(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        state.apply(finished(0, returncode=1))

        task = state.snapshot().get(0)
        assert task.phase == JobPhase.FAILED
        assert task.success is False
        assert task.error_description == "exited with code 1"

    def test_failed_event_records_error(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        state.apply(ev(0, Failed(error="ffmpeg not found")))

        task = state.snapshot().get(0)
        assert task.phase == JobPhase.FAILED
        assert task.error_description == "ffmpeg not found"

    def test_out_of_order_progress_is_accepted(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        state.apply(ev(0, Progress(total=100.0, current=60.0)))
        state.apply(ev(0, Progress(total=100.0, current=40.0)))
        assert state.snapshot().get(0).current_seconds == 40.0

    def test_interleaved_jobs(self, state):
        state.apply(created(1))
        state.apply(created(0))
        state.apply(ev(1, Started()))
        state.apply(ev(0, Started()))
        state.apply(finished(0))
        state.apply(ev(1, Failed(error="x")))

        snap = state.snapshot()
        assert [t.id for t in snap.tasks] == [0, 1]
        assert snap.successful_tasks == 1
        assert snap.failed_tasks == 1


class TestProtocolViolations:
    """Events that do not fit a job's lifecycle abort the aggregator."""

    def test_unknown_job_id(self, state):
        with pytest.raises(ProtocolViolationError, match="non-existent task id"):
            state.apply(ev(7, Started()))

    def test_duplicate_created(self, state):
        state.apply(created(0))
        with pytest.raises(ProtocolViolationError):
            state.apply(created(0))

    def test_progress_before_started(self, state):
        state.apply(created(0))
        with pytest.raises(ProtocolViolationError):
            state.apply(ev(0, Progress(total=1.0, current=0.5)))

    def test_started_twice(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        with pytest.raises(ProtocolViolationError):
            state.apply(ev(0, Started()))

    def test_terminal_before_started(self, state):
        state.apply(created(0))
        with pytest.raises(ProtocolViolationError):
            state.apply(finished(0))

    def test_second_terminal_rejected(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        state.apply(finished(0))
        with pytest.raises(ProtocolViolationError):
            state.apply(ev(0, Failed(error="late")))

    def test_progress_after_terminal_rejected(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        state.apply(finished(0))
        with pytest.raises(ProtocolViolationError):
            state.apply(ev(0, Progress(total=100.0, current=100.0)))

    def test_error_message_names_job_and_kind(self, state):
        with pytest.raises(ProtocolViolationError) as exc_info:
            state.apply(ev(3, Progress(total=1.0, current=0.5)))
        assert exc_info.value.job_id == 3
        assert exc_info.value.kind == "progress"
        assert "job id=3" in str(exc_info.value)


# =============================================================================
# Snapshot invariants
# =============================================================================

class TestSnapshotInvariants:
    def _check(self, snap: AggregateSnapshot) -> None:
        assert snap.completed_tasks == snap.successful_tasks + snap.failed_tasks
        assert snap.active_tasks + snap.completed_tasks <= snap.total_tasks
        ids = [t.id for t in snap.tasks]
        assert ids == sorted(set(ids))

    def test_invariants_hold_after_every_event(self, state, clock):
        script = [
            created(0), created(1), created(2),
            ev(0, Started()),
            ev(0, Progress(total=100.0, current=10.0)),
            ev(1, Started()),
            finished(0),
            ev(2, Started()),
            ev(1, Failed(error="boom")),
            finished(2, returncode=1),
        ]
        for event in script:
            state.apply(event)
            clock.advance(1)
            self._check(state.snapshot())

        snap = state.snapshot()
        assert snap.total_tasks == 3
        assert snap.completed_tasks == 3
        assert snap.successful_tasks == 1
        assert snap.failed_tasks == 2

    def test_active_follows_started_not_permits(self, state):
        # Job 1 cancelled while queued: Started then Failed, never admitted
        state.apply(created(0))
        state.apply(created(1))
        state.apply(ev(0, Started()))
        state.apply(ev(1, Started()))
        snap = state.snapshot()
        assert snap.active_tasks == 2
        self._check(snap)

        state.apply(ev(1, Failed(error="Cancelled before admission")))
        snap = state.snapshot()
        assert snap.active_tasks == 1
        assert snap.get(1).active is False
        assert snap.get(1).phase == JobPhase.FAILED
        self._check(snap)

    def test_snapshot_is_immutable(self, state):
        state.apply(created(0))
        snap = state.snapshot()
        with pytest.raises(Exception):
            snap.total_tasks = 5  # type: ignore[misc]

    def test_snapshot_not_affected_by_later_events(self, state):
        state.apply(created(0))
        before = state.snapshot()
        state.apply(ev(0, Started()))
        assert before.active_tasks == 0
        assert state.snapshot().active_tasks == 1

    def test_json_round_trip(self, state):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        state.apply(ev(0, Progress(total=100.0, current=25.0)))
        snap = state.snapshot()
        assert AggregateSnapshot.model_validate_json(snap.model_dump_json()) == snap


# =============================================================================
# Derived metrics
# =============================================================================

class TestDerivedMetrics:
    def test_elapsed_frozen_at_exit(self, state, clock):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        clock.advance(3)
        state.apply(finished(0))
        clock.advance(100)
        assert state.snapshot().get(0).elapsed_seconds == 3.0

    def test_eta_for_running_job(self, state, clock):
        state.apply(created(0, total=100.0))
        state.apply(ev(0, Started()))
        clock.advance(10)
        state.apply(ev(0, Progress(total=100.0, current=50.0)))
        assert state.snapshot().get(0).eta_seconds == pytest.approx(10.0)

    def test_no_eta_for_terminal_job(self, state, clock):
        state.apply(created(0))
        state.apply(ev(0, Started()))
        clock.advance(10)
        state.apply(ev(0, Progress(total=100.0, current=50.0)))
        state.apply(ev(0, Failed(error="x")))
        assert state.snapshot().get(0).eta_seconds is None

    def test_percent_rounded_and_clamped(self, state):
        state.apply(created(0, total=3.0))
        state.apply(ev(0, Started()))
        state.apply(ev(0, Progress(total=3.0, current=1.0)))
        assert state.snapshot().get(0).percent == 33.3

        state.apply(ev(0, Progress(total=3.0, current=9.0)))
        assert state.snapshot().get(0).percent == 100.0

    def test_zero_total_does_not_divide_by_zero(self, state):
        state.apply(created(0, total=0.0))
        state.apply(ev(0, Started()))
        state.apply(ev(0, Progress(total=0.0, current=0.0)))
        task = state.snapshot().get(0)
        assert task.percent == 0.0
        assert task.eta_seconds is None

    def test_zero_total_reports_complete_once_progress_seen(self, state, clock):
        state.apply(created(0, total=0.0))
        state.apply(ev(0, Started()))
        clock.advance(2)
        state.apply(ev(0, Progress(total=0.0, current=0.5)))

        task = state.snapshot().get(0)
        assert task.percent == 100.0
        # Nothing left to process
        assert task.eta_seconds == 0.0
        assert compute_percent(0.5, 0.0) == 100.0

    def test_compute_percent_bounds(self):
        assert compute_percent(-5.0, 10.0) == 0.0
        assert compute_percent(5.0, 10.0) == 50.0
        assert compute_percent(50.0, 10.0) == 100.0

    def test_eta_suppressed_below_one_percent(self):
        assert compute_eta(elapsed=10.0, current=0.5, total=100.0) is None
        assert compute_eta(elapsed=10.0, current=0.0, total=100.0) is None

    def test_eta_at_one_percent(self):
        assert compute_eta(elapsed=1.0, current=1.0, total=100.0) == pytest.approx(99.0)

    def test_eta_suppressed_beyond_an_hour(self):
        assert compute_eta(elapsed=100.0, current=2.0, total=100.0) is None

    def test_eta_clamped_at_zero(self):
        assert compute_eta(elapsed=10.0, current=120.0, total=100.0) == 0.0
