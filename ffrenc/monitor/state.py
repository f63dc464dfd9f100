"""
UI reducer state.

UiState is owned by exactly one task (the aggregator). It applies one
LifecycleEvent at a time to a table of JobSnapshots and builds immutable
AggregateSnapshots for rendering. Nothing else holds a reference to the
table, so no locking is needed.

Snapshot derivation is a pure function of the table and "now":

- elapsed  = now - started_at (frozen at exited_at once terminal)
- percent  = clamp(current / max(total, epsilon) * 100, 0, 100)
- eta      = elapsed * (total / current - 1), only once current has reached
             1% of total, and suppressed beyond one hour
"""

import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, assert_never

from pydantic import BaseModel, ConfigDict, Field

from ..execution.state import JobPhase, can_transition
from .errors import ProtocolViolationError
from .event_model import Created, Failed, Finished, LifecycleEvent, Progress, Started

# Smallest positive total used as divisor, so a zero-length input never divides by zero
MIN_TOTAL = sys.float_info.epsilon

# ETA needs at least this fraction of the input processed
ETA_MIN_FRACTION = 0.01

# Extrapolations beyond this are too unstable to show
ETA_MAX_SECONDS = 3600.0


@dataclass
class JobSnapshot:
    """Reducer-owned view of one job. Mutated only by UiState.apply()."""

    id: int
    input: Path
    output: Path
    total: float
    phase: JobPhase = JobPhase.QUEUED
    active: bool = False
    started_at: Optional[datetime] = None
    exited_at: Optional[datetime] = None
    success: Optional[bool] = None
    error_description: Optional[str] = None
    current: float = 0.0


class TaskInfo(BaseModel):
    """
    Render-time view of one job.

    `active` means Started was seen and no terminal event yet. It is not a
    gate permit: a job cancelled while queued emits Started then Failed with
    no permit, so active_tasks may briefly exceed the concurrency limit.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: int
    input: Path
    output: Path
    phase: JobPhase
    active: bool
    started_at: Optional[datetime] = None
    exited_at: Optional[datetime] = None
    elapsed_seconds: Optional[float] = None
    eta_seconds: Optional[float] = None
    success: Optional[bool] = None
    error_description: Optional[str] = None
    total_seconds: float
    current_seconds: float
    percent: float


class AggregateSnapshot(BaseModel):
    """
    Immutable point-in-time view over every job.

    Invariants:
    - completed_tasks == successful_tasks + failed_tasks
    - active_tasks + completed_tasks <= total_tasks
    - tasks are ordered by id, ids unique
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    generated_at: datetime
    total_tasks: int
    active_tasks: int
    completed_tasks: int
    successful_tasks: int
    failed_tasks: int
    tasks: List[TaskInfo] = Field(default_factory=list)

    @property
    def active(self) -> List[TaskInfo]:
        return [t for t in self.tasks if t.active]

    def get(self, job_id: int) -> Optional[TaskInfo]:
        for task in self.tasks:
            if task.id == job_id:
                return task
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_percent(current: float, total: float) -> float:
    percent = current / max(total, MIN_TOTAL) * 100.0
    return max(0.0, min(100.0, percent))


def compute_eta(elapsed: float, current: float, total: float) -> Optional[float]:
    """
    Estimate remaining seconds from elapsed wall time and processed position.

    Returns:
        Seconds remaining, or None while progress is below 1% of total or
        when the estimate exceeds one hour
    """
    if current <= 0 or current < total * ETA_MIN_FRACTION:
        return None
    remaining = elapsed * (total / current - 1.0)
    if remaining > ETA_MAX_SECONDS:
        return None
    return max(0.0, remaining)


class UiState:
    """
    Single-owner reducer over lifecycle events.

    Usage:
        state = UiState()
        state.apply(event)            # raises ProtocolViolationError on bad order
        snapshot = state.snapshot()   # immutable, safe to hand to renderers
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._jobs: Dict[int, JobSnapshot] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: int) -> bool:
        return job_id in self._jobs

    def apply(self, event: LifecycleEvent) -> None:
        """
        Apply one event to the job table.

        Progress for a job that is not active is rejected too. The runner
        stops its ProgressRelay before emitting the terminal event, so no
        such Progress is produced today; a change to relay teardown that
        lets one through would abort the whole batch.

        Raises:
            ProtocolViolationError: Unknown job id for a non-Created event,
                duplicate Created, or an out-of-lifecycle transition
        """
        payload = event.payload
        job = self._jobs.get(event.job_id)

        if isinstance(payload, Created):
            if job is not None:
                raise ProtocolViolationError(event.job_id, payload.kind, "job already exists")
            self._jobs[event.job_id] = JobSnapshot(
                id=event.job_id,
                input=payload.input,
                output=payload.output,
                total=payload.total,
            )
            return

        if job is None:
            raise ProtocolViolationError(event.job_id, payload.kind, "non-existent task id")

        now = self._clock()

        if isinstance(payload, Started):
            self._advance(job, JobPhase.ACTIVE, payload.kind)
            job.active = True
            job.started_at = now
        elif isinstance(payload, Progress):
            if job.phase != JobPhase.ACTIVE:
                raise ProtocolViolationError(
                    event.job_id, payload.kind, f"job is {job.phase.value}, not active"
                )
            job.current = payload.current
            job.total = payload.total
        elif isinstance(payload, Finished):
            success = payload.exit.success
            self._advance(job, JobPhase.SUCCEEDED if success else JobPhase.FAILED, payload.kind)
            job.active = False
            job.exited_at = now
            job.success = success
            if not success:
                job.error_description = payload.exit.describe()
        elif isinstance(payload, Failed):
            self._advance(job, JobPhase.FAILED, payload.kind)
            job.active = False
            job.exited_at = now
            job.success = False
            job.error_description = payload.error
        else:
            assert_never(payload)

    def _advance(self, job: JobSnapshot, phase: JobPhase, kind: str) -> None:
        if not can_transition(job.phase, phase):
            raise ProtocolViolationError(
                job.id, kind, f"illegal transition {job.phase.value} -> {phase.value}"
            )
        job.phase = phase

    def snapshot(self, now: Optional[datetime] = None) -> AggregateSnapshot:
        """Build an immutable AggregateSnapshot as of now."""
        now = now or self._clock()
        tasks = [self._task_info(self._jobs[job_id], now) for job_id in sorted(self._jobs)]
        return AggregateSnapshot(
            generated_at=now,
            total_tasks=len(tasks),
            active_tasks=sum(1 for t in tasks if t.active),
            completed_tasks=sum(1 for t in tasks if t.exited_at is not None),
            successful_tasks=sum(1 for t in tasks if t.success is True),
            failed_tasks=sum(1 for t in tasks if t.success is False),
            tasks=tasks,
        )

    @staticmethod
    def _task_info(job: JobSnapshot, now: datetime) -> TaskInfo:
        elapsed = None
        eta = None
        if job.started_at is not None:
            until = job.exited_at or now
            elapsed = max(0.0, (until - job.started_at).total_seconds())
            if job.exited_at is None:
                eta = compute_eta(elapsed, job.current, job.total)

        return TaskInfo(
            id=job.id,
            input=job.input,
            output=job.output,
            phase=job.phase,
            active=job.active,
            started_at=job.started_at,
            exited_at=job.exited_at,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
            success=job.success,
            error_description=job.error_description,
            total_seconds=job.total,
            current_seconds=job.current,
            percent=round(compute_percent(job.current, job.total), 1),
        )
