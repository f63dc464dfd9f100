"""
Single-job execution pipeline.

A JobRunner drives exactly one input through its lifecycle:

1. CREATE: query the backend for the total duration (fatal if it fails)
2. ANNOUNCE: emit Created, before touching the gate
3. ADMIT: wait for a permit from the shared ConcurrencyGate
4. START: emit Started
5. EXECUTE: run the backend with a ProgressRelay on its progress channel
6. REPORT: emit Finished or Failed
7. CLEANUP: stop the relay, release the permit

A job's failure never touches sibling jobs. Only the root signal
(interrupt) cancels everything.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from ..config import TranscodeOptions
from ..monitor.event_model import (
    Created,
    EventPayload,
    Failed,
    Finished,
    LifecycleEvent,
    Started,
)
from .base import FFmpegCommand, TranscodeBackend
from .cancellation import CancellationSignal
from .channel import Channel
from .errors import BackendCancelledError, ChannelClosedError, SignalRaisedError
from .gate import ConcurrencyGate
from .relay import ProgressRelay
from .state import JobPhase, validate_transition

logger = logging.getLogger(__name__)

CANCELLED_BEFORE_ADMISSION = "Cancelled before admission"


@dataclass(frozen=True)
class Job:
    """One unit of work: transcode one input to one output."""

    id: int
    input_path: Path
    output_path: Path
    total_duration: float


class JobContext:
    """
    Resources shared by every runner in a batch.

    The gate and the event channel are the only mutable state shared
    between jobs.
    """

    def __init__(
        self,
        events: Channel[LifecycleEvent],
        gate: ConcurrencyGate,
        signal: CancellationSignal,
        backend: TranscodeBackend,
        progress_buffer: int = 100,
    ):
        self.events = events
        self.gate = gate
        self.signal = signal
        self.backend = backend
        self.progress_buffer = progress_buffer


def build_transcode_command(
    cmd: FFmpegCommand,
    input_path: Path,
    output_path: Path,
    options: TranscodeOptions,
) -> None:
    """Append the re-encode arguments for one job."""
    cmd.arg("-y")
    cmd.arg("-i").arg(input_path)

    if options.no_audio:
        cmd.arg("-an")
    else:
        cmd.args(["-c:a", "copy"])

    if options.no_video:
        cmd.arg("-vn")
    else:
        cmd.args(["-c:v", "libx264"])
        cmd.args(["-crf", "18"])
        cmd.args(["-preset", "ultrafast"])

    # Fragmented mp4 stays playable if the transcode is interrupted
    cmd.args(["-movflags", "+frag_keyframe+empty_moov"])
    cmd.args(["-f", "mp4"])

    if options.extra_args:
        cmd.args(options.extra_args)

    cmd.arg(output_path)


class JobRunner:
    """
    Drives one Job from Created to a terminal event.

    Construct with JobRunner.create(); the duration query happens there so
    that a failing input aborts the batch before anything is announced.
    """

    def __init__(
        self,
        job: Job,
        options: TranscodeOptions,
        context: JobContext,
        signal: CancellationSignal,
    ):
        self.job = job
        self.options = options
        self.context = context
        self.signal = signal
        self.phase = JobPhase.CREATED

    @classmethod
    async def create(
        cls,
        job_id: int,
        input_path: Path,
        output_path: Path,
        options: TranscodeOptions,
        context: JobContext,
    ) -> "JobRunner":
        """
        Query the input's duration and build a runner.

        Raises:
            DurationQueryError: If the backend cannot report a duration
            SignalRaisedError: If interrupted while querying
        """
        signal = context.signal.child(f"job-{job_id}")
        total = await context.backend.query_duration(input_path, signal)
        job = Job(id=job_id, input_path=input_path, output_path=output_path, total_duration=total)
        logger.debug(f"[Runner] Enqueued job {job_id}: {input_path} -> {output_path} ({total:.1f}s)")
        return cls(job, options, context, signal)

    async def run(self) -> JobPhase:
        """
        Run the job to a terminal phase. Never raises for job failures.

        Returns:
            The terminal phase reached
        """
        await self._emit(Created(
            input=self.job.input_path,
            output=self.job.output_path,
            total=self.job.total_duration,
        ))
        self._advance(JobPhase.QUEUED)

        try:
            permit = await self.context.gate.acquire(self.signal)
        except SignalRaisedError:
            logger.info(f"[Runner] Job {self.job.id} cancelled while queued")
            # No permit held; Started still precedes the terminal event
            self._advance(JobPhase.ACTIVE)
            await self._emit(Started())
            self._advance(JobPhase.FAILED)
            await self._emit(Failed(error=CANCELLED_BEFORE_ADMISSION))
            return self.phase

        with permit:
            self._advance(JobPhase.ACTIVE)
            await self._emit(Started())
            logger.info(f"[Runner] Job {self.job.id} started: {self.job.input_path.name}")

            outcome = await self._execute()

            if isinstance(outcome, Finished) and outcome.exit.success:
                self._advance(JobPhase.SUCCEEDED)
            else:
                self._advance(JobPhase.FAILED)
            # Emitted while still holding the permit: the next job cannot
            # start before this terminal event is in the channel
            await self._emit(outcome)

        logger.info(f"[Runner] Job {self.job.id} {self.phase.value}")
        return self.phase

    async def _execute(self) -> EventPayload:
        progress: Channel[float] = Channel(maxsize=self.context.progress_buffer)
        relay = ProgressRelay(
            job_id=self.job.id,
            total=self.job.total_duration,
            source=progress,
            events=self.context.events,
            signal=self.signal.child(f"relay-{self.job.id}"),
        )
        relay.start()

        try:
            exit_status = await self.context.backend.run_with_progress(
                progress,
                self.signal,
                self._build_command,
            )
        except BackendCancelledError as e:
            logger.info(f"[Runner] Job {self.job.id} cancelled: {e}")
            return Failed(error=str(e))
        except Exception as e:
            logger.exception(f"[Runner] Job {self.job.id} failed: {e}")
            return Failed(error=str(e) or type(e).__name__)
        finally:
            relay.stop()

        return Finished(exit=exit_status)

    def _build_command(self, cmd: FFmpegCommand) -> None:
        build_transcode_command(cmd, self.job.input_path, self.job.output_path, self.options)

    def _advance(self, phase: JobPhase) -> None:
        validate_transition(self.phase, phase)
        self.phase = phase

    async def _emit(self, payload: EventPayload) -> None:
        """Send a lifecycle event. A vanished aggregator only costs observability."""
        try:
            await self.context.events.send(LifecycleEvent(job_id=self.job.id, payload=payload))
        except ChannelClosedError:
            logger.debug(f"[Runner] Job {self.job.id} {payload.kind} not delivered: UI gone")
