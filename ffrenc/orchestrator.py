"""
Batch orchestrator.

Composes one run:

1. Query every input's duration (JobRunner.create). A failure here aborts
   the batch before a single event is emitted.
2. Spawn the UI aggregator, then one task per JobRunner.
3. Await every runner. Job failures never propagate here.
4. Raise the UI signal and give the aggregator `shutdown_grace` seconds to
   drain and draw its final frame.

Design rules:
- The gate and the event channel are the only state shared between jobs
- The UI signal is not a child of root: after an interrupt the aggregator
  keeps applying events until every runner has emitted its terminal event
- If the aggregator dies early (protocol violation) the batch signal is
  raised so remaining jobs wind down, then the aggregator's error is re-raised
- A slow aggregator is an error (ShutdownTimeoutError), never a hang
"""

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, TextIO, Tuple

from .config import BatchSettings
from .execution.base import TranscodeBackend
from .execution.cancellation import CancellationSignal
from .execution.channel import Channel
from .execution.errors import ShutdownTimeoutError
from .execution.gate import ConcurrencyGate
from .execution.runner import JobContext, JobRunner
from .execution.state import JobPhase
from .monitor.aggregator import UiAggregator
from .monitor.event_model import LifecycleEvent
from .monitor.monitor_api import MonitorServer
from .monitor.render import SnapshotRenderer
from .monitor.state import AggregateSnapshot

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of one batch. Terminal phases come from the runners themselves."""

    phases: List[JobPhase] = field(default_factory=list)
    snapshot: Optional[AggregateSnapshot] = None
    interrupted: bool = False

    @property
    def total(self) -> int:
        return len(self.phases)

    @property
    def succeeded(self) -> int:
        return sum(1 for p in self.phases if p == JobPhase.SUCCEEDED)

    @property
    def failed(self) -> int:
        return sum(1 for p in self.phases if p == JobPhase.FAILED)


class Orchestrator:
    """
    Runs a planned batch to completion.

    Usage:
        root = CancellationSignal("root")
        orchestrator = Orchestrator(settings, FFmpegBackend(), root)
        result = await orchestrator.run([(input_path, output_path), ...])
    """

    def __init__(
        self,
        settings: BatchSettings,
        backend: TranscodeBackend,
        root: CancellationSignal,
        stream: Optional[TextIO] = None,
        renderer: Optional[SnapshotRenderer] = None,
    ):
        self.settings = settings
        self.backend = backend
        self.root = root
        self.renderer = renderer or SnapshotRenderer(
            settings.format,
            stream if stream is not None else sys.stdout,
            active_limit=settings.active_display_limit,
        )
        self.aggregator: Optional[UiAggregator] = None

    async def run(self, plan: Sequence[Tuple[Path, Path]]) -> BatchResult:
        """
        Execute every (input, output) pair.

        Raises:
            DurationQueryError: Before any event, if an input cannot be probed
            SignalRaisedError: If interrupted while probing
            ProtocolViolationError: If the aggregator rejected an event
            ShutdownTimeoutError: If the aggregator outlived shutdown_grace
        """
        settings = self.settings
        events: Channel[LifecycleEvent] = Channel(maxsize=settings.event_buffer)
        gate = ConcurrencyGate(settings.concurrency)
        batch_signal = self.root.child("batch")
        # Not under root; raised only once every runner is terminal
        ui_signal = CancellationSignal("ui")

        context = JobContext(
            events=events,
            gate=gate,
            signal=batch_signal,
            backend=self.backend,
            progress_buffer=settings.progress_buffer,
        )

        # Durations first: nothing is announced until every input is known good
        runners: List[JobRunner] = []
        for job_id, (input_path, output_path) in enumerate(plan):
            runner = await JobRunner.create(
                job_id, input_path, output_path, settings.transcode, context
            )
            runners.append(runner)

        logger.info(
            f"[Batch] Starting {len(runners)} jobs with concurrency {settings.concurrency}"
        )

        aggregator = UiAggregator(
            events,
            ui_signal,
            self.renderer,
            tick_interval=settings.tick_interval,
            human_interval=settings.human_interval,
        )
        self.aggregator = aggregator
        ui_task = asyncio.create_task(aggregator.run(), name="ui-aggregator")
        ui_task.add_done_callback(lambda task: self._on_ui_done(task, batch_signal))

        monitor: Optional[MonitorServer] = None
        if settings.monitor_port is not None:
            monitor = MonitorServer(
                lambda: aggregator.latest,
                port=settings.monitor_port,
                host=settings.monitor_host,
            )
            monitor.start()

        job_tasks = [
            asyncio.create_task(runner.run(), name=f"job-{runner.job.id}")
            for runner in runners
        ]

        try:
            phases = await asyncio.gather(*job_tasks)
        except BaseException:
            batch_signal.raise_()
            ui_signal.raise_()
            for task in job_tasks:
                task.cancel()
            ui_task.cancel()
            await asyncio.gather(*job_tasks, ui_task, return_exceptions=True)
            if monitor is not None:
                await monitor.stop()
            raise

        ui_signal.raise_()
        try:
            await asyncio.wait_for(ui_task, timeout=settings.shutdown_grace)
        except asyncio.TimeoutError:
            raise ShutdownTimeoutError(settings.shutdown_grace)
        finally:
            if monitor is not None:
                await monitor.stop()

        result = BatchResult(
            phases=list(phases),
            snapshot=aggregator.latest,
            interrupted=self.root.is_raised(),
        )
        logger.info(
            f"[Batch] Done: {result.succeeded} succeeded, {result.failed} failed"
            + (" (interrupted)" if result.interrupted else "")
        )
        return result

    @staticmethod
    def _on_ui_done(task: asyncio.Task, batch_signal: CancellationSignal) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[Batch] UI aggregator failed, cancelling remaining jobs: {error}")
            batch_signal.raise_()
