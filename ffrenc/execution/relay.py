"""
Progress relay.

Sub-task owned by a JobRunner. Drains the backend's progress channel and
forwards each sample as a Progress event. Telemetry only: a full or closed
event channel drops the sample, it never fails the job.
"""

import asyncio
import logging
from typing import Optional

from ..monitor.event_model import LifecycleEvent, Progress
from .cancellation import CancellationSignal
from .channel import Channel
from .errors import ChannelClosedError, SignalRaisedError

logger = logging.getLogger(__name__)


class ProgressRelay:
    def __init__(
        self,
        job_id: int,
        total: float,
        source: Channel[float],
        events: Channel[LifecycleEvent],
        signal: CancellationSignal,
    ):
        self.job_id = job_id
        self.total = total
        self.source = source
        self.events = events
        self.signal = signal
        self.forwarded = 0
        self.dropped = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(), name=f"relay-{self.job_id}")
        return self._task

    def stop(self) -> None:
        """Raise the relay's signal and detach; does not wait for the task."""
        self.signal.raise_()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self) -> None:
        while not self.signal.is_raised():
            try:
                sample = await self.signal.guard(self.source.recv())
            except SignalRaisedError:
                break
            if sample is None:
                # Backend closed the channel
                break
            self._forward(sample)

        logger.debug(
            f"[Relay] job {self.job_id} done: {self.forwarded} forwarded, {self.dropped} dropped"
        )

    def _forward(self, current: float) -> None:
        event = LifecycleEvent(
            job_id=self.job_id,
            payload=Progress(total=self.total, current=current),
        )
        try:
            if self.events.try_send(event):
                self.forwarded += 1
            else:
                self.dropped += 1
        except ChannelClosedError:
            self.dropped += 1
