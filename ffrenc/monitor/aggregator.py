"""
UI aggregator - the single consumer of lifecycle events.

Owns the UiState reducer and the renderer. The loop:

1. Wait for the next event, at most one tick (1/12 s)
2. Apply it (a ProtocolViolationError aborts the loop)
3. Draw a frame (every iteration, human mode rate-limited to 0.1 s)

When its signal is raised it applies whatever is already buffered, draws a
final frame and returns. On any exit the receiving end of the event channel
is closed so producers never block on a dead consumer.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from ..config import OutputFormat
from ..execution.cancellation import CancellationSignal
from ..execution.channel import Channel
from .event_model import LifecycleEvent
from .render import SnapshotRenderer
from .state import AggregateSnapshot, UiState

logger = logging.getLogger(__name__)


class UiAggregator:
    def __init__(
        self,
        events: Channel[LifecycleEvent],
        signal: CancellationSignal,
        renderer: SnapshotRenderer,
        tick_interval: float = 1.0 / 12.0,
        human_interval: float = 0.1,
        state: Optional[UiState] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.events = events
        self.signal = signal
        self.renderer = renderer
        self.tick_interval = tick_interval
        self.human_interval = human_interval
        self.state = state or UiState()
        self._clock = clock
        self._last_draw: Optional[float] = None
        self.applied = 0
        self.terminated = 0
        self.latest: Optional[AggregateSnapshot] = None

    async def run(self) -> Optional[AggregateSnapshot]:
        """
        Consume events until the signal is raised or every sender is done.

        Returns:
            The final snapshot

        Raises:
            ProtocolViolationError: If an event breaks the per-job grammar
        """
        pending: Optional[asyncio.Future] = None
        logger.debug("[UI] Aggregator started")

        try:
            while not self.signal.is_raised():
                if pending is None:
                    pending = asyncio.ensure_future(self.events.recv())
                stop = asyncio.ensure_future(self.signal.wait())
                try:
                    await asyncio.wait(
                        {pending, stop},
                        timeout=self.tick_interval,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    stop.cancel()

                if pending.done():
                    event = pending.result()
                    pending = None
                    if event is None:
                        logger.debug("[UI] Event channel closed by senders")
                        break
                    self._apply(event)

                self._draw(final=False)

            if pending is not None:
                if pending.done():
                    event = pending.result()
                    if event is not None:
                        self._apply(event)
                else:
                    # Not yet resumed, so nothing was dequeued
                    pending.cancel()
                pending = None

            self._drain()
            self._draw(final=True)
        finally:
            if pending is not None:
                pending.cancel()
            self.events.close_receiver()
            self.renderer.finish()
            logger.debug(
                f"[UI] Aggregator stopped after {self.applied} events "
                f"({self.terminated} jobs terminal)"
            )

        return self.latest

    def _apply(self, event: LifecycleEvent) -> None:
        self.state.apply(event)
        self.applied += 1
        if event.is_terminal:
            self.terminated += 1

    def _drain(self) -> None:
        """Apply everything already buffered without waiting."""
        while True:
            event = self.events.recv_nowait()
            if event is None:
                break
            self._apply(event)

    def _draw(self, final: bool) -> None:
        self.latest = self.state.snapshot()

        if self.renderer.format == OutputFormat.HUMAN and not final:
            now = self._clock()
            if self._last_draw is not None and now - self._last_draw < self.human_interval:
                return
            self._last_draw = now

        self.renderer.render(self.latest)
