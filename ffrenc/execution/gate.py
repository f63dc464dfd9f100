"""
Concurrency gate for job admission.

Bounded counting gate: at most `capacity` jobs hold a permit at once.
Waiters are admitted in arrival order (asyncio.Semaphore keeps a FIFO of
waiters), so no waiter starves.

Design rules:
- Capacity is explicit configuration (default 1 = strictly serial)
- A permit is released exactly once, on every exit path
- Waiting for a permit is cancellable without leaking a slot
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .cancellation import CancellationSignal

logger = logging.getLogger(__name__)


class Permit:
    """Scoped admission token. Releasing twice is a no-op."""

    def __init__(self, gate: "ConcurrencyGate"):
        self._gate = gate
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gate._release()

    def __enter__(self) -> "Permit":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


class ConcurrencyGate:
    """
    Counting admission gate shared by every JobRunner in a batch.

    Usage:
        gate = ConcurrencyGate(capacity=2)
        async with gate.permit(job_signal):
            await do_work()
    """

    def __init__(self, capacity: int = 1):
        if capacity < 1:
            raise ValueError(f"Gate capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._holders = 0
        self._waiting = 0

    @property
    def holders(self) -> int:
        """Number of permits currently held."""
        return self._holders

    @property
    def waiting(self) -> int:
        """Number of callers suspended in acquire()."""
        return self._waiting

    async def acquire(self, signal: Optional[CancellationSignal] = None) -> Permit:
        """
        Suspend until a slot is free, then return a Permit.

        Args:
            signal: Optional cancellation signal; if raised while waiting,
                SignalRaisedError propagates and no slot is consumed.
        """
        self._waiting += 1
        try:
            if signal is None:
                await self._semaphore.acquire()
            else:
                await signal.guard(self._semaphore.acquire())
        finally:
            self._waiting -= 1

        self._holders += 1
        logger.debug(f"[Gate] Permit acquired ({self._holders}/{self.capacity} held)")
        return Permit(self)

    @asynccontextmanager
    async def permit(self, signal: Optional[CancellationSignal] = None) -> AsyncIterator[Permit]:
        permit = await self.acquire(signal)
        try:
            yield permit
        finally:
            permit.release()

    def _release(self) -> None:
        self._holders -= 1
        self._semaphore.release()
        logger.debug(f"[Gate] Permit released ({self._holders}/{self.capacity} held)")
