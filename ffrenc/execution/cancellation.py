"""
Hierarchical cancellation signals.

The tree looks like:

    root (process interrupt)
     +-- batch (orchestrator)
          +-- job 0
          |    +-- relay 0
          +-- job 1
               +-- relay 1

    ui (aggregator, standalone; raised once every job is terminal)

Design rules:
- Raising a signal propagates to every descendant, never upwards or sideways
- Raising is idempotent
- A child derived from a raised parent is born raised
- Waiting is level-triggered (asyncio.Event), so there is no missed-signal
  window between checking and waiting
"""

import asyncio
import logging
from typing import Any, Awaitable, List, Optional, TypeVar

from .errors import SignalRaisedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationSignal:
    """
    One node in the cancellation tree.

    Usage:
        root = CancellationSignal("root")
        job = root.child("job-0")
        try:
            exit_status = await job.guard(backend_call())
        except SignalRaisedError:
            ...
    """

    def __init__(self, name: str = "root", parent: Optional["CancellationSignal"] = None):
        self.name = name
        self.parent = parent
        self._event = asyncio.Event()
        self._children: List["CancellationSignal"] = []

    def __repr__(self) -> str:
        state = "raised" if self.is_raised() else "armed"
        return f"<CancellationSignal {self.name} {state}>"

    def child(self, name: Optional[str] = None) -> "CancellationSignal":
        """Derive a descendant signal."""
        child = CancellationSignal(name or f"{self.name}.{len(self._children)}", parent=self)
        self._children.append(child)
        if self.is_raised():
            child.raise_()
        return child

    def is_raised(self) -> bool:
        return self._event.is_set()

    def raise_(self) -> None:
        """Raise this signal and every descendant. Safe to call repeatedly."""
        if self._event.is_set():
            return
        self._event.set()
        logger.debug(f"[Cancel] {self.name} raised")
        for child in self._children:
            child.raise_()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Race an awaitable against this signal.

        Returns the awaitable's result if it completes first (or at the same
        time as the raise). Otherwise the awaitable is cancelled and
        SignalRaisedError is raised.

        Raises:
            SignalRaisedError: If the signal was raised before completion
        """
        if self.is_raised():
            _discard(awaitable)
            raise SignalRaisedError(f"{self.name} already raised")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise SignalRaisedError(f"{self.name} raised")


def _discard(awaitable: Any) -> None:
    """Close an un-awaited coroutine so it does not warn on collection."""
    if asyncio.iscoroutine(awaitable):
        awaitable.close()
    elif isinstance(awaitable, asyncio.Future):
        awaitable.cancel()
