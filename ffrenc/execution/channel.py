"""
Bounded single-consumer channel.

An asyncio.Queue with explicit close semantics on both ends:

- close(): the sending side is done. The receiver drains what is buffered,
  then recv() returns None.
- close_receiver(): the receiving side has gone away. Further sends raise
  ChannelClosedError and blocked senders are released.

Used for progress samples (backend -> relay) and lifecycle events
(runners and relays -> aggregator).
"""

import asyncio
from typing import Generic, Optional, TypeVar

from .errors import ChannelClosedError

T = TypeVar("T")

# End-of-stream marker placed in the queue by close()
_CLOSED = object()


class Channel(Generic[T]):
    """Bounded many-producer, single-consumer channel."""

    def __init__(self, maxsize: int = 100):
        if maxsize < 1:
            raise ValueError(f"Channel size must be >= 1, got {maxsize}")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._receiver_closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def receiver_closed(self) -> bool:
        return self._receiver_closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, item: T) -> None:
        """
        Send an item, waiting for buffer space.

        Raises:
            ChannelClosedError: If the receiver has gone away or the channel
                was closed by a sender
        """
        if self._receiver_closed or self._closed:
            raise ChannelClosedError()
        await self._queue.put(item)
        if self._receiver_closed:
            # Keep releasing senders queued behind this one
            self._drain()
            raise ChannelClosedError()

    def try_send(self, item: T) -> bool:
        """
        Send without waiting.

        Returns:
            True if the item was buffered, False if the buffer was full

        Raises:
            ChannelClosedError: If the receiver has gone away
        """
        if self._receiver_closed or self._closed:
            raise ChannelClosedError()
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Mark the sending side finished."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Receiver is not blocked on a full queue; it sees the flag once drained
            pass

    def close_receiver(self) -> None:
        """Mark the receiving side gone and release blocked senders."""
        self._receiver_closed = True
        self._drain()

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def recv(self) -> Optional[T]:
        """Receive the next item, or None once closed and drained."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def recv_nowait(self) -> Optional[T]:
        """Receive a buffered item without waiting; None if nothing is buffered."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if item is _CLOSED:
            return None
        return item
