"""Ordered result channel into the orchestrator.

Background work runs either as asyncio tasks on the orchestrator's loop or
as daemon threads. Both report through one ``EventChannel``: sends are
safe from any thread, receives happen only on the owning loop. Closing the
channel is how producers learn they have been abandoned: ``send`` returns
``False`` and the producer is expected to stop.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Generic, TypeVar

import structlog

T = TypeVar("T")

logger = structlog.get_logger()


class EventChannel(Generic[T]):
    """Unbounded multi-producer, single-consumer channel.

    Example:
        ```python
        channel: EventChannel[ChannelEvent] = EventChannel()
        channel.bind()  # on the consuming loop

        # any thread
        if not channel.send(LogLine(generation, line)):
            return  # receiver is gone

        event = await channel.recv()
        for event in channel.drain():
            ...
        ```
    """

    def __init__(self, name: str = "results") -> None:
        self._name = name
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread_id: int | None = None
        self._closed = False

    def bind(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach the channel to the consuming event loop.

        Must be called from the loop's thread before foreign threads send.
        """
        self._loop = loop or asyncio.get_running_loop()
        self._thread_id = threading.get_ident()

    @property
    def closed(self) -> bool:
        """Whether the receiving side has gone away."""
        return self._closed

    def send(self, item: T) -> bool:
        """Enqueue an item in send order.

        Returns:
            ``False`` when the channel is closed, which producers treat as
            cancellation.
        """
        if self._closed:
            return False
        loop = self._loop
        if loop is None or threading.get_ident() == self._thread_id:
            self._queue.put_nowait(item)
            return True
        try:
            loop.call_soon_threadsafe(self._put, item)
        except RuntimeError:
            # Loop already closed
            self._closed = True
            return False
        return True

    def _put(self, item: T) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    async def recv(self) -> T:
        """Wait for the next item."""
        if self._loop is None:
            self.bind()
        return await self._queue.get()

    def try_recv(self) -> T | None:
        """Return the next ready item, or ``None`` when nothing is queued."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> list[T]:
        """Remove and return every item that is ready right now."""
        items: list[T] = []
        while (item := self.try_recv()) is not None:
            items.append(item)
        return items

    def close(self) -> None:
        """Refuse further sends and drop anything still queued."""
        if self._closed:
            return
        self._closed = True
        dropped = len(self.drain())
        logger.debug("channel_closed", channel=self._name, dropped=dropped)

    def __len__(self) -> int:
        return self._queue.qsize()
