import asyncio
from collections.abc import AsyncIterator
from enum import Enum, auto
from typing import Generic, TypeVar

T = TypeVar("T")


class Signal(Enum):
    END = auto()
    TIMEOUT = auto()


END = Signal.END
TIMEOUT = Signal.TIMEOUT


class TranscriptionChannel(Generic[T]):
    """Unbounded FIFO between the inbound frame dispatcher and one consumer.

    ``close`` enqueues the END marker behind any buffered items, once. After
    the marker has been consumed every further pull returns END right away.
    ``pull_with_timeout`` returns TIMEOUT when nothing arrived in time; an
    item pushed after the timeout stays buffered for the next pull.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[T | Signal] = asyncio.Queue()
        self._closed = False
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def push(self, item: T) -> None:
        if self._closed:
            return
        self._queue.put_nowait(item)

    def close(self) -> bool:
        if self._closed:
            return False
        self._closed = True
        self._queue.put_nowait(END)
        return True

    async def pull(self) -> T | Signal:
        if self._drained:
            return END
        item = await self._queue.get()
        return self._mark(item)

    async def pull_with_timeout(self, timeout: float) -> T | Signal:
        if self._drained:
            return END
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return TIMEOUT
        return self._mark(item)

    async def __aiter__(self) -> AsyncIterator[T]:
        while True:
            item = await self.pull()
            if item is END:
                return
            yield item

    def _mark(self, item: T | Signal) -> T | Signal:
        if item is END:
            self._drained = True
        return item
