# src/taskdash/core/streams.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from typing import cast

from .ports import ALL_CHANGES, ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

_CLOSED = object()


class QueueChangeStream:
    """
    In-process ChangeStream backed by an asyncio.Queue.

    Producers call push(); the consumer iterates with `async for`.
    close() wakes a pending consumer and ends iteration; events pushed
    after close are ignored.
    """

    def __init__(self, table: str, events: Iterable[ChangeKind] = ALL_CHANGES) -> None:
        self.table = table
        self.events = frozenset(events)
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        """Number of buffered, not yet consumed events."""
        return 0 if self._closed else self._queue.qsize()

    def wants(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.kind in self.events

    def push(self, event: ChangeEvent) -> bool:
        if self._closed or not self.wants(event):
            return False
        self._queue.put_nowait(event)
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        logger.debug("Change stream closed table=%s", self.table)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return cast(ChangeEvent, item)
