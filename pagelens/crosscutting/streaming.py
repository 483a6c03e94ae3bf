"""
Name: Stream Sinks

Responsibilities:
  - QueueStreamSink: expose pushed events as an async iterator
  - CollectingStreamSink: keep every pushed event in memory

Collaborators:
  - domain.services.StreamSink: both satisfy the contract
  - application.usecases.stream_analysis: hands a sink to the orchestrator

Notes:
  - Iteration ends after the terminal event (StreamDone / StreamFailed)
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from ..domain.entities import (
    StreamDone,
    StreamEvent,
    StreamFailed,
    TextDelta,
    is_terminal,
)


class QueueStreamSink:
    """R: Bridge from push-style providers to `async for` consumers."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._closed = False

    def push(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)
        if is_terminal(event):
            self._closed = True

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if is_terminal(event):
                return


class CollectingStreamSink:
    """R: In-memory sink (tests, non-interactive callers)."""

    def __init__(self) -> None:
        self.events: list[StreamEvent] = []

    def push(self, event: StreamEvent) -> None:
        self.events.append(event)

    @property
    def text(self) -> str:
        return "".join(e.text for e in self.events if isinstance(e, TextDelta))

    @property
    def terminal(self) -> Optional[StreamEvent]:
        for event in reversed(self.events):
            if isinstance(event, (StreamDone, StreamFailed)):
                return event
        return None
