"""
Name: Provider Base

Responsibilities:
  - Shared lifecycle state (initialized flag, last token usage)
  - Cancellation helpers used by every provider
  - Uniform stream termination (StreamDone / StreamFailed)

Collaborators:
  - domain.services.AnalysisProvider: the contract subclasses fulfil
  - crosscutting.exceptions.ProviderError

Constraints:
  - A stream ends with exactly one terminal event
  - A failing stream pushes StreamFailed and raises the same error
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, NoReturn, Optional, TypeVar

from ....crosscutting.exceptions import ErrorCode, ProviderError
from ....domain.entities import StreamDone, StreamFailed, TokenUsage
from ....domain.services import StreamSink

T = TypeVar("T")


def cancelled_error(provider_name: str) -> ProviderError:
    return ProviderError(ErrorCode.CANCELLED, f"{provider_name}: request cancelled")


async def race_with_cancel(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event],
    provider_name: str,
) -> T:
    """
    R: Await `awaitable` unless `cancel_event` fires first.

    The losing task is cancelled. Raises ProviderError(CANCELLED).
    """
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise cancelled_error(provider_name)

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work, waiter):
            if not task.done():
                task.cancel()
        await asyncio.gather(work, waiter, return_exceptions=True)

    if work.done() and not work.cancelled():
        return work.result()
    raise cancelled_error(provider_name)


class BaseProvider:
    """R: Common state for AnalysisProvider implementations."""

    def __init__(self) -> None:
        self._initialized = False
        self._usage: Optional[TokenUsage] = None

    @property
    def name(self) -> str:
        raise NotImplementedError

    @property
    def description(self) -> str:
        return self.name

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise ProviderError(
                ErrorCode.NOT_READY, f"{self.name} has not been initialized"
            )

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise cancelled_error(self.name)

    def get_token_info(self) -> Optional[TokenUsage]:
        return self._usage

    def _finish_stream(self, sink: StreamSink, final_text: str) -> None:
        sink.push(
            StreamDone(
                final_text=final_text,
                usage=self.get_token_info(),
                provider_name=self.name,
            )
        )

    def _fail_stream(self, sink: StreamSink, error: ProviderError) -> NoReturn:
        sink.push(StreamFailed(error=error))
        raise error

    async def destroy(self) -> None:
        self._initialized = False
