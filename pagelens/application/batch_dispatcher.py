"""
Name: Chunk Batch Dispatcher

Responsibilities:
  - Run chunks through an analysis callable with bounded concurrency
  - Race each attempt against a timeout and the cancellation signal
  - Retry failed attempts with linear backoff (tenacity)
  - Degrade exhausted chunks to empty results instead of failing the run
  - Report progress after each batch

Collaborators:
  - tenacity: AsyncRetrying + wait_incrementing
  - application.record_parser: parses string responses with provenance
  - crosscutting.timing.Timer: elapsed_ms per chunk

Constraints:
  - Batches run strictly in index order; chunks within a batch run as
    concurrent asyncio tasks
  - Per-chunk failures never propagate out of process()
  - Cancellation is a clean return: cancelled chunks contribute no result

Notes:
  - Backoff before retry k (1-based) is k * retry_base_delay
  - Parse failures yield empty records and are not retried
  - A provider-raised CANCELLED error is handled like the signal: no retry,
    no result
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Awaitable, Callable, Optional, Sequence, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from ..crosscutting.exceptions import ErrorCode, ProviderError
from ..crosscutting.logger import logger
from ..crosscutting.timing import Timer
from ..domain.entities import Chunk, ChunkResult, Record
from .record_parser import parse_records

AnalyzeResponse = Union[str, Sequence[Record]]
AnalyzeFn = Callable[[str], Awaitable[AnalyzeResponse]]
ProgressFn = Callable[[int, int], None]


class _ChunkCancelled(Exception):
    """Internal: an attempt observed the cancellation signal."""


class ChunkBatchDispatcher:
    """
    R: Batch runner for segmented documents.

    Defaults mirror Settings: batch_size=3, inter_batch_delay=0.5s,
    attempt_timeout=30s, retry_attempts=2, retry_base_delay=1s.
    """

    def __init__(
        self,
        batch_size: int = 3,
        inter_batch_delay: float = 0.5,
        attempt_timeout: Optional[float] = 30.0,
        retry_attempts: int = 2,
        retry_base_delay: float = 1.0,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        if retry_attempts < 0:
            raise ValueError(f"retry_attempts must be >= 0, got {retry_attempts}")
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.attempt_timeout = attempt_timeout
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    @classmethod
    def from_settings(cls, settings=None) -> "ChunkBatchDispatcher":
        if settings is None:
            from ..crosscutting.config import get_settings

            settings = get_settings()
        return cls(
            batch_size=settings.batch_size,
            inter_batch_delay=settings.inter_batch_delay_seconds,
            attempt_timeout=settings.chunk_timeout_seconds,
            retry_attempts=settings.chunk_retry_attempts,
            retry_base_delay=settings.chunk_retry_base_delay_seconds,
        )

    async def process(
        self,
        chunks: Sequence[Chunk],
        analyze: AnalyzeFn,
        *,
        batch_size: Optional[int] = None,
        on_progress: Optional[ProgressFn] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> list[ChunkResult]:
        """
        Analyze every chunk and return one result per processed chunk.

        Stops before the next batch once `cancel_event` is set and returns
        whatever has accumulated.
        """
        size = batch_size or self.batch_size
        total = len(chunks)
        results: list[ChunkResult] = []
        completed = 0

        for index in range(0, total, size):
            if index > 0 and self.inter_batch_delay > 0:
                await asyncio.sleep(self.inter_batch_delay)

            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "Chunk processing cancelled",
                    extra={"completed": completed, "total": total},
                )
                break

            batch = chunks[index : index + size]
            outcomes = await asyncio.gather(
                *(self._process_chunk(chunk, analyze, cancel_event) for chunk in batch)
            )
            results.extend(outcome for outcome in outcomes if outcome is not None)
            completed += len(batch)

            if on_progress is not None:
                on_progress(completed, total)

        return results

    async def _process_chunk(
        self,
        chunk: Chunk,
        analyze: AnalyzeFn,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[ChunkResult]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts + 1),
            wait=wait_incrementing(
                start=self.retry_base_delay, increment=self.retry_base_delay
            ),
            retry=retry_if_exception(lambda exc: not _is_cancellation(exc)),
            before_sleep=_log_attempt_failure(chunk),
            reraise=True,
        )

        timer = Timer().start()
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._attempt(chunk, analyze, cancel_event)
        except Exception as exc:
            if _is_cancellation(exc):
                logger.info("Chunk attempt cancelled", extra={"chunk_id": chunk.id})
                return None
            logger.warning(
                "Chunk degraded after exhausting retries",
                extra={
                    "chunk_id": chunk.id,
                    "attempts": self.retry_attempts + 1,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return ChunkResult.degraded_for(chunk.id)

        try:
            records = _to_records(response, chunk)
        except Exception as exc:
            logger.warning(
                "Chunk response could not be parsed",
                extra={
                    "chunk_id": chunk.id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            records = []
        return ChunkResult(
            chunk_id=chunk.id,
            records=tuple(records),
            elapsed_ms=timer.stop().elapsed_ms,
        )

    async def _attempt(
        self,
        chunk: Chunk,
        analyze: AnalyzeFn,
        cancel_event: Optional[asyncio.Event],
    ) -> AnalyzeResponse:
        if cancel_event is not None and cancel_event.is_set():
            raise _ChunkCancelled()

        work = asyncio.ensure_future(analyze(chunk.text))
        waiters = {work}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.attempt_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if work in done:
            return work.result()
        if cancel_waiter is not None and cancel_waiter in done:
            raise _ChunkCancelled()
        raise ProviderError(
            ErrorCode.TIMEOUT,
            f"Chunk {chunk.id} timed out after {self.attempt_timeout}s",
        )


def _is_cancellation(exc: BaseException) -> bool:
    if isinstance(exc, _ChunkCancelled):
        return True
    return isinstance(exc, ProviderError) and exc.code == ErrorCode.CANCELLED


def _to_records(response: AnalyzeResponse, chunk: Chunk) -> list[Record]:
    if isinstance(response, str):
        return parse_records(response, chunk)
    return [
        record
        if record.source_chunk_id is not None
        else replace(record, source_chunk_id=chunk.id)
        for record in response
    ]


def _log_attempt_failure(chunk: Chunk) -> Callable[[RetryCallState], None]:
    def _log(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Chunk {chunk.id} attempt {retry_state.attempt_number} failed",
            extra={
                "chunk_id": chunk.id,
                "attempt": retry_state.attempt_number,
                "wait_seconds": round(wait_time, 2),
                "error": str(exc) if exc else None,
                "error_type": type(exc).__name__ if exc else None,
            },
        )

    return _log
