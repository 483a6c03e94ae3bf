"""
Name: Stream Analysis Use Case

Responsibilities:
  - Run a streaming request through the orchestrator
  - Add speculative and final record events to the stream

Collaborators:
  - application.partial_extractor.ExtractingStreamSink
  - application.orchestrator.AnalysisOrchestrator

Constraints:
  - The caller's sink receives exactly one terminal event, also when the
    request is rejected before reaching a provider
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ...crosscutting.exceptions import ErrorCode, ProviderError
from ...domain.entities import AnalysisRequest, StreamFailed
from ...domain.services import StreamSink
from ..orchestrator import AnalysisOrchestrator
from ..partial_extractor import ExtractingStreamSink, StreamRecordExtractor


class StreamAnalysisUseCase:
    def __init__(self, orchestrator: AnalysisOrchestrator, sentinel: str = '"errors"'):
        self.orchestrator = orchestrator
        self.sentinel = sentinel

    async def execute(
        self,
        request: AnalysisRequest,
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        if not (request.instruction or "").strip() and not request.history:
            error = ProviderError(ErrorCode.INVALID_INPUT, "Instruction must not be empty")
            sink.push(StreamFailed(error=error))
            raise error

        extracting = ExtractingStreamSink(
            sink, StreamRecordExtractor(sentinel=self.sentinel)
        )
        await self.orchestrator.analyze_content_stream(
            request.instruction,
            request.content,
            request.history,
            extracting,
            cancel_event,
        )
