"""
Name: Proofread Document Use Case

Responsibilities:
  - Guard against oversized content
  - Segment the document and dispatch every chunk through the orchestrator
    with the proofreading instruction
  - Merge chunk findings and compute totals

Collaborators:
  - application.orchestrator.AnalysisOrchestrator: provider access + fail-over
  - infrastructure.text.TextSegmenter: chunking
  - application.batch_dispatcher.ChunkBatchDispatcher: batches, retries
  - application.result_merger: dedupe + severity order

Constraints:
  - Per-chunk failures never fail the document; they are listed in
    ProofreadReport.failed_chunk_ids
  - Cancellation returns a partial report (cancelled=True), not an error
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ...crosscutting.exceptions import ErrorCode, ProviderError
from ...crosscutting.logger import logger
from ...crosscutting.timing import Timer
from ...domain.entities import AnalysisStats, ProofreadReport
from ...domain.services import TextSegmenterService
from ...infrastructure.prompts import PromptLoader
from ..batch_dispatcher import ChunkBatchDispatcher, ProgressFn
from ..orchestrator import AnalysisOrchestrator
from ..result_merger import compute_stats, merge

DEFAULT_MAX_CONTENT_BYTES = int(3.5 * 1024 * 1024)


class ProofreadDocumentUseCase:
    """R: Structured proofreading of a whole page."""

    def __init__(
        self,
        orchestrator: AnalysisOrchestrator,
        segmenter: TextSegmenterService,
        dispatcher: ChunkBatchDispatcher,
        prompt_loader: PromptLoader,
        max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES,
    ):
        self.orchestrator = orchestrator
        self.segmenter = segmenter
        self.dispatcher = dispatcher
        self.prompt_loader = prompt_loader
        self.max_content_bytes = max_content_bytes

    async def execute(
        self,
        content: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressFn] = None,
    ) -> ProofreadReport:
        """
        R: Proofread `content` and return merged findings.

        Raises:
            ProviderError(CONTENT_TOO_LARGE): content exceeds max_content_bytes
        """
        size = len(content.encode("utf-8"))
        if size > self.max_content_bytes:
            raise ProviderError(
                ErrorCode.CONTENT_TOO_LARGE,
                "Content is too large to analyze",
                f"{size} bytes > {self.max_content_bytes} bytes",
            )
        if not content.strip():
            return ProofreadReport(records=(), stats=AnalysisStats(), chunk_count=0)

        timer = Timer().start()
        chunks = self.segmenter.split(content)
        instruction = self.prompt_loader.proofread_instruction()

        async def analyze(text: str) -> str:
            result = await self.orchestrator.analyze_content(
                instruction, text, cancel_event
            )
            return result.result_text

        results = await self.dispatcher.process(
            chunks, analyze, on_progress=on_progress, cancel_event=cancel_event
        )

        records = merge(results)
        failed = tuple(result.chunk_id for result in results if result.degraded)
        cancelled = cancel_event is not None and cancel_event.is_set()

        logger.info(
            "Proofreading completed",
            extra={
                "chunks": len(chunks),
                "processed": len(results),
                "failed_chunks": len(failed),
                "records": len(records),
                "cancelled": cancelled,
                "latency_ms": timer.stop().elapsed_ms,
            },
        )
        return ProofreadReport(
            records=tuple(records),
            stats=compute_stats(records),
            chunk_count=len(chunks),
            failed_chunk_ids=failed,
            cancelled=cancelled,
        )
