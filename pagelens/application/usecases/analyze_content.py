"""
Name: Analyze Content Use Case

Responsibilities:
  - Validate a single-shot request and run it through the orchestrator
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ...crosscutting.exceptions import ErrorCode, ProviderError
from ...domain.entities import AnalysisRequest, AnalysisResult
from ..orchestrator import AnalysisOrchestrator


class AnalyzeContentUseCase:
    def __init__(self, orchestrator: AnalysisOrchestrator):
        self.orchestrator = orchestrator

    async def execute(
        self,
        request: AnalysisRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        if not (request.instruction or "").strip():
            raise ProviderError(ErrorCode.INVALID_INPUT, "Instruction must not be empty")
        return await self.orchestrator.analyze_content(
            request.instruction, request.content, cancel_event
        )
