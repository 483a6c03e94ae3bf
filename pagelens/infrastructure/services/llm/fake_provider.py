"""
Name: Fake Provider (Deterministic)

Responsibilities:
  - Provide deterministic proofreading answers for testing/CI
  - Support streaming responses
  - Avoid external dependencies (no API calls)
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Optional, Sequence

from ....crosscutting.exceptions import ProviderError
from ....crosscutting.logger import logger
from ....domain.entities import ChatMessage, TextDelta, TokenUsage
from ....domain.services import StreamSink
from .base import BaseProvider

_STREAM_CHUNK_SIZE = 16
TOKEN_QUOTA = 1_000_000


def _build_answer(instruction: str, content: str) -> str:
    digest = hashlib.sha256(f"{instruction}|{content}".encode("utf-8")).hexdigest()[:8]
    words = content.split()
    errors = []
    if words:
        errors.append(
            {
                "kind": "typo",
                "severity": "warning",
                "original": words[0],
                "suggestion": words[0],
                "explanation": f"simulated finding {digest}",
            }
        )
    return json.dumps({"errors": errors}, ensure_ascii=False)


class FakeProvider(BaseProvider):
    """R: Deterministic AnalysisProvider for tests/CI."""

    MODEL_ID = "fake-llm-v1"

    def __init__(self, name: str = "Fake Provider") -> None:
        super().__init__()
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Deterministic offline provider"

    async def initialize(self) -> None:
        self._initialized = True
        logger.info("FakeProvider initialized")

    async def check_availability(self) -> bool:
        return True

    async def analyze_content(
        self,
        instruction: str,
        content: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        self._ensure_initialized()
        self._check_cancelled(cancel_event)
        answer = _build_answer(instruction, content)
        used = len(instruction.split()) + len(content.split())
        self._usage = TokenUsage(used=used, quota=TOKEN_QUOTA, remaining=TOKEN_QUOTA - used)
        return answer

    async def analyze_content_stream(
        self,
        instruction: str,
        content: str,
        history: Sequence[ChatMessage],
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        try:
            answer = await self.analyze_content(instruction, content, cancel_event)
        except ProviderError as error:
            self._fail_stream(sink, error)
        for start in range(0, len(answer), _STREAM_CHUNK_SIZE):
            sink.push(TextDelta(text=answer[start : start + _STREAM_CHUNK_SIZE]))
        self._finish_stream(sink, answer)

