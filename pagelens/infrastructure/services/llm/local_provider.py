"""
Name: Local Model Provider (bounded context)

Responsibilities:
  - Map backend availability onto initialization errors
  - Hold one prompt session with the proofreader system prompt
  - Truncate content to the session's character budget
  - Emulate streaming by re-emitting the completed answer one character
    at a time with a small randomized delay

Collaborators:
  - LanguageModelBackend / LanguageModelSession (OllamaBackend by default)
  - infrastructure.prompts.PromptLoader: system prompt and request template
  - infrastructure.services.retry.classify_exception: error codes

Constraints:
  - Single-turn: conversation history is not replayed to the local model
  - Every failure surfaces as ProviderError
"""

from __future__ import annotations

import asyncio
import random
from typing import Optional, Protocol, Sequence

from ....crosscutting.exceptions import ErrorCode, ProviderError
from ....crosscutting.logger import logger
from ....crosscutting.timing import Timer
from ....domain.entities import ChatMessage, TextDelta, TokenUsage
from ....domain.services import StreamSink
from ...prompts import PromptLoader, get_prompt_loader
from ..retry import classify_exception
from .base import BaseProvider, race_with_cancel
from .ollama_backend import Availability


class LanguageModelSession(Protocol):
    max_tokens: int
    tokens_so_far: int

    @property
    def tokens_left(self) -> int: ...

    async def prompt(self, text: str) -> str: ...

    async def destroy(self) -> None: ...


class LanguageModelBackend(Protocol):
    async def availability(self) -> Availability: ...

    async def create_session(
        self, system_prompt: str, temperature: float = 0.2, top_k: int = 3
    ) -> LanguageModelSession: ...

    async def pull_model(self) -> None: ...

    async def aclose(self) -> None: ...


class LocalModelProvider(BaseProvider):
    """R: AnalysisProvider over a small on-device model."""

    NAME = "Local Model (Ollama)"
    DESCRIPTION = "Using a local model served by Ollama (on-device processing)"

    def __init__(
        self,
        backend: LanguageModelBackend,
        *,
        prompt_loader: Optional[PromptLoader] = None,
        max_content_chars: int = 24_576,
        stream_delay_range: tuple[float, float] = (0.001, 0.010),
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__()
        self._backend = backend
        self._prompt_loader = prompt_loader or get_prompt_loader()
        self._max_content_chars = max_content_chars
        self._stream_delay_range = stream_delay_range
        self._rng = rng or random.Random()
        self._session: Optional[LanguageModelSession] = None

    @property
    def name(self) -> str:
        return self.NAME

    @property
    def description(self) -> str:
        return self.DESCRIPTION

    async def initialize(self) -> None:
        if self._initialized:
            return

        try:
            availability = await self._backend.availability()
        except Exception as exc:
            raise classify_exception(exc, ErrorCode.UNAVAILABLE) from exc

        if availability == Availability.NO:
            raise ProviderError(
                ErrorCode.UNAVAILABLE, "The local model is not available on this device"
            )
        if availability == Availability.AFTER_DOWNLOAD:
            raise ProviderError(
                ErrorCode.DOWNLOAD_REQUIRED,
                "The local model must be downloaded before use",
            )

        try:
            self._session = await self._backend.create_session(
                self._prompt_loader.system_prompt(), temperature=0.2, top_k=3
            )
        except Exception as exc:
            raise classify_exception(exc, ErrorCode.UNAVAILABLE) from exc

        self._initialized = True
        logger.info("Local provider initialized", extra={"provider": self.name})

    async def check_availability(self) -> bool:
        return await self.detailed_availability() == Availability.READILY

    async def detailed_availability(self) -> Availability:
        try:
            return await self._backend.availability()
        except Exception as exc:
            logger.warning(
                "Local availability check failed", extra={"error": str(exc)}
            )
            return Availability.NO

    def _build_prompt(self, instruction: str, content: str) -> str:
        if len(content) > self._max_content_chars:
            logger.warning(
                "Content truncated to local model budget",
                extra={
                    "content_chars": len(content),
                    "max_content_chars": self._max_content_chars,
                },
            )
            content = content[: self._max_content_chars]
        return self._prompt_loader.format_request(instruction, content)

    async def analyze_content(
        self,
        instruction: str,
        content: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        self._ensure_initialized()
        self._check_cancelled(cancel_event)
        prompt = self._build_prompt(instruction, content)

        timer = Timer().start()
        try:
            result = await race_with_cancel(
                self._session.prompt(prompt), cancel_event, self.name
            )
        except ProviderError:
            raise
        except Exception as exc:
            logger.error(
                "Local analysis failed",
                exc_info=True,
                extra={"provider": self.name, "error_type": type(exc).__name__},
            )
            raise classify_exception(exc, ErrorCode.GENERATION_FAILED) from exc

        logger.info(
            "Local analysis completed",
            extra={
                "provider": self.name,
                "prompt_chars": len(prompt),
                "response_chars": len(result),
                "latency_ms": timer.stop().elapsed_ms,
            },
        )
        return result

    async def analyze_content_stream(
        self,
        instruction: str,
        content: str,
        history: Sequence[ChatMessage],
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        if history:
            logger.debug(
                "Local provider ignores conversation history",
                extra={"turns": len(history)},
            )
        try:
            result = await self.analyze_content(instruction, content, cancel_event)
            low, high = self._stream_delay_range
            for index, char in enumerate(result):
                sink.push(TextDelta(text=char))
                if index < len(result) - 1:
                    await asyncio.sleep(self._rng.uniform(low, high))
                self._check_cancelled(cancel_event)
        except ProviderError as error:
            self._fail_stream(sink, error)

        self._finish_stream(sink, result)

    def get_token_info(self) -> Optional[TokenUsage]:
        if self._session is None:
            return None
        return TokenUsage(
            used=self._session.tokens_so_far,
            quota=self._session.max_tokens,
            remaining=self._session.tokens_left,
        )

    async def initiate_model_download(self) -> None:
        try:
            await self._backend.pull_model()
        except Exception as exc:
            logger.error("Model download failed", extra={"error": str(exc)})
            raise ProviderError(
                ErrorCode.MODEL_DOWNLOAD_FAILED,
                f"Failed to download the local model: {exc}",
                original_error=exc,
            ) from exc

    async def destroy(self) -> None:
        if self._session is not None:
            await self._session.destroy()
            self._session = None
        await self._backend.aclose()
        await super().destroy()
