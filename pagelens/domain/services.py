"""
Name: Domain Service Interfaces

Responsibilities:
  - Define the provider capability set shared by every model backend
  - Define the stream sink contract used by real and emulated streaming
  - Define the text segmentation contract

Collaborators:
  - Implementations in infrastructure.services.llm and infrastructure.text
  - application.orchestrator: depends only on these contracts

Constraints:
  - Pure interfaces (Protocol), no implementation
  - Provider-agnostic (local or remote models)
  - Every fallible provider operation raises ProviderError with a code

Notes:
  - Using typing.Protocol for structural subtyping
  - Enables testing with fake providers
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol, Sequence

from .entities import ChatMessage, Chunk, StreamEvent, TokenUsage


class StreamSink(Protocol):
    """
    R: Receiver of stream events.

    Providers push TextDelta events as text is produced and exactly one
    terminal event (StreamDone or StreamFailed).
    """

    def push(self, event: StreamEvent) -> None: ...


class AnalysisProvider(Protocol):
    """
    R: Interface for a model backend.

    Lifecycle: construct -> initialize() -> analyze... -> destroy().
    Handles hold no Record/Chunk state.
    """

    @property
    def name(self) -> str:
        """R: Human-readable provider name (shown to the user)."""
        ...

    @property
    def description(self) -> str: ...

    async def initialize(self) -> None:
        """
        R: Prepare the backend for use.

        Raises:
            ProviderError: UNAVAILABLE, DOWNLOAD_REQUIRED, AUTH_FAILED, ...
        """
        ...

    async def check_availability(self) -> bool:
        """R: True if the backend can serve requests right now."""
        ...

    async def analyze_content(
        self,
        instruction: str,
        content: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        R: Run `instruction` over `content` and return the full response text.

        Raises:
            ProviderError: on any failure (never a bare exception)
        """
        ...

    async def analyze_content_stream(
        self,
        instruction: str,
        content: str,
        history: Sequence[ChatMessage],
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        R: Stream the response into `sink`.

        Pushes TextDelta events then StreamDone; on failure pushes
        StreamFailed and raises the same ProviderError.
        """
        ...

    def get_token_info(self) -> Optional[TokenUsage]:
        """R: Last known token usage (advisory)."""
        ...

    async def destroy(self) -> None:
        """R: Release backend resources. Safe to call more than once."""
        ...


class TextSegmenterService(Protocol):
    """
    R: Interface for text segmentation.

    Implementations must be deterministic for the same input.
    """

    def split(self, text: str) -> List[Chunk]: ...
