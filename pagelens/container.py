"""
Name: Composition Root

Responsibilities:
  - Build providers, orchestrator and use cases from Settings
  - Keep long-lived singletons cached (lru_cache)

Collaborators:
  - crosscutting.config.get_settings
  - infrastructure.services.llm.*: provider implementations
  - application.*: orchestrator and use cases

Notes:
  - No business logic lives here
  - PAGELENS_FAKE_LLM=1 swaps every provider for FakeProvider
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from .application import AnalysisOrchestrator, ChunkBatchDispatcher
from .application.usecases import (
    AnalyzeContentUseCase,
    ProofreadDocumentUseCase,
    StreamAnalysisUseCase,
)
from .crosscutting.config import Settings, get_settings
from .domain.entities import ProviderConfig
from .domain.services import AnalysisProvider
from .infrastructure.prompts import get_prompt_loader
from .infrastructure.services.llm import (
    FakeProvider,
    GeminiProvider,
    LocalModelProvider,
    OllamaBackend,
)
from .infrastructure.text import TextSegmenter


class DefaultProviderFactory:
    """R: Builds provider handles from Settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def create_local(self) -> AnalysisProvider:
        s = self.settings
        if s.fake_llm:
            return FakeProvider(name="Fake Local Provider")
        backend = OllamaBackend(
            base_url=s.ollama_base_url,
            model=s.ollama_model,
            timeout_seconds=s.ollama_timeout_seconds,
            context_tokens=s.local_context_tokens,
        )
        return LocalModelProvider(
            backend,
            prompt_loader=get_prompt_loader(),
            max_content_chars=s.local_context_chars,
        )

    def create_remote(self, config: ProviderConfig) -> AnalysisProvider:
        s = self.settings
        if s.fake_llm:
            return FakeProvider(name="Fake Remote Provider")
        return GeminiProvider(
            config.credential,
            model=config.model_name,
            prompt_loader=get_prompt_loader(),
            file_upload_threshold_bytes=s.file_upload_threshold_bytes,
            file_wait_timeout_seconds=s.file_wait_timeout_seconds,
            file_poll_interval_seconds=s.file_poll_interval_seconds,
        )


@lru_cache
def get_orchestrator() -> AnalysisOrchestrator:
    settings = get_settings()
    return AnalysisOrchestrator(
        config_loader=settings.to_provider_config,
        provider_factory=DefaultProviderFactory(settings),
    )


@lru_cache
def get_text_segmenter() -> TextSegmenter:
    settings = get_settings()
    return TextSegmenter(
        max_chunk_chars=settings.max_chunk_chars,
        overlap_chars=settings.overlap_chars,
    )


def get_proofread_document_use_case() -> ProofreadDocumentUseCase:
    settings = get_settings()
    return ProofreadDocumentUseCase(
        orchestrator=get_orchestrator(),
        segmenter=get_text_segmenter(),
        dispatcher=ChunkBatchDispatcher.from_settings(settings),
        prompt_loader=get_prompt_loader(),
        max_content_bytes=settings.max_content_bytes,
    )


def get_analyze_content_use_case() -> AnalyzeContentUseCase:
    return AnalyzeContentUseCase(orchestrator=get_orchestrator())


def get_stream_analysis_use_case() -> StreamAnalysisUseCase:
    return StreamAnalysisUseCase(orchestrator=get_orchestrator())
