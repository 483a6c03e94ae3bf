"""
Unit tests for the composition root.
"""

import pytest

from pagelens import container
from pagelens.application.usecases import ProofreadDocumentUseCase
from pagelens.crosscutting.config import Settings
from pagelens.domain.entities import ProviderConfig, ProviderKind
from pagelens.infrastructure.services.llm import (
    FakeProvider,
    GeminiProvider,
    LocalModelProvider,
)

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _clear_container_caches():
    container.get_orchestrator.cache_clear()
    container.get_text_segmenter.cache_clear()
    yield
    container.get_orchestrator.cache_clear()
    container.get_text_segmenter.cache_clear()


def test_fake_llm_swaps_providers():
    factory = container.DefaultProviderFactory(Settings(fake_llm=True))

    assert isinstance(factory.create_local(), FakeProvider)
    assert isinstance(factory.create_remote(ProviderConfig()), FakeProvider)


def test_real_factory_builds_local_and_remote():
    factory = container.DefaultProviderFactory(Settings(local_context_tokens=100))

    local = factory.create_local()
    remote = factory.create_remote(
        ProviderConfig(
            primary_provider_kind=ProviderKind.GEMINI,
            credential="test-key",
            model_name="gemini-2.5-pro",
        )
    )

    assert isinstance(local, LocalModelProvider)
    assert isinstance(remote, GeminiProvider)
    assert remote.model == "gemini-2.5-pro"


def test_use_cases_share_the_orchestrator(monkeypatch):
    monkeypatch.setenv("PAGELENS_MAX_CHUNK_CHARS", "1000")
    monkeypatch.setenv("PAGELENS_OVERLAP_CHARS", "50")

    use_case = container.get_proofread_document_use_case()

    assert isinstance(use_case, ProofreadDocumentUseCase)
    assert use_case.orchestrator is container.get_analyze_content_use_case().orchestrator
    assert use_case.segmenter.max_chunk_chars == 1000


@pytest.mark.asyncio
async def test_fake_end_to_end(monkeypatch):
    monkeypatch.setenv("PAGELENS_FAKE_LLM", "true")
    monkeypatch.setenv("PAGELENS_BATCH_SIZE", "2")
    monkeypatch.setenv("PAGELENS_INTER_BATCH_DELAY_SECONDS", "0")

    report = await container.get_proofread_document_use_case().execute(
        "Helo there. This page is fine."
    )

    assert report.chunk_count == 1
    assert report.stats.total == 1
    assert report.records[0].original == "Helo"
