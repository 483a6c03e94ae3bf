"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Provide reusable test fixtures
  - Provide scripted providers for orchestrator/use case tests
  - Configure test environment (no .env, fresh settings per test)

Collaborators:
  - pytest / pytest-asyncio: Test framework
  - unittest.mock: Mocking library
  - pagelens.domain: Domain entities and protocols

Notes:
  - Fixtures are auto-discovered by pytest
  - ScriptedProvider outcomes are consumed in call order
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence, Union

import pytest

from pagelens.crosscutting import config as engine_config

engine_config.Settings.model_config["env_file"] = None

from pagelens.crosscutting.exceptions import ErrorCode, ProviderError  # noqa: E402
from pagelens.domain.entities import (  # noqa: E402
    ChatMessage,
    ProviderConfig,
    ProviderKind,
    TextDelta,
    TokenUsage,
)
from pagelens.domain.services import StreamSink  # noqa: E402
from pagelens.infrastructure.prompts import PromptLoader, get_prompt_loader  # noqa: E402
from pagelens.infrastructure.services.llm.base import BaseProvider  # noqa: E402

Outcome = Union[str, Exception]


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )


@pytest.fixture(autouse=True)
def _fresh_caches():
    """R: Settings and prompt loader singletons never leak between tests."""
    engine_config.get_settings.cache_clear()
    get_prompt_loader.cache_clear()
    yield
    engine_config.get_settings.cache_clear()
    get_prompt_loader.cache_clear()


# ============================================================================
# Scripted provider
# ============================================================================


class ScriptedProvider(BaseProvider):
    """
    R: Provider whose answers are scripted per call.

    Each outcome is either the response text or the exception to raise.
    When the script runs out the last outcome repeats.
    """

    def __init__(
        self,
        name: str,
        outcomes: Sequence[Outcome] = ("ok",),
        *,
        init_error: Optional[Exception] = None,
        available: bool = True,
        partial_text_before_failure: str = "",
    ):
        super().__init__()
        self._name = name
        self._outcomes = list(outcomes)
        self._init_error = init_error
        self._available = available
        self._partial = partial_text_before_failure
        self.calls: list[tuple[str, str]] = []
        self.destroyed = False
        self.init_calls = 0

    @property
    def name(self) -> str:
        return self._name

    def _next(self) -> Outcome:
        if len(self._outcomes) > 1:
            return self._outcomes.pop(0)
        return self._outcomes[0]

    async def initialize(self) -> None:
        self.init_calls += 1
        if self._init_error is not None:
            raise self._init_error
        self._initialized = True

    async def check_availability(self) -> bool:
        return self._available

    async def analyze_content(
        self,
        instruction: str,
        content: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        self.calls.append((instruction, content))
        outcome = self._next()
        if isinstance(outcome, Exception):
            raise outcome
        self._usage = TokenUsage(used=len(outcome), quota=100, remaining=100 - len(outcome))
        return outcome

    async def analyze_content_stream(
        self,
        instruction: str,
        content: str,
        history: Sequence[ChatMessage],
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.calls.append((instruction, content))
        outcome = self._next()
        if isinstance(outcome, Exception):
            if self._partial:
                sink.push(TextDelta(text=self._partial))
            error = (
                outcome
                if isinstance(outcome, ProviderError)
                else ProviderError(ErrorCode.GENERATION_FAILED, str(outcome))
            )
            self._fail_stream(sink, error)
        for start in range(0, len(outcome), 4):
            sink.push(TextDelta(text=outcome[start : start + 4]))
        self._finish_stream(sink, outcome)

    async def destroy(self) -> None:
        self.destroyed = True
        await super().destroy()


class ScriptedFactory:
    """R: ProviderFactory handing out pre-built providers in order."""

    def __init__(self, local: Sequence[ScriptedProvider], remote: Sequence[ScriptedProvider] = ()):
        self._local = list(local)
        self._remote = list(remote)
        self.local_created: list[ScriptedProvider] = []
        self.remote_created: list[ScriptedProvider] = []

    def create_local(self) -> ScriptedProvider:
        provider = self._local.pop(0)
        self.local_created.append(provider)
        return provider

    def create_remote(self, config: ProviderConfig) -> ScriptedProvider:
        provider = self._remote.pop(0)
        self.remote_created.append(provider)
        return provider


def request_failed(message: str = "network down") -> ProviderError:
    return ProviderError(ErrorCode.REQUEST_FAILED, message)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def prompt_loader() -> PromptLoader:
    """R: Loader over the packaged v1 templates."""
    return PromptLoader(version="v1")


@pytest.fixture
def remote_config() -> ProviderConfig:
    return ProviderConfig(
        primary_provider_kind=ProviderKind.GEMINI,
        credential="test-key",
        model_name="gemini-2.5-flash",
        fallback_enabled=True,
    )


@pytest.fixture
def local_config() -> ProviderConfig:
    return ProviderConfig(primary_provider_kind=ProviderKind.LOCAL)


@pytest.fixture
def proofread_json() -> str:
    return (
        '{"errors": ['
        '{"kind": "typo", "severity": "error", "original": "teh", '
        '"suggestion": "the", "explanation": "misspelling"}, '
        '{"kind": "grammar", "severity": "info", "original": "a apple", '
        '"suggestion": "an apple"}'
        "]}"
    )
