"""
Unit tests for Settings (pydantic-settings).
"""

import pytest
from pydantic import ValidationError

from pagelens.crosscutting.config import Settings, get_settings
from pagelens.domain.entities import ProviderKind

pytestmark = pytest.mark.unit


def test_defaults():
    settings = Settings()

    assert settings.max_chunk_chars == 20_000
    assert settings.overlap_chars == 500
    assert settings.batch_size == 3
    assert settings.chunk_retry_attempts == 2
    assert settings.local_context_chars == 6144 * 4


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("PAGELENS_PROVIDER", "Gemini")
    monkeypatch.setenv("PAGELENS_GEMINI_API_KEY", " key-123 ")
    monkeypatch.setenv("PAGELENS_FALLBACK_ENABLED", "false")

    config = Settings().to_provider_config()

    assert config.primary_provider_kind == ProviderKind.GEMINI
    assert config.credential == "key-123"
    assert config.fallback_enabled is False


def test_blank_key_means_no_credential():
    assert Settings(gemini_api_key="   ").to_provider_config().credential is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"provider": "openai"},
        {"gemini_model": "gemini-1.0"},
        {"batch_size": 0},
        {"overlap_chars": -1},
        {"max_chunk_chars": 100, "overlap_chars": 100},
    ],
)
def test_invalid_values(kwargs):
    with pytest.raises(ValidationError):
        Settings(**kwargs)


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
