"""
Name: Engine Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Derive the ProviderConfig consumed by the orchestrator

Collaborators:
  - container.py: reads settings to wire providers, segmenter and dispatcher
  - infrastructure.prompts: reads prompt_version
  - crosscutting.logger: reads log_level / log_json

Constraints:
  - No business logic, pure configuration
  - Env vars are prefixed with PAGELENS_ (e.g. PAGELENS_GEMINI_API_KEY)

Notes:
  - Singleton via lru_cache
  - Chunking and dispatch defaults mirror the on-device model limits
    (about 5000 tokens per chunk with a safety margin)
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.entities import ProviderConfig, ProviderKind

SUPPORTED_GEMINI_MODELS: frozenset[str] = frozenset(
    {"gemini-2.5-flash", "gemini-2.5-pro"}
)


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Attributes:
        provider: Primary provider kind (local | gemini)
        gemini_api_key: Google AI Studio API key (empty = remote disabled)
        gemini_model: Remote model name
        fallback_enabled: Fail over to the local model on transient errors
        max_chunk_chars: Characters per chunk (default: 20000)
        overlap_chars: Overlap between chunks (default: 500)
        batch_size: Chunks analyzed concurrently (default: 3)
        inter_batch_delay_seconds: Pause between batches (default: 0.5)
        chunk_timeout_seconds: Per-attempt timeout (default: 30)
        chunk_retry_attempts: Retries after the first attempt (default: 2)
        chunk_retry_base_delay_seconds: Linear backoff unit (default: 1.0)
        file_upload_threshold_bytes: Above this, content is uploaded as a file
        file_wait_timeout_seconds: Max wait for an uploaded file to be ACTIVE
        file_poll_interval_seconds: Poll interval while waiting for the file
        max_content_bytes: Hard ceiling for a single analysis request
        ollama_base_url: Local model server URL
        ollama_model: Local model name
        local_context_tokens: Local model context window (tokens)
        local_chars_per_token: Chars/token estimate for local truncation
        prompt_version: Prompt template version (default: v1)
        fake_llm: Use the deterministic fake provider (tests/CI)
    """

    model_config = SettingsConfigDict(
        env_prefix="PAGELENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider: str = ProviderKind.LOCAL.value
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    fallback_enabled: bool = True

    # Chunking
    max_chunk_chars: int = 20_000
    overlap_chars: int = 500

    # Batch dispatch
    batch_size: int = 3
    inter_batch_delay_seconds: float = 0.5
    chunk_timeout_seconds: float = 30.0
    chunk_retry_attempts: int = 2
    chunk_retry_base_delay_seconds: float = 1.0

    # Remote provider: file upload path
    file_upload_threshold_bytes: int = 100_000
    file_wait_timeout_seconds: float = 30.0
    file_poll_interval_seconds: float = 1.0
    max_content_bytes: int = int(3.5 * 1024 * 1024)  # ~875k tokens

    # Remote provider: transient error retry (tenacity)
    retry_max_attempts: int = 2
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0

    # Local provider
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "gemma3:1b"
    ollama_timeout_seconds: float = 120.0
    local_context_tokens: int = 6144
    local_chars_per_token: int = 4

    # Prompts
    prompt_version: str = "v1"

    # Testing/CI
    fake_llm: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator(
        "max_chunk_chars",
        "batch_size",
        "file_upload_threshold_bytes",
        "max_content_bytes",
        "local_context_tokens",
        "local_chars_per_token",
        "retry_max_attempts",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("overlap_chars", "chunk_retry_attempts")
    @classmethod
    def must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("provider")
    @classmethod
    def provider_must_be_known(cls, v: str) -> str:
        value = (v or "").strip().lower()
        allowed = {kind.value for kind in ProviderKind}
        if value not in allowed:
            raise ValueError(f"provider must be one of {sorted(allowed)}")
        return value

    @field_validator("gemini_model")
    @classmethod
    def gemini_model_must_be_supported(cls, v: str) -> str:
        if v not in SUPPORTED_GEMINI_MODELS:
            raise ValueError(
                f"gemini_model must be one of {sorted(SUPPORTED_GEMINI_MODELS)}"
            )
        return v

    @model_validator(mode="after")
    def validate_chunk_params(self):
        if self.overlap_chars >= self.max_chunk_chars:
            raise ValueError(
                f"overlap_chars ({self.overlap_chars}) must be less than "
                f"max_chunk_chars ({self.max_chunk_chars})"
            )
        return self

    @property
    def local_context_chars(self) -> int:
        """Character budget of the local model window."""
        return self.local_context_tokens * self.local_chars_per_token

    def to_provider_config(self) -> ProviderConfig:
        """Project the provider-related settings into a ProviderConfig."""
        return ProviderConfig(
            primary_provider_kind=ProviderKind(self.provider),
            credential=self.gemini_api_key.strip() or None,
            model_name=self.gemini_model,
            fallback_enabled=self.fallback_enabled,
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
