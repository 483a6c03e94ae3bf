"""
Name: Typed Engine Errors

Responsibilities:
  - Provide a stable base error with error_code + error_id for log correlation
  - Define ProviderError: the single tagged error every provider operation
    raises, carrying a machine-readable `code`
  - Define the error-code taxonomy shared by providers and the orchestrator

Collaborators:
  - infrastructure.services.llm.*: raise ProviderError
  - infrastructure.services.retry: maps SDK/transport exceptions to codes
  - application.orchestrator: classifies by code for fail-over

Constraints:
  - Classification is always by `code`, never by exception subclass
  - Messages are human readable and never contain secrets

Notes:
  - ProviderError.to_dict() is the payload handed to the UI collaborator
"""

from __future__ import annotations

from enum import Enum
from uuid import uuid4


class ErrorCode(str, Enum):
    """R: Machine-readable provider error codes."""

    # Backend not usable at all / not yet usable
    UNAVAILABLE = "UNAVAILABLE"
    DOWNLOAD_REQUIRED = "DOWNLOAD_REQUIRED"
    NOT_READY = "NOT_READY"
    MODEL_DOWNLOAD_FAILED = "MODEL_DOWNLOAD_FAILED"

    # Transient (fallback-eligible)
    REQUEST_FAILED = "REQUEST_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    TIMEOUT = "TIMEOUT"

    # Permanent request problems
    INVALID_INPUT = "INVALID_INPUT"
    CONTENT_TOO_LARGE = "CONTENT_TOO_LARGE"
    TOKEN_LIMIT_EXCEEDED = "TOKEN_LIMIT_EXCEEDED"
    AUTH_FAILED = "AUTH_FAILED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"

    # Response problems
    PARSE_FAILED = "PARSE_FAILED"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    GENERATION_FAILED = "GENERATION_FAILED"

    # File upload path
    FILE_UPLOAD_ERROR = "FILE_UPLOAD_ERROR"
    FILE_PROCESSING_FAILED = "FILE_PROCESSING_FAILED"
    FILE_WAIT_TIMEOUT = "FILE_WAIT_TIMEOUT"

    CANCELLED = "CANCELLED"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"


class PageLensError(Exception):
    """
    R: Base for internal engine errors.

    Provides error_code + error_id + message.
    """

    error_code: str = "PAGELENS_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)


class LLMError(PageLensError):
    """Errors from a model backend (quota / invalid request / transport)."""

    error_code: str = "LLM_ERROR"


class ProviderError(LLMError):
    """
    R: Tagged provider failure `{code, message, details}`.

    Every provider operation either returns a value or raises this error.
    `error_code` mirrors `code` so generic handlers can report it.
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: str | None = None,
        *,
        original_error: Exception | None = None,
    ):
        self.code = code.value if isinstance(code, ErrorCode) else str(code)
        self.details = details
        self.error_code = self.code
        super().__init__(message, original_error=original_error)

    def __repr__(self) -> str:
        return f"ProviderError(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}
