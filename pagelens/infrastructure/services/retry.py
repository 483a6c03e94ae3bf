"""
Name: Retry Helper and Error Classification

Responsibilities:
  - Classify transient vs permanent errors (HTTP codes, exceptions)
  - Map SDK/transport exceptions to tagged ProviderError codes
  - Decide which provider failures are eligible for fail-over
  - Provide tenacity-based retry decorator for remote model calls

Collaborators:
  - tenacity: Retry library with configurable strategies
  - crosscutting.config.Settings: Retry configuration (max_attempts, delays)
  - crosscutting.logger: Structured logging with request correlation

Constraints:
  - Only retry transient errors (429, 5xx, timeouts, connection errors)
  - Never retry permanent errors (400, 401, 403, 404)
  - Jitter prevents synchronized retries across instances

Notes:
  - Exponential backoff: delay = min(base * 2^attempt, max_delay)
  - Fail-over set: RATE_LIMITED, SERVER_ERROR, REQUEST_FAILED, TIMEOUT
"""

import asyncio
from typing import Callable

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ...crosscutting.config import get_settings
from ...crosscutting.exceptions import ErrorCode, ProviderError
from ...crosscutting.logger import logger

# R: HTTP status codes that indicate transient errors (retry-able)
TRANSIENT_HTTP_CODES: frozenset[int] = frozenset(
    {
        429,  # Too Many Requests (rate limit)
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }
)

# R: HTTP status codes that indicate permanent errors (no retry)
PERMANENT_HTTP_CODES: frozenset[int] = frozenset(
    {
        400,  # Bad Request
        401,  # Unauthorized
        403,  # Forbidden
        404,  # Not Found
    }
)

# R: Codes that let the orchestrator switch to the fallback provider
FALLBACK_ELIGIBLE_CODES: frozenset[str] = frozenset(
    {
        ErrorCode.RATE_LIMITED.value,
        ErrorCode.SERVER_ERROR.value,
        ErrorCode.REQUEST_FAILED.value,
        ErrorCode.TIMEOUT.value,
    }
)

_TRANSIENT_NAME_PATTERNS = (
    "timeout",
    "connection",
    "connecterror",
    "temporary",
    "unavailable",
    "resourceexhausted",
    "deadline",
    "aborted",
)

_TRANSIENT_MESSAGE_PATTERNS = (
    "rate limit",
    "too many requests",
    "quota exceeded",
    "temporarily unavailable",
    "connection reset",
    "connection refused",
    "timed out",
    "deadline exceeded",
    "fetch",
    "network",
    "timeout",
)


def get_http_status_code(exception: BaseException) -> int | None:
    """
    R: Extract HTTP status code from various exception types.

    Supports google.genai APIError (`code`) and httpx responses.
    """
    if isinstance(exception, ProviderError):
        return None

    # google.genai.errors.APIError
    if hasattr(exception, "code"):
        code = exception.code
        if isinstance(code, int) and code >= 100:
            return code

    # httpx.HTTPStatusError
    if hasattr(exception, "response") and hasattr(exception.response, "status_code"):
        return exception.response.status_code

    if hasattr(exception, "status_code"):
        status = exception.status_code
        if isinstance(status, int):
            return status

    return None


def is_transient_error(exception: BaseException) -> bool:
    """
    R: Determine if an exception is transient (should retry).

    ProviderErrors are classified by code; other exceptions by HTTP
    status, then by exception name, then by message patterns.
    """
    if isinstance(exception, ProviderError):
        return exception.code in FALLBACK_ELIGIBLE_CODES

    status_code = get_http_status_code(exception)
    if status_code is not None:
        if status_code in PERMANENT_HTTP_CODES:
            return False
        if status_code in TRANSIENT_HTTP_CODES:
            return True

    exception_name = type(exception).__name__.lower()
    if any(pattern in exception_name for pattern in _TRANSIENT_NAME_PATTERNS):
        return True

    message = str(exception).lower()
    if any(pattern in message for pattern in _TRANSIENT_MESSAGE_PATTERNS):
        return True

    # R: Default: treat unknown errors as non-transient (fail fast)
    return False


def _code_for_status(status_code: int) -> ErrorCode | None:
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if status_code >= 500:
        return ErrorCode.SERVER_ERROR
    if status_code == 400:
        return ErrorCode.INVALID_INPUT
    if status_code in (401, 403):
        return ErrorCode.AUTH_FAILED
    if status_code == 404:
        return ErrorCode.MODEL_NOT_FOUND
    return None


def classify_exception(
    exception: BaseException,
    default_code: ErrorCode = ErrorCode.GENERATION_FAILED,
) -> ProviderError:
    """
    R: Convert any exception raised by a backend into a ProviderError.

    ProviderErrors pass through unchanged.
    """
    if isinstance(exception, ProviderError):
        return exception

    message = str(exception) or type(exception).__name__

    status_code = get_http_status_code(exception)
    if status_code is not None:
        code = _code_for_status(status_code)
        if code is not None:
            return ProviderError(
                code, message, details=f"HTTP {status_code}", original_error=exception
            )

    if isinstance(exception, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ProviderError(ErrorCode.TIMEOUT, message, original_error=exception)

    if isinstance(exception, (httpx.TransportError, ConnectionError)):
        return ProviderError(
            ErrorCode.REQUEST_FAILED, message, original_error=exception
        )

    lowered = message.lower()
    if "timed out" in lowered or "timeout" in lowered:
        return ProviderError(ErrorCode.TIMEOUT, message, original_error=exception)
    if is_transient_error(exception):
        return ProviderError(
            ErrorCode.REQUEST_FAILED, message, original_error=exception
        )

    return ProviderError(default_code, message, original_error=exception)


def is_fallback_eligible(error: BaseException) -> bool:
    """R: True when a primary failure should be retried on the fallback."""
    if isinstance(error, ProviderError):
        return error.code in FALLBACK_ELIGIBLE_CODES
    return classify_exception(error).code in FALLBACK_ELIGIBLE_CODES


def _log_retry(retry_state: RetryCallState) -> None:
    """
    R: Log retry attempts with context for observability.
    """
    fn_name = getattr(retry_state.fn, "__name__", "unknown")
    attempt = retry_state.attempt_number
    wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None

    logger.warning(
        f"Retry attempt {attempt} for {fn_name}",
        extra={
            "function": fn_name,
            "attempt": attempt,
            "wait_seconds": round(wait_time, 2),
            "error": str(exc) if exc else None,
            "error_type": type(exc).__name__ if exc else None,
        },
    )


def create_retry_decorator(
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> Callable:
    """
    R: Create a retry decorator with exponential backoff + jitter.

    Uses settings from config unless overridden. Works on both sync
    and async callables (tenacity detects coroutines).

    Args:
        max_attempts: Max attempts (default from settings)
        base_delay: Initial delay in seconds (default from settings)
        max_delay: Maximum delay cap in seconds (default from settings)
    """
    settings = get_settings()

    _max_attempts = max_attempts or settings.retry_max_attempts
    _base_delay = settings.retry_base_delay_seconds if base_delay is None else base_delay
    _max_delay = settings.retry_max_delay_seconds if max_delay is None else max_delay

    return retry(
        stop=stop_after_attempt(_max_attempts),
        wait=wait_exponential_jitter(
            initial=_base_delay,
            max=_max_delay,
            jitter=_base_delay,
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry,
        reraise=True,
    )
