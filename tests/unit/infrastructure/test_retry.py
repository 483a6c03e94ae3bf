"""
Name: Retry Helper Unit Tests

Responsibilities:
  - Test transient vs permanent error classification
  - Test mapping of exceptions to ProviderError codes
  - Test fail-over eligibility
  - Verify retry decorator behavior on async callables

Collaborators:
  - pagelens.infrastructure.services.retry: Module under test
  - unittest.mock: Mocking settings

Constraints:
  - Tests must not make real API calls
  - Must run fast (tiny delays)
"""

import asyncio
from unittest.mock import Mock, patch

import httpx
import pytest

from pagelens.crosscutting.exceptions import ErrorCode, ProviderError
from pagelens.infrastructure.services.retry import (
    PERMANENT_HTTP_CODES,
    TRANSIENT_HTTP_CODES,
    classify_exception,
    create_retry_decorator,
    get_http_status_code,
    is_fallback_eligible,
    is_transient_error,
)

pytestmark = pytest.mark.unit


class TestGetHttpStatusCode:
    def test_extracts_code_attribute(self):
        exc = Mock()
        exc.code = 429
        assert get_http_status_code(exc) == 429

    def test_extracts_from_response_attribute(self):
        exc = Mock()
        exc.code = None
        exc.response = Mock()
        exc.response.status_code = 503
        assert get_http_status_code(exc) == 503

    def test_extracts_status_code_attribute(self):
        exc = Mock(spec=["status_code"])
        exc.status_code = 500
        assert get_http_status_code(exc) == 500

    def test_returns_none_for_unknown_exception(self):
        assert get_http_status_code(ValueError("some error")) is None

    def test_provider_error_code_is_not_a_status(self):
        assert get_http_status_code(ProviderError(ErrorCode.TIMEOUT, "x")) is None


class TestIsTransientError:
    @pytest.mark.parametrize("code", sorted(TRANSIENT_HTTP_CODES))
    def test_transient_http_codes(self, code):
        exc = Mock()
        exc.code = code
        assert is_transient_error(exc) is True

    @pytest.mark.parametrize("code", sorted(PERMANENT_HTTP_CODES))
    def test_permanent_http_codes(self, code):
        exc = Mock()
        exc.code = code
        assert is_transient_error(exc) is False

    def test_timeout_exception_name(self):
        class TimeoutException(Exception):
            pass

        assert is_transient_error(TimeoutException("slow")) is True

    def test_rate_limit_message(self):
        assert is_transient_error(Exception("Rate limit exceeded, please retry")) is True

    def test_unknown_error_not_transient(self):
        assert is_transient_error(ValueError("Invalid argument provided")) is False

    def test_provider_errors_use_their_code(self):
        assert is_transient_error(ProviderError(ErrorCode.RATE_LIMITED, "x")) is True
        assert is_transient_error(ProviderError(ErrorCode.AUTH_FAILED, "x")) is False


class TestClassifyException:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (429, ErrorCode.RATE_LIMITED),
            (500, ErrorCode.SERVER_ERROR),
            (503, ErrorCode.SERVER_ERROR),
            (400, ErrorCode.INVALID_INPUT),
            (401, ErrorCode.AUTH_FAILED),
            (403, ErrorCode.AUTH_FAILED),
            (404, ErrorCode.MODEL_NOT_FOUND),
        ],
    )
    def test_http_status_mapping(self, status, expected):
        exc = type("APIError", (Exception,), {"code": status})("boom")
        error = classify_exception(exc)
        assert error.code == expected.value
        assert error.original_error is exc

    def test_provider_error_passes_through(self):
        original = ProviderError(ErrorCode.EMPTY_RESPONSE, "empty")
        assert classify_exception(original) is original

    def test_asyncio_timeout(self):
        assert classify_exception(asyncio.TimeoutError()).code == "TIMEOUT"

    def test_httpx_timeout(self):
        assert classify_exception(httpx.ReadTimeout("slow")).code == "TIMEOUT"

    def test_httpx_connect_error(self):
        assert classify_exception(httpx.ConnectError("refused")).code == "REQUEST_FAILED"

    def test_network_message_is_request_failed(self):
        assert classify_exception(Exception("Failed to fetch")).code == "REQUEST_FAILED"

    def test_unknown_uses_default_code(self):
        error = classify_exception(ValueError("bad"), ErrorCode.UNAVAILABLE)
        assert error.code == "UNAVAILABLE"


class TestFallbackEligibility:
    @pytest.mark.parametrize(
        "code", ["RATE_LIMITED", "SERVER_ERROR", "REQUEST_FAILED", "TIMEOUT"]
    )
    def test_eligible_codes(self, code):
        assert is_fallback_eligible(ProviderError(code, "x")) is True

    @pytest.mark.parametrize(
        "code", ["INVALID_INPUT", "AUTH_FAILED", "CANCELLED", "TOKEN_LIMIT_EXCEEDED"]
    )
    def test_ineligible_codes(self, code):
        assert is_fallback_eligible(ProviderError(code, "x")) is False

    def test_raw_exceptions_are_classified(self):
        assert is_fallback_eligible(httpx.ConnectError("down")) is True
        assert is_fallback_eligible(ValueError("bad")) is False


def _fast_settings() -> Mock:
    settings = Mock()
    settings.retry_max_attempts = 3
    settings.retry_base_delay_seconds = 0.0
    settings.retry_max_delay_seconds = 0.0
    return settings


class TestCreateRetryDecorator:
    @pytest.mark.asyncio
    @patch("pagelens.infrastructure.services.retry.get_settings")
    async def test_retries_transient_async_errors(self, mock_get_settings):
        mock_get_settings.return_value = _fast_settings()
        calls = 0

        @create_retry_decorator()
        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise type("ServiceUnavailable", (Exception,), {"code": 503})()
            return "success"

        assert await flaky() == "success"
        assert calls == 3

    @pytest.mark.asyncio
    @patch("pagelens.infrastructure.services.retry.get_settings")
    async def test_no_retry_on_permanent_error(self, mock_get_settings):
        mock_get_settings.return_value = _fast_settings()
        calls = 0

        class PermanentError(Exception):
            code = 400

        @create_retry_decorator()
        async def failing():
            nonlocal calls
            calls += 1
            raise PermanentError()

        with pytest.raises(PermanentError):
            await failing()
        assert calls == 1
