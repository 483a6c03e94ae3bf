"""
Name: Google Gemini Provider (large context)

Responsibilities:
  - Inline instruction + content for payloads below the upload threshold
  - Upload larger content as a file, wait until ACTIVE, reference it by
    URI and delete it afterwards on every exit path
  - Retry a token-limit failure of the upload path through the inline path
  - Real streaming with multi-turn history
  - Map SDK/transport errors to ProviderError codes

Collaborators:
  - google.genai.Client (aio surface): models, files
  - infrastructure.prompts.PromptLoader: request templates
  - infrastructure.services.retry: tenacity decorator + classify_exception

Constraints:
  - Streaming: errors in the middle of a stream are not retried here
    (tokens were already emitted); only stream creation is retried
  - Token usage is advisory (1,000,000 token quota)
"""

from __future__ import annotations

import asyncio
import io
import re
import time
from typing import Any, Optional, Sequence

from google import genai
from google.genai import types

from ....crosscutting.exceptions import ErrorCode, ProviderError
from ....crosscutting.logger import logger
from ....crosscutting.timing import Timer
from ....domain.entities import ChatMessage, TextDelta, TokenUsage
from ....domain.services import StreamSink
from ...prompts import PromptLoader, get_prompt_loader
from ..retry import classify_exception, create_retry_decorator, get_http_status_code
from .base import BaseProvider, race_with_cancel

TOKEN_QUOTA = 1_000_000

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_CSS_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>|\.[a-zA-Z-]+\s*\{[\s\S]*?\}", re.I)
_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.I)
_MARKDOWN_RE = re.compile(r"^#{1,6}\s+|^\*\*[^*]+\*\*|^\*[^*]+\*|^\[.+\]\(.+\)", re.M)


def detect_content_type(content: str) -> tuple[str, str, str]:
    """
    R: Guess (mime_type, extension, label) for an uploaded page.

    Markdown without HTML tags is text/markdown; anything with tags is
    text/html (labelled by embedded CSS/JS); the rest is text/plain.
    """
    has_html = bool(_HTML_TAG_RE.search(content))
    if _MARKDOWN_RE.search(content) and not has_html:
        return "text/markdown", "md", "markdown"
    if has_html:
        has_css = bool(_CSS_RE.search(content))
        has_js = bool(_SCRIPT_RE.search(content))
        if has_css and has_js:
            return "text/html", "html", "html-css-js"
        if has_css:
            return "text/html", "html", "html-css"
        return "text/html", "html", "html-only"
    return "text/plain", "txt", "text-only"


def _state_name(value: Any) -> str:
    """Normalize SDK enums and plain strings ("FileState.ACTIVE" -> "ACTIVE")."""
    if value is None:
        return ""
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name.upper()
    return str(value).rsplit(".", 1)[-1].upper()


def _history_contents(history: Sequence[ChatMessage]) -> list[types.Content]:
    contents = []
    for message in history:
        if message.role not in ("user", "assistant"):
            continue
        contents.append(
            types.Content(
                role="model" if message.role == "assistant" else "user",
                parts=[types.Part.from_text(text=message.content)],
            )
        )
    return contents


class GeminiProvider(BaseProvider):
    """R: AnalysisProvider over the Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = "gemini-2.5-flash",
        client: genai.Client | None = None,
        prompt_loader: Optional[PromptLoader] = None,
        retry_decorator=None,
        file_upload_threshold_bytes: int = 100_000,
        file_wait_timeout_seconds: float = 30.0,
        file_poll_interval_seconds: float = 1.0,
    ) -> None:
        super().__init__()
        resolved_key = (api_key or "").strip()
        if not resolved_key and client is None:
            logger.error("GeminiProvider: API key not configured")
            raise ProviderError(ErrorCode.AUTH_FAILED, "Gemini API key is not configured")

        self._client = client or genai.Client(api_key=resolved_key)
        self._model = model
        self._prompt_loader = prompt_loader or get_prompt_loader()
        self._threshold = file_upload_threshold_bytes
        self._wait_timeout = file_wait_timeout_seconds
        self._poll_interval = file_poll_interval_seconds

        # R: Retry only wraps request creation; stream iteration is not retried.
        decorator = retry_decorator or create_retry_decorator()
        self._generate_content = decorator(self._client.aio.models.generate_content)
        self._create_stream = decorator(self._client.aio.models.generate_content_stream)

    @property
    def name(self) -> str:
        return f"Google Gemini API ({self._model})"

    @property
    def description(self) -> str:
        return f"Using {self._model} via Google AI Studio API"

    @property
    def model(self) -> str:
        return self._model

    def _config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=0.7,
            top_k=40,
            top_p=0.95,
            max_output_tokens=32768,
            candidate_count=1,
        )

    def _should_upload(self, content: str) -> bool:
        return len(content.encode("utf-8")) > self._threshold

    def _update_usage(self, response: Any) -> None:
        usage = getattr(response, "usage_metadata", None)
        if usage is None:
            return
        used = getattr(usage, "total_token_count", None) or 0
        self._usage = TokenUsage(used=used, quota=TOKEN_QUOTA, remaining=TOKEN_QUOTA - used)

    async def initialize(self) -> None:
        if self._initialized:
            return
        if not await self.check_availability():
            raise ProviderError(ErrorCode.UNAVAILABLE, "Gemini API is not available")
        self._initialized = True
        logger.info("Gemini provider initialized", extra={"model": self._model})

    async def check_availability(self) -> bool:
        """R: Probe with a tiny request; only a missing model counts as unavailable."""
        try:
            await self._client.aio.models.generate_content(
                model=self._model,
                contents="test",
                config=types.GenerateContentConfig(max_output_tokens=50, temperature=0.1),
            )
            return True
        except Exception as exc:
            status = get_http_status_code(exc)
            logger.warning(
                "Gemini availability probe failed",
                extra={"status": status, "error_type": type(exc).__name__},
            )
            if status is not None:
                return status != 404
            return False

    # ------------------------------------------------------------------
    # Single-shot
    # ------------------------------------------------------------------

    async def analyze_content(
        self,
        instruction: str,
        content: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        self._ensure_initialized()
        self._check_cancelled(cancel_event)
        timer = Timer().start()
        try:
            result = await race_with_cancel(
                self._analyze(instruction, content), cancel_event, self.name
            )
        except ProviderError:
            raise
        except Exception as exc:
            logger.error(
                "Gemini analysis failed",
                exc_info=True,
                extra={"model": self._model, "error_type": type(exc).__name__},
            )
            raise classify_exception(exc) from exc

        logger.info(
            "Gemini analysis completed",
            extra={
                "model": self._model,
                "response_chars": len(result),
                "latency_ms": timer.stop().elapsed_ms,
            },
        )
        return result

    async def _analyze(self, instruction: str, content: str) -> str:
        if not self._should_upload(content):
            return await self._analyze_inline(instruction, content)
        try:
            return await self._analyze_with_file(instruction, content)
        except ProviderError as error:
            if error.code != ErrorCode.TOKEN_LIMIT_EXCEEDED.value:
                raise
            logger.warning(
                "Upload path hit the token limit, retrying inline",
                extra={"model": self._model, "details": error.details},
            )
            return await self._analyze_inline(instruction, content)

    async def _analyze_inline(self, instruction: str, content: str) -> str:
        response = await self._generate_content(
            model=self._model,
            contents=self._prompt_loader.format_request(instruction, content),
            config=self._config(),
        )
        self._update_usage(response)
        text = getattr(response, "text", None) or ""
        if not text.strip():
            raise ProviderError(
                ErrorCode.EMPTY_RESPONSE,
                "Empty response from Gemini API",
                "No text content in response",
            )
        return text

    async def _analyze_with_file(self, instruction: str, content: str) -> str:
        uploaded = await self._upload(content)
        try:
            file_uri, mime_type = await self._wait_until_usable(uploaded)
            response = await self._generate_content(
                model=self._model,
                contents=[
                    types.Part.from_text(
                        text=self._prompt_loader.format_file_request(instruction)
                    ),
                    types.Part.from_uri(file_uri=file_uri, mime_type=mime_type),
                ],
                config=self._config(),
            )
            self._update_usage(response)
            text = getattr(response, "text", None) or ""
            if not text.strip():
                self._raise_for_finish_reason(response, content)
                raise ProviderError(
                    ErrorCode.EMPTY_RESPONSE,
                    "Empty response from Gemini File API",
                    "No text content in response",
                )
            return text
        finally:
            await self._delete(uploaded)

    def _raise_for_finish_reason(self, response: Any, content: str) -> None:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return
        reason = _state_name(getattr(candidates[0], "finish_reason", None))
        if reason == "MAX_TOKENS":
            raise ProviderError(
                ErrorCode.TOKEN_LIMIT_EXCEEDED,
                "Content too large: the Gemini API token limit was reached",
                f"MAX_TOKENS reached with {len(content.encode('utf-8'))} bytes content",
            )
        if reason and reason != "STOP":
            raise ProviderError(
                ErrorCode.GENERATION_FAILED,
                f"Response generation ended abnormally: {reason}",
                f"Finish reason: {reason}",
            )

    # ------------------------------------------------------------------
    # File upload path
    # ------------------------------------------------------------------

    async def _upload(self, content: str) -> Any:
        mime_type, extension, label = detect_content_type(content)
        display_name = f"page-content-{int(time.time() * 1000)}-{label}.{extension}"
        try:
            uploaded = await self._client.aio.files.upload(
                file=io.BytesIO(content.encode("utf-8")),
                config=types.UploadFileConfig(
                    display_name=display_name, mime_type=mime_type
                ),
            )
        except Exception as exc:
            raise classify_exception(exc, ErrorCode.FILE_UPLOAD_ERROR) from exc

        if not getattr(uploaded, "name", None):
            raise ProviderError(
                ErrorCode.FILE_UPLOAD_ERROR, "Uploaded file has no name", display_name
            )
        logger.info(
            "Content uploaded to Gemini",
            extra={"file_name": uploaded.name, "mime_type": mime_type},
        )
        return uploaded

    async def _wait_until_usable(self, uploaded: Any) -> tuple[str, str]:
        await self._wait_for_active(uploaded.name)
        if not getattr(uploaded, "uri", None):
            raise ProviderError(
                ErrorCode.FILE_UPLOAD_ERROR, "Uploaded file has no URI", uploaded.name
            )
        mime_type = getattr(uploaded, "mime_type", None) or "text/plain"
        return uploaded.uri, mime_type

    async def _wait_for_active(self, file_name: str) -> None:
        """
        R: Poll the file state until ACTIVE.

        Raises FILE_PROCESSING_FAILED on FAILED and FILE_WAIT_TIMEOUT once
        the bounded wait elapses. Poll errors are retried until then.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._wait_timeout
        last_error: Optional[Exception] = None

        while loop.time() < deadline:
            try:
                info = await self._client.aio.files.get(name=file_name)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "File state poll failed",
                    extra={"file_name": file_name, "error": str(exc)},
                )
            else:
                state = _state_name(getattr(info, "state", None))
                if state == "ACTIVE":
                    return
                if state == "FAILED":
                    raise ProviderError(
                        ErrorCode.FILE_PROCESSING_FAILED,
                        "Gemini failed to process the uploaded file",
                        f"File state: {state}",
                    )
            await asyncio.sleep(self._poll_interval)

        raise ProviderError(
            ErrorCode.FILE_WAIT_TIMEOUT,
            "Timed out waiting for the uploaded file to become active",
            str(last_error) if last_error else f"Waited {self._wait_timeout}s",
        )

    async def _delete(self, uploaded: Any) -> None:
        name = getattr(uploaded, "name", None)
        if not name:
            return
        try:
            await self._client.aio.files.delete(name=name)
        except Exception as exc:
            logger.warning(
                "Failed to clean up uploaded file",
                extra={"file_name": name, "error": str(exc)},
            )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def analyze_content_stream(
        self,
        instruction: str,
        content: str,
        history: Sequence[ChatMessage],
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        uploaded = None
        try:
            self._ensure_initialized()
            self._check_cancelled(cancel_event)

            if history:
                # R: The latest user turn is already part of the history.
                contents: Any = _history_contents(history)
            elif self._should_upload(content):
                uploaded = await self._upload(content)
                file_uri, mime_type = await self._wait_until_usable(uploaded)
                contents = [
                    types.Content(
                        role="user",
                        parts=[
                            types.Part.from_text(
                                text=self._prompt_loader.format_file_request(instruction)
                            ),
                            types.Part.from_uri(file_uri=file_uri, mime_type=mime_type),
                        ],
                    )
                ]
            else:
                contents = [
                    types.Content(
                        role="user",
                        parts=[
                            types.Part.from_text(
                                text=self._prompt_loader.format_request(instruction, content)
                            )
                        ],
                    )
                ]

            final_text = await self._consume_stream(contents, sink, cancel_event)
        except ProviderError as error:
            self._fail_stream(sink, error)
        except Exception as exc:
            logger.error(
                "Gemini streaming failed",
                exc_info=True,
                extra={"model": self._model, "error_type": type(exc).__name__},
            )
            self._fail_stream(sink, classify_exception(exc))
        finally:
            if uploaded is not None:
                await self._delete(uploaded)

        self._finish_stream(sink, final_text)

    async def _consume_stream(
        self,
        contents: Any,
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event],
    ) -> str:
        stream = await self._create_stream(
            model=self._model, contents=contents, config=self._config()
        )
        parts: list[str] = []
        last = None
        async for piece in stream:
            self._check_cancelled(cancel_event)
            text = getattr(piece, "text", None)
            if text:
                parts.append(text)
                sink.push(TextDelta(text=text))
            last = piece

        if last is not None:
            self._update_usage(last)
        return "".join(parts)

    async def destroy(self) -> None:
        self._usage = None
        await super().destroy()
