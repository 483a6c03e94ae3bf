"""
Name: Analysis Orchestrator

Responsibilities:
  - Own the primary and optional fallback provider handles
  - Build and initialize providers from the active ProviderConfig
  - Run single-shot and streaming requests with transparent fail-over
  - Report provider availability
  - Tear down and rebuild handles on reconfiguration

Collaborators:
  - ProviderFactory: constructs local and remote providers
  - infrastructure.services.retry: classify_exception / is_fallback_eligible
  - crosscutting.context: request correlation id

Constraints:
  - Only fallback-eligible failures (rate limit, 5xx, transport, timeout)
    trigger fail-over; everything else propagates immediately
  - When both providers fail the caller gets one combined error
  - A request keeps the handles it captured when it started
  - A streaming caller sees exactly one terminal event

Notes:
  - Initialization is shared: concurrent callers await the same task
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Callable, Optional, Protocol, Sequence

from ..crosscutting.context import new_request_id, provider_var
from ..crosscutting.exceptions import ErrorCode, ProviderError
from ..crosscutting.logger import logger
from ..crosscutting.timing import Timer
from ..domain.entities import (
    AnalysisResult,
    AvailabilityReport,
    ChatMessage,
    ProviderConfig,
    ProviderKind,
    StreamDone,
    StreamEvent,
    StreamFailed,
)
from ..domain.services import AnalysisProvider, StreamSink
from ..infrastructure.services.retry import classify_exception, is_fallback_eligible

FALLBACK_SUFFIX = " (fallback)"


class ProviderFactory(Protocol):
    def create_local(self) -> AnalysisProvider: ...

    def create_remote(self, config: ProviderConfig) -> AnalysisProvider: ...


def combined_error(primary: ProviderError, fallback: ProviderError) -> ProviderError:
    return ProviderError(
        ErrorCode.ALL_PROVIDERS_FAILED,
        f"Both providers failed. Primary: {primary.message} Fallback: {fallback.message}",
        details=f"primary={primary.code}; fallback={fallback.code}",
        original_error=fallback,
    )


async def _safe_destroy(provider: Optional[AnalysisProvider]) -> None:
    if provider is None:
        return
    try:
        await provider.destroy()
    except Exception as exc:
        logger.warning(
            "Provider teardown failed",
            extra={"provider": provider.name, "error": str(exc)},
        )


class _RelaySink:
    """
    Forwards one provider attempt to the caller's sink.

    StreamFailed is withheld (the orchestrator decides what the caller
    sees) and StreamDone is relabelled with the serving provider.
    """

    def __init__(self, downstream: StreamSink, provider_name: str):
        self._downstream = downstream
        self._provider_name = provider_name
        self.failure: Optional[ProviderError] = None

    def push(self, event: StreamEvent) -> None:
        if isinstance(event, StreamFailed):
            self.failure = event.error
            return
        if isinstance(event, StreamDone):
            event = replace(event, provider_name=self._provider_name)
        self._downstream.push(event)


class AnalysisOrchestrator:
    """
    R: Entry point for analysis requests.

    Args:
        config_loader: returns the current ProviderConfig (external store)
        provider_factory: builds provider handles
    """

    def __init__(
        self,
        config_loader: Callable[[], ProviderConfig],
        provider_factory: ProviderFactory,
    ):
        self._config_loader = config_loader
        self._factory = provider_factory
        self._config: Optional[ProviderConfig] = None
        self._primary: Optional[AnalysisProvider] = None
        self._fallback: Optional[AnalysisProvider] = None
        self._init_task: Optional[asyncio.Task] = None

    @property
    def config(self) -> Optional[ProviderConfig]:
        return self._config

    @property
    def primary(self) -> Optional[AnalysisProvider]:
        return self._primary

    @property
    def fallback(self) -> Optional[AnalysisProvider]:
        return self._fallback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._primary is not None:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._build())
        task = self._init_task
        try:
            await task
        except Exception:
            if self._init_task is task:
                self._init_task = None
            raise

    async def _build(self) -> None:
        config = self._config_loader()
        logger.info(
            "Building providers",
            extra={
                "primary_kind": config.primary_provider_kind.value,
                "model": config.model_name,
                "fallback_enabled": config.fallback_enabled,
            },
        )
        primary, fallback = await self._create_providers(config)
        self._config = config
        self._primary = primary
        self._fallback = fallback
        logger.info(
            "Providers ready",
            extra={
                "primary": primary.name,
                "fallback": fallback.name if fallback else None,
            },
        )

    async def _create_providers(
        self, config: ProviderConfig
    ) -> tuple[AnalysisProvider, Optional[AnalysisProvider]]:
        primary: Optional[AnalysisProvider] = None
        remote = False

        if config.primary_provider_kind != ProviderKind.LOCAL:
            if config.credential and config.credential.strip():
                try:
                    primary = self._factory.create_remote(config)
                    remote = True
                except Exception as exc:
                    logger.warning(
                        "Remote provider construction failed, using local provider",
                        extra={"error": str(exc)},
                    )
            else:
                logger.warning("No credential for remote provider, using local provider")

        if primary is None:
            primary = self._factory.create_local()

        fallback: Optional[AnalysisProvider] = None
        if remote and config.fallback_enabled:
            fallback = self._factory.create_local()
            try:
                await fallback.initialize()
            except Exception as exc:
                # R: An optional fallback never fails startup.
                logger.warning(
                    "Fallback provider initialization failed, fallback disabled",
                    extra={"provider": fallback.name, "error": str(exc)},
                )
                await _safe_destroy(fallback)
                fallback = None

        try:
            await primary.initialize()
        except Exception as exc:
            logger.error(
                "Primary provider initialization failed",
                extra={"provider": primary.name, "error": str(exc)},
            )
            await _safe_destroy(primary)
            if fallback is not None:
                primary, fallback = fallback, None
                logger.info("Promoted fallback provider to primary")
            else:
                primary = self._factory.create_local()
                await primary.initialize()
                logger.info("Using last-resort local provider")

        return primary, fallback

    async def reconfigure(self, config: Optional[ProviderConfig] = None) -> None:
        """
        R: Tear down all handles and rebuild them from the new config.

        With `config` given it replaces the loader's value from now on.
        """
        if config is not None:
            self._config_loader = lambda: config
        old_primary, old_fallback = self._primary, self._fallback
        self._primary = None
        self._fallback = None
        self._config = None
        self._init_task = None
        await _safe_destroy(old_primary)
        await _safe_destroy(old_fallback)
        await self.initialize()

    async def destroy(self) -> None:
        primary, fallback = self._primary, self._fallback
        self._primary = None
        self._fallback = None
        self._init_task = None
        await _safe_destroy(primary)
        await _safe_destroy(fallback)
        logger.info("Orchestrator destroyed")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _capture(
        self,
    ) -> tuple[AnalysisProvider, Optional[AnalysisProvider], ProviderConfig]:
        await self.initialize()
        return self._primary, self._fallback, self._config

    @staticmethod
    def _can_fail_over(
        error: ProviderError,
        fallback: Optional[AnalysisProvider],
        config: ProviderConfig,
    ) -> bool:
        return (
            fallback is not None
            and config.fallback_enabled
            and is_fallback_eligible(error)
        )

    async def analyze_content(
        self,
        instruction: str,
        content: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        primary, fallback, config = await self._capture()
        request_id = new_request_id()
        provider_var.set(primary.name)
        timer = Timer().start()

        try:
            text = await primary.analyze_content(instruction, content, cancel_event)
            logger.info(
                "Analysis completed",
                extra={"request_id": request_id, "latency_ms": timer.elapsed_ms},
            )
            return AnalysisResult(
                result_text=text,
                provider_name=primary.name,
                token_usage=primary.get_token_info(),
            )
        except Exception as exc:
            error = classify_exception(exc)
            if not self._can_fail_over(error, fallback, config):
                logger.warning(
                    "Primary provider failed, no fail-over",
                    extra={"code": error.code, "error": error.message},
                )
                if error is exc:
                    raise
                raise error from exc

        logger.warning(
            "Primary provider failed, retrying on fallback",
            extra={"code": error.code, "fallback": fallback.name},
        )
        provider_var.set(fallback.name)
        try:
            text = await fallback.analyze_content(instruction, content, cancel_event)
        except Exception as exc:
            fallback_error = classify_exception(exc)
            logger.error(
                "Fallback provider failed too",
                extra={"primary_code": error.code, "fallback_code": fallback_error.code},
            )
            raise combined_error(error, fallback_error) from exc

        logger.info(
            "Analysis completed on fallback",
            extra={"request_id": request_id, "latency_ms": timer.elapsed_ms},
        )
        return AnalysisResult(
            result_text=text,
            provider_name=f"{fallback.name}{FALLBACK_SUFFIX}",
            token_usage=fallback.get_token_info(),
        )

    async def analyze_content_stream(
        self,
        instruction: str,
        content: str,
        history: Sequence[ChatMessage],
        sink: StreamSink,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Stream a request into `sink` with whole-request fail-over.

        The primary's StreamFailed is withheld while the fallback runs; the
        caller receives exactly one StreamDone or StreamFailed.
        """
        primary, fallback, config = await self._capture()
        new_request_id()
        provider_var.set(primary.name)

        relay = _RelaySink(sink, primary.name)
        try:
            await primary.analyze_content_stream(
                instruction, content, history, relay, cancel_event
            )
            return
        except Exception as exc:
            error = classify_exception(exc)
            cause = exc

        if not self._can_fail_over(error, fallback, config):
            sink.push(StreamFailed(error=error))
            if error is cause:
                raise error
            raise error from cause

        logger.warning(
            "Primary stream failed, re-issuing on fallback",
            extra={"code": error.code, "fallback": fallback.name},
        )
        # R: The fallback restarts the whole request; drop buffered partial text.
        reset = getattr(sink, "reset", None)
        if callable(reset):
            reset()

        provider_var.set(fallback.name)
        fallback_relay = _RelaySink(sink, f"{fallback.name}{FALLBACK_SUFFIX}")
        try:
            await fallback.analyze_content_stream(
                instruction, content, history, fallback_relay, cancel_event
            )
        except Exception as exc:
            failure = combined_error(error, classify_exception(exc))
            sink.push(StreamFailed(error=failure))
            raise failure from exc

    async def check_availability(self) -> AvailabilityReport:
        primary, fallback, config = await self._capture()

        primary_ok = False
        try:
            primary_ok = await primary.check_availability()
        except Exception as exc:
            logger.warning(
                "Primary availability check failed", extra={"error": str(exc)}
            )

        fallback_ok: Optional[bool] = None
        fallback_name: Optional[str] = None
        if fallback is not None and config.fallback_enabled:
            fallback_name = fallback.name
            try:
                fallback_ok = await fallback.check_availability()
            except Exception as exc:
                logger.warning(
                    "Fallback availability check failed", extra={"error": str(exc)}
                )
                fallback_ok = False

        return AvailabilityReport(
            primary=primary_ok,
            primary_provider=primary.name,
            fallback=fallback_ok,
            fallback_provider=fallback_name,
        )
