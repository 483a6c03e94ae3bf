"""
Name: Ollama Backend (local model server)

Responsibilities:
  - Report model availability (readily / after-download / no)
  - Create prompt sessions bound to a small, fixed context window
  - Pull the model on request

Collaborators:
  - httpx.AsyncClient: Ollama REST API (/api/tags, /api/generate, /api/pull)
  - local_provider.LocalModelProvider: the only consumer

Constraints:
  - Non-streaming generate (stream=False); streaming is emulated upstream
  - Transport/HTTP errors propagate as httpx exceptions; the provider
    maps them to ProviderError codes

Notes:
  - Each prompt is stateless on the server; the session keeps the system
    prompt, sampling options and the last reported token count
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

import httpx

from ....crosscutting.logger import logger


class Availability(str, Enum):
    READILY = "readily"
    AFTER_DOWNLOAD = "after-download"
    NO = "no"


def _model_names(payload: dict) -> set[str]:
    names = set()
    for entry in payload.get("models", []) or []:
        for key in ("name", "model"):
            value = entry.get(key)
            if value:
                names.add(value)
    return names


class OllamaSession:
    """R: One prompt session on the local model."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        model: str,
        system_prompt: str,
        context_tokens: int,
        temperature: float,
        top_k: int,
    ):
        self._client = client
        self._model = model
        self._system_prompt = system_prompt
        self._temperature = temperature
        self._top_k = top_k
        self.max_tokens = context_tokens
        self.tokens_so_far = 0

    @property
    def tokens_left(self) -> int:
        return max(0, self.max_tokens - self.tokens_so_far)

    async def prompt(self, text: str) -> str:
        payload = {
            "model": self._model,
            "prompt": text,
            "system": self._system_prompt,
            "stream": False,
            "options": {
                "num_ctx": self.max_tokens,
                "temperature": self._temperature,
                "top_k": self._top_k,
            },
        }
        response = await self._client.post("/api/generate", json=payload)
        response.raise_for_status()
        data = response.json()

        self.tokens_so_far = int(data.get("prompt_eval_count") or 0) + int(
            data.get("eval_count") or 0
        )
        logger.debug(
            "Ollama generation complete",
            extra={"model": self._model, "tokens": self.tokens_so_far},
        )
        return data.get("response", "") or ""

    async def destroy(self) -> None:
        self.tokens_so_far = 0


class OllamaBackend:
    """
    R: Factory for OllamaSession over a shared httpx client.

    The client is created lazily and closed by aclose().
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "gemma3:1b",
        timeout_seconds: float = 120.0,
        context_tokens: int = 6144,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.context_tokens = context_tokens
        self._timeout = timeout_seconds
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self._timeout
            )
        return self._client

    async def availability(self) -> Availability:
        try:
            response = await self.client.get("/api/tags", timeout=5.0)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Ollama server not reachable",
                extra={"base_url": self.base_url, "error": str(exc)},
            )
            return Availability.NO

        names = _model_names(response.json())
        if self.model in names or f"{self.model}:latest" in names:
            return Availability.READILY
        return Availability.AFTER_DOWNLOAD

    async def create_session(
        self,
        system_prompt: str,
        temperature: float = 0.2,
        top_k: int = 3,
    ) -> OllamaSession:
        return OllamaSession(
            client=self.client,
            model=self.model,
            system_prompt=system_prompt,
            context_tokens=self.context_tokens,
            temperature=temperature,
            top_k=top_k,
        )

    async def pull_model(self) -> None:
        """R: Download the configured model. Blocks until the pull finishes."""
        response = await self.client.post(
            "/api/pull",
            json={"model": self.model, "stream": False},
            timeout=None,
        )
        response.raise_for_status()
        status = (response.json() or {}).get("status")
        if status != "success":
            raise RuntimeError(f"Model pull ended with status {status!r}")
        logger.info("Ollama model pulled", extra={"model": self.model})

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
