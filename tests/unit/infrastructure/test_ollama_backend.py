"""
Unit tests for OllamaBackend over httpx.MockTransport.
"""

import json

import httpx
import pytest

from pagelens.infrastructure.services.llm.ollama_backend import Availability, OllamaBackend

pytestmark = pytest.mark.unit


def _backend(handler, model="gemma3:1b"):
    client = httpx.AsyncClient(
        base_url="http://ollama.test", transport=httpx.MockTransport(handler)
    )
    return OllamaBackend(base_url="http://ollama.test", model=model, client=client)


@pytest.mark.asyncio
async def test_model_present_is_readily_available():
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "gemma3:1b"}]})

    assert await _backend(handler).availability() == Availability.READILY


@pytest.mark.asyncio
async def test_latest_tag_matches_bare_model_name():
    def handler(request):
        return httpx.Response(200, json={"models": [{"name": "llama3:latest"}]})

    assert await _backend(handler, model="llama3").availability() == Availability.READILY


@pytest.mark.asyncio
async def test_missing_model_requires_download():
    def handler(request):
        return httpx.Response(200, json={"models": [{"name": "other:7b"}]})

    assert await _backend(handler).availability() == Availability.AFTER_DOWNLOAD


@pytest.mark.asyncio
async def test_unreachable_server_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert await _backend(handler).availability() == Availability.NO


@pytest.mark.asyncio
async def test_session_prompt_sends_bounded_context_and_tracks_tokens():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(
            200,
            json={"response": '{"errors": []}', "prompt_eval_count": 90, "eval_count": 10},
        )

    backend = _backend(handler)
    session = await backend.create_session("system text", temperature=0.2, top_k=3)

    answer = await session.prompt("hello")

    assert answer == '{"errors": []}'
    assert seen["stream"] is False
    assert seen["system"] == "system text"
    assert seen["options"] == {"num_ctx": 6144, "temperature": 0.2, "top_k": 3}
    assert session.tokens_so_far == 100
    assert session.tokens_left == 6044


@pytest.mark.asyncio
async def test_session_prompt_raises_on_http_error():
    def handler(request):
        return httpx.Response(503, json={"error": "busy"})

    session = await _backend(handler).create_session("system")

    with pytest.raises(httpx.HTTPStatusError):
        await session.prompt("hello")


@pytest.mark.asyncio
async def test_pull_model_checks_status():
    def handler(request):
        assert request.url.path == "/api/pull"
        return httpx.Response(200, json={"status": "error"})

    with pytest.raises(RuntimeError):
        await _backend(handler).pull_model()


@pytest.mark.asyncio
async def test_aclose_is_idempotent():
    backend = _backend(lambda request: httpx.Response(200, json={}))

    await backend.aclose()
    await backend.aclose()
