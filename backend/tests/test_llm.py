"""
Unit tests for the LLM module.
Tests LLMMessage, the OpenAI-compatible streaming providers, and the factory.
"""

import json
import pytest
from unittest.mock import patch

import httpx

from app.llm.base import LLMMessage
from app.llm.openai_provider import OpenAIProvider, OpenRouterProvider
from app.llm.factory import create_llm_provider

_RealAsyncClient = httpx.AsyncClient


def _sse_body(*chunks, done=True) -> bytes:
    lines = [f"data: {json.dumps(chunk)}\n\n" for chunk in chunks]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def _delta(text):
    return {"choices": [{"delta": {"content": text}}]}


def _mock_http(handler):
    """Patch the provider's AsyncClient so requests go to ``handler``."""
    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _RealAsyncClient(*args, **kwargs)
    return patch("app.llm.openai_provider.httpx.AsyncClient", side_effect=factory)


async def _collect(provider, messages):
    return [fragment async for fragment in provider.chat_completion_stream(messages)]


class TestLLMMessage:
    """Tests for LLMMessage dataclass."""

    def test_text_message(self):
        msg = LLMMessage.text("user", "Hello")
        assert msg.role == "user"
        assert msg.content == "Hello"

    def test_system_message(self):
        msg = LLMMessage.text("system", "You are a helpful assistant")
        assert msg.role == "system"
        assert msg.content == "You are a helpful assistant"


class TestOpenAIProvider:
    """Tests for OpenAI-compatible provider."""

    def test_init_defaults(self):
        provider = OpenAIProvider(api_key="test-key")
        assert provider.api_key == "test-key"
        assert provider.model == "gpt-4o"
        assert provider.base_url == "https://api.openai.com/v1"

    def test_init_custom(self):
        provider = OpenAIProvider(
            api_key="key",
            model="gpt-4o-mini",
            base_url="https://custom.api.com/v1",
            timeout=5.0,
        )
        assert provider.model == "gpt-4o-mini"
        assert provider.base_url == "https://custom.api.com/v1"
        assert provider.timeout == 5.0

    def test_format_messages(self):
        provider = OpenAIProvider(api_key="test")
        messages = [
            LLMMessage.text("system", "sys prompt"),
            LLMMessage.text("user", "hello")
        ]
        formatted = provider._format_messages(messages)
        assert formatted == [
            {"role": "system", "content": "sys prompt"},
            {"role": "user", "content": "hello"},
        ]

    def test_headers(self):
        provider = OpenAIProvider(api_key="sk-test123")
        headers = provider._get_headers()
        assert headers["Authorization"] == "Bearer sk-test123"
        assert headers["Content-Type"] == "application/json"

    def test_parse_sse_line(self):
        assert OpenAIProvider._parse_sse_line('data: {"choices": []}') == {"choices": []}
        assert OpenAIProvider._parse_sse_line(": keep-alive") is None
        assert OpenAIProvider._parse_sse_line("") is None
        assert OpenAIProvider._parse_sse_line("data: not json") is None
        assert OpenAIProvider._parse_sse_line("data: [DONE]") is None
        assert OpenAIProvider.is_done_line("data: [DONE]")
        assert not OpenAIProvider.is_done_line('data: {"choices": []}')

    @pytest.mark.asyncio
    async def test_stream_yields_fragments_in_order(self):
        provider = OpenAIProvider(api_key="test-key", model="gpt-4o")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["payload"] = json.loads(request.content)
            body = _sse_body(
                {"choices": [{"delta": {"role": "assistant"}}]},
                _delta("Click"),
                _delta("-through rate"),
                _delta(" is..."),
                {"choices": [], "usage": {"prompt_tokens": 12, "completion_tokens": 6, "total_tokens": 18}},
            )
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        with _mock_http(handler):
            fragments = await _collect(provider, [
                LLMMessage.text("system", "sys"),
                LLMMessage.text("user", "What is CTR?"),
            ])

        assert fragments == ["Click", "-through rate", " is..."]
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["payload"]["stream"] is True
        assert seen["payload"]["model"] == "gpt-4o"
        assert seen["payload"]["messages"][1] == {"role": "user", "content": "What is CTR?"}

    @pytest.mark.asyncio
    async def test_stream_stops_at_done(self):
        provider = OpenAIProvider(api_key="test-key")

        def handler(request):
            body = _sse_body(_delta("only")) + b'data: {"choices": [{"delta": {"content": "ignored"}}]}\n\n'
            return httpx.Response(200, content=body)

        with _mock_http(handler):
            assert await _collect(provider, [LLMMessage.text("user", "hi")]) == ["only"]

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        provider = OpenAIProvider(api_key="bad-key")

        def handler(request):
            return httpx.Response(401, json={"error": {"message": "invalid key"}})

        with _mock_http(handler):
            with pytest.raises(httpx.HTTPStatusError):
                await _collect(provider, [LLMMessage.text("user", "hi")])

    @pytest.mark.asyncio
    async def test_error_chunk_raises_after_earlier_fragments(self):
        provider = OpenAIProvider(api_key="test-key")

        def handler(request):
            body = _sse_body(_delta("Click"), {"error": {"message": "overloaded"}}, done=False)
            return httpx.Response(200, content=body)

        received = []
        with _mock_http(handler):
            with pytest.raises(RuntimeError, match="overloaded"):
                async for fragment in provider.chat_completion_stream([LLMMessage.text("user", "hi")]):
                    received.append(fragment)

        assert received == ["Click"]


class TestOpenRouterProvider:
    """Tests for the OpenRouter provider."""

    def test_init_defaults(self):
        provider = OpenRouterProvider(api_key="test-key")
        assert provider.provider_name == "openrouter"
        assert provider.model == "openai/gpt-oss-120b"
        assert provider.base_url == "https://openrouter.ai/api/v1"
        assert "X-Title" not in provider._get_headers()

    def test_app_title_header(self):
        provider = OpenRouterProvider(api_key="test-key", app_title="Marketing Assistant Chat")
        headers = provider._get_headers()
        assert headers["X-Title"] == "Marketing Assistant Chat"
        assert headers["Authorization"] == "Bearer test-key"

    @pytest.mark.asyncio
    async def test_stream_hits_openrouter(self):
        provider = OpenRouterProvider(api_key="test-key")
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, content=_sse_body(_delta("Hi")))

        with _mock_http(handler):
            assert await _collect(provider, [LLMMessage.text("user", "hi")]) == ["Hi"]
        assert urls == ["https://openrouter.ai/api/v1/chat/completions"]


class TestLLMFactory:
    """Tests for LLM provider factory."""

    def test_create_openai_provider(self):
        provider = create_llm_provider(
            provider="openai",
            api_key="test-key",
            model="gpt-4o"
        )
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"

    def test_create_openrouter_provider(self):
        provider = create_llm_provider(provider="openrouter", api_key="test-key", app_title="App")
        assert isinstance(provider, OpenRouterProvider)
        assert provider.app_title == "App"

    def test_default_is_openrouter(self):
        assert isinstance(create_llm_provider(api_key="key"), OpenRouterProvider)

    def test_no_api_key_returns_none(self):
        provider = create_llm_provider(provider="openai", api_key="")
        assert provider is None

    def test_unsupported_provider_raises(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_llm_provider(provider="unsupported", api_key="key")

    def test_custom_base_url(self):
        provider = create_llm_provider(
            provider="openai",
            api_key="key",
            base_url="https://custom.api.com/v1"
        )
        assert provider.base_url == "https://custom.api.com/v1"
